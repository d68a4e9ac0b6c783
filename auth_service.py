import logging
import uuid
from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth_utils import hash_password, verify_password, pwd_context, create_access_token, decode_access_token
from config import TOKEN_TTL_HOURS, REMEMBER_TOKEN_TTL_DAYS, DEFAULT_LOCALE
from errors import (
    UserAlreadyExistsError,
    InvalidCredentialsError,
    AccountDeactivatedError,
    AuthenticationError,
)
from models import User, AuthToken, utcnow
from schemas import RegisterRequest, LoginRequest, PreferencesUpdate, UserOut

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")


def user_to_schema(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        name=user.name,
        email=user.email,
        preferred_language=user.preferred_language,
        timezone=user.timezone,
        notification_preferences=user.get_notification_preferences(),
        created_at=user.created_at,
    )


class AuthService:
    def __init__(self, db: Session, user_locale_cache=None):
        self.db = db
        self.user_locale_cache = user_locale_cache

    def _new_token(self, user: User, expires_at):
        row = AuthToken(id=uuid.uuid4().hex, user_id=user.id, name="auth_token", expires_at=expires_at)
        self.db.add(row)
        return row, create_access_token(user.id, row.id, expires_at)

    def register(self, data: RegisterRequest, locale: str = DEFAULT_LOCALE):
        """Legt einen Benutzer an und stellt ein Token (30 Tage) aus."""
        if self.db.query(User.id).filter(User.email == data.email).first():
            security_logger.warning("Registration with existing email: %s", data.email)
            raise UserAlreadyExistsError("User already exists", reason="duplicate_email")

        user = User(
            name=data.name,
            email=data.email,
            hashed_password=hash_password(data.password),
            preferred_language=data.preferred_language or locale,
            timezone=data.timezone,
        )
        try:
            self.db.add(user)
            self.db.flush()
            row, token = self._new_token(user, utcnow() + timedelta(days=REMEMBER_TOKEN_TTL_DAYS))
            self.db.commit()
        except IntegrityError:
            # gleichzeitige Registrierung mit derselben E-Mail
            self.db.rollback()
            raise UserAlreadyExistsError("User already exists", reason="duplicate_email")

        logger.info("User registered: id=%s", user.id)
        return user, token, row

    def login(self, data: LoginRequest):
        user = self.db.query(User).filter(User.email == data.email).first()
        if user is None:
            # gleiche Laufzeit wie bei falschem Passwort
            pwd_context.dummy_verify()
            security_logger.warning("Failed login for unknown email")
            raise InvalidCredentialsError("Invalid credentials")
        if not verify_password(data.password, user.hashed_password):
            security_logger.warning("Failed login for user %s", user.id)
            raise InvalidCredentialsError("Invalid credentials")
        if not user.is_active:
            security_logger.warning("Login attempt on deactivated account %s", user.id)
            raise AccountDeactivatedError("Account is deactivated", user_id=user.id)

        if data.remember:
            expires_at = utcnow() + timedelta(days=REMEMBER_TOKEN_TTL_DAYS)
        else:
            # ohne "remember" gilt nur die neue Sitzung
            self.db.query(AuthToken).filter(AuthToken.user_id == user.id).delete(synchronize_session=False)
            expires_at = utcnow() + timedelta(hours=TOKEN_TTL_HOURS)
        row, token = self._new_token(user, expires_at)
        self.db.commit()
        logger.info("User logged in: id=%s remember=%s", user.id, data.remember)
        return user, token, row

    def authenticate(self, token: str):
        """Prüft ein Bearer-Token. Gibt (User, AuthToken) zurück oder wirft AuthenticationError."""
        payload = decode_access_token(token)
        row = self.db.get(AuthToken, payload["jti"])
        if row is None or row.user_id != int(payload["user_id"]):
            raise AuthenticationError("Token revoked")
        if row.is_expired:
            raise AuthenticationError("Token expired")
        user = row.user
        if user is None or not user.is_active:
            raise AuthenticationError("User inactive")
        return user, row

    def logout(self, row: AuthToken) -> None:
        self.db.delete(row)
        self.db.commit()
        logger.info("Token revoked for user %s", row.user_id)

    def logout_all(self, user: User) -> int:
        count = self.db.query(AuthToken).filter(AuthToken.user_id == user.id).delete(synchronize_session=False)
        self.db.commit()
        logger.info("All %d tokens revoked for user %s", count, user.id)
        return count

    def refresh(self, user: User, row: AuthToken):
        """Neues Token mit gleicher Ablaufzeit; das alte wird in derselben Transaktion gelöscht."""
        new_row, token = self._new_token(user, row.expires_at)
        self.db.delete(row)
        self.db.commit()
        logger.info("Token refreshed for user %s", user.id)
        return token, new_row

    def update_preferences(self, user: User, data: PreferencesUpdate) -> User:
        if data.preferred_language is not None:
            user.preferred_language = data.preferred_language
        if data.timezone is not None:
            user.timezone = data.timezone
        if data.notification_preferences is not None:
            prefs = dict(user.notification_preferences or {})
            prefs.update(data.notification_preferences)
            user.notification_preferences = prefs
        self.db.commit()
        if self.user_locale_cache is not None:
            self.user_locale_cache.forget(user.id)
        return user

    def deactivate(self, user: User) -> None:
        user.deactivate()
        self.db.query(AuthToken).filter(AuthToken.user_id == user.id).delete(synchronize_session=False)
        self.db.commit()
        if self.user_locale_cache is not None:
            self.user_locale_cache.forget(user.id)
        security_logger.info("Account deactivated: %s", user.id)
