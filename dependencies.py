import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from slowapi import Limiter
from slowapi.util import get_remote_address

from auth_service import AuthService
from cache import RedisCache, UserLocaleCache, TaskCache
from config import (
    REDIS_URL, CACHE_PREFIX, API_RATE_LIMIT, RATE_LIMIT_STORAGE_URI,
    USER_LOCALE_CACHE_TTL, TASK_LIST_CACHE_TTL, TASK_STATS_CACHE_TTL,
)
from database import SessionLocal
from errors import AuthenticationError, TaskNotFoundError, ParentTaskNotFoundError, TaskAccessDeniedError, ParentAccessDeniedError
from events import TaskEventPublisher
from locale_resolver import LocaleResolver
from models import User
from notifications import NotificationDispatcher
from task_models import TaskDB
from task_service import TaskService

logger = logging.getLogger(__name__)

# --- Rate Limiter (alle Routen, pro IP) ---
limiter = Limiter(key_func=get_remote_address, default_limits=[API_RATE_LIMIT], storage_uri=RATE_LIMIT_STORAGE_URI)

# --- Geteilte Infrastruktur ---
redis_cache = RedisCache(redis_url=REDIS_URL, prefix=CACHE_PREFIX)
notifier = NotificationDispatcher()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


# --- Database Dependency ---
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_cache() -> RedisCache:
    return redis_cache


def get_notifier() -> NotificationDispatcher:
    return notifier


def get_user_locale_cache(cache: RedisCache = Depends(get_cache)) -> UserLocaleCache:
    return UserLocaleCache(cache, ttl=USER_LOCALE_CACHE_TTL)


def get_auth_service(db: Session = Depends(get_db), user_locale_cache=Depends(get_user_locale_cache)) -> AuthService:
    return AuthService(db, user_locale_cache)


def get_task_service(
    db: Session = Depends(get_db),
    cache: RedisCache = Depends(get_cache),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> TaskService:
    return TaskService(
        db,
        TaskCache(cache, list_ttl=TASK_LIST_CACHE_TTL, stats_ttl=TASK_STATS_CACHE_TTL),
        TaskEventPublisher(cache),
        notifier,
    )


# --- Auth Dependency ---
def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    if not token:
        raise AuthenticationError("Missing bearer token")
    user, row = auth.authenticate(token)
    request.state.user_id = user.id
    request.state.auth_token = row
    return user


def get_current_token(request: Request, user: User = Depends(get_current_user)):
    return request.state.auth_token


def get_optional_user_id(request: Request, token: Optional[str] = Depends(oauth2_scheme),
                         auth: AuthService = Depends(get_auth_service)) -> Optional[int]:
    """User-ID, falls ein gültiges Token mitgeschickt wurde, sonst None."""
    if not token:
        return None
    try:
        user, _ = auth.authenticate(token)
    except AuthenticationError:
        return None
    return user.id


# --- Locale Dependency ---
async def _body_locale(request: Request):
    if request.method not in ("POST", "PUT", "PATCH"):
        return None
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    try:
        body = await request.json()
    except ValueError:
        return None
    return body.get("locale") if isinstance(body, dict) else None


async def get_locale(
    request: Request,
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
    user_locale_cache: UserLocaleCache = Depends(get_user_locale_cache),
) -> str:
    """Aufgelöste Sprache des Requests; einmal pro Request berechnet (request.state.locale)."""
    cached = getattr(request.state, "locale", None)
    if cached:
        return cached

    def load_user_locale(uid):
        row = db.query(User.preferred_language).filter(User.id == uid).first()
        return row[0] if row else None

    resolver = LocaleResolver(user_locale_cache=user_locale_cache)
    locale = resolver.resolve(
        header_locale=request.headers.get("X-Locale"),
        user_id=user_id,
        load_user_locale=load_user_locale,
        param_locale=request.query_params.get("locale") or await _body_locale(request),
        accept_language=request.headers.get("Accept-Language"),
        session_locale=request.session.get("locale") if "session" in request.scope else None,
    )
    request.state.locale = locale
    return locale


def request_locale(request: Request) -> str:
    """Sprache für Fehlerantworten: aufgelöste Sprache oder Auflösung ohne Benutzer."""
    locale = getattr(request.state, "locale", None)
    if locale:
        return locale
    resolver = LocaleResolver()
    return resolver.resolve(
        header_locale=request.headers.get("X-Locale"),
        param_locale=request.query_params.get("locale"),
        accept_language=request.headers.get("Accept-Language"),
        session_locale=request.session.get("locale") if "session" in request.scope else None,
    )


# --- Ownership Dependencies ---
def _check_owner(db: Session, task_id: int, user: User, parent: bool = False) -> TaskDB:
    # bewusst ohne user_id-Filter: fremde Aufgaben sollen 403 statt 404 liefern
    task = db.get(TaskDB, task_id)
    if task is None:
        error = ParentTaskNotFoundError if parent else TaskNotFoundError
        raise error(f"Task {task_id} not found", task_id=task_id)
    if task.user_id != user.id:
        error = ParentAccessDeniedError if parent else TaskAccessDeniedError
        logger.warning("User %s tried to access task %s of user %s", user.id, task_id, task.user_id)
        raise error(f"Task {task_id} belongs to another user", task_id=task_id)
    return task


def require_task_owner(task_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> TaskDB:
    return _check_owner(db, task_id, user)


def require_parent_owner(parent_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> TaskDB:
    return _check_owner(db, parent_id, user, parent=True)


async def require_body_parent_owner(request: Request, user: User = Depends(get_current_user),
                                    db: Session = Depends(get_db)) -> None:
    """Prüft parent_id bzw. new_parent_id im JSON-Body (404/403 wie bei Aufgaben)."""
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    try:
        body = await request.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    for key in ("parent_id", "new_parent_id"):
        value = body.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            _check_owner(db, value, user, parent=True)
    return None
