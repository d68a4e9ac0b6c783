import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Enum
from sqlalchemy.orm import relationship

from database import Base
from config import DEFAULT_LOCALE

DEFAULT_NOTIFICATION_PREFERENCES = {
    "email_notifications": True,
    "task_created": True,
    "task_updated": True,
    "task_completed": True,
    "task_deleted": False,
    "task_due_soon": True,
    "task_overdue": True,
    "daily_digest": False,
    "weekly_digest": False,
}


def utcnow() -> datetime:
    """Aktuelle Zeit als naive UTC (so wird in der DB gespeichert)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value):
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class LifecycleState(str, enum.Enum):
    ACTIVE = "active"
    DELETED = "deleted"


def enum_column(enum_cls, **kwargs):
    # Werte (nicht Namen) speichern, z.B. "in_progress"
    return Column(
        Enum(enum_cls, native_enum=False, length=32, values_callable=lambda e: [m.value for m in e]),
        **kwargs,
    )


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    preferred_language = Column(String(8), nullable=False, default=DEFAULT_LOCALE)
    timezone = Column(String(64), nullable=False, default="UTC")
    notification_preferences = Column(JSON)
    state = enum_column(LifecycleState, nullable=False, default=LifecycleState.ACTIVE, index=True)
    deleted_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    tasks = relationship("TaskDB", back_populates="user")
    tokens = relationship("AuthToken", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_active(self) -> bool:
        return self.state == LifecycleState.ACTIVE

    def get_notification_preferences(self) -> dict:
        prefs = dict(DEFAULT_NOTIFICATION_PREFERENCES)
        prefs.update(self.notification_preferences or {})
        return prefs

    def wants_notification(self, notification_type: str) -> bool:
        prefs = self.get_notification_preferences()
        if not prefs.get("email_notifications", True):
            return False
        return bool(prefs.get(notification_type, False))

    def deactivate(self):
        self.state = LifecycleState.DELETED
        self.deleted_at = utcnow()


class AuthToken(Base):
    """Ausgestelltes Bearer-Token; die id ist die `jti` im JWT. Widerruf = Zeile löschen."""

    __tablename__ = "auth_tokens"
    id = Column(String(64), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(64), nullable=False, default="auth_token")
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="tokens")

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= utcnow()
