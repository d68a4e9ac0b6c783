import enum

from sqlalchemy import Column, Integer, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship

from models import Base, LifecycleState, enum_column, utcnow
from config import FALLBACK_LOCALE


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskDB(Base):
    __tablename__ = "tasks"
    id = Column(Integer, primary_key=True, index=True)
    # Übersetzungen: {"en": "...", "de": "...", "fr": "..."}
    name = Column(JSON, nullable=False)
    description = Column(JSON(none_as_null=True))
    status = enum_column(TaskStatus, nullable=False, default=TaskStatus.PENDING, index=True)
    priority = enum_column(TaskPriority, nullable=False, default=TaskPriority.MEDIUM, index=True)
    due_date = Column(DateTime, index=True)
    parent_id = Column(Integer, ForeignKey("tasks.id"), index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    state = enum_column(LifecycleState, nullable=False, default=LifecycleState.ACTIVE, index=True)
    deleted_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="tasks")
    parent = relationship("TaskDB", remote_side=[id], back_populates="subtasks")
    subtasks = relationship("TaskDB", back_populates="parent")

    @property
    def is_subtask(self) -> bool:
        return self.parent_id is not None

    @property
    def is_deleted(self) -> bool:
        return self.state == LifecycleState.DELETED

    @property
    def is_overdue(self) -> bool:
        return (
            self.due_date is not None
            and self.due_date < utcnow()
            and self.status != TaskStatus.COMPLETED
        )

    def localized_name(self, locale: str):
        return localized(self.name, locale)

    def localized_description(self, locale: str):
        return localized(self.description, locale)

    def soft_delete(self):
        self.state = LifecycleState.DELETED
        self.deleted_at = utcnow()

    def restore(self):
        self.state = LifecycleState.ACTIVE
        self.deleted_at = None


def localized(translations, locale):
    if not translations:
        return None
    return translations.get(locale) or translations.get(FALLBACK_LOCALE)
