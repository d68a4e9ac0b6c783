from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict, Literal
from datetime import datetime
import bleach

from task_models import TaskStatus, TaskPriority
from config import SUPPORTED_LOCALES


def sanitize_text(v: Optional[str]) -> Optional[str]:
    if v:
        # Bleach entfernt alle HTML-Tags (tags=[]) und Attribute
        return bleach.clean(v, tags=[], attributes={}, strip=True).strip()
    return v


def sanitize_translations(v: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    """Bereinigt jede Übersetzung und entfernt leere Einträge."""
    if v is None:
        return None
    cleaned = {}
    for locale, text in v.items():
        text = sanitize_text(text)
        if text:
            cleaned[locale.strip().lower()] = text
    return cleaned


# --- Task Models ---
class TaskCreate(BaseModel):
    name: Dict[str, str]
    description: Optional[Dict[str, str]] = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    parent_id: Optional[int] = None

    @field_validator("name", "description")
    @classmethod
    def sanitize_input(cls, v):
        return sanitize_translations(v)


class TaskUpdate(BaseModel):
    """Teil-Update: nur tatsächlich gesendete Felder werden geändert."""

    name: Optional[Dict[str, str]] = None
    description: Optional[Dict[str, str]] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    parent_id: Optional[int] = None
    clear_due_date: bool = False
    clear_parent: bool = False

    @field_validator("name", "description")
    @classmethod
    def sanitize_input(cls, v):
        return sanitize_translations(v)

    def provided(self) -> Dict[str, object]:
        """Gesendete Felder ohne die Clear-Flags; explizites null bei due_date/parent_id heißt löschen."""
        fields = {}
        for key in ("name", "description", "status", "priority", "due_date", "parent_id"):
            if key in self.model_fields_set and getattr(self, key) is not None:
                fields[key] = getattr(self, key)
        if key_is_null(self, "description"):
            fields["description"] = None
        return fields

    @property
    def should_clear_due_date(self) -> bool:
        return self.clear_due_date or key_is_null(self, "due_date")

    @property
    def should_clear_parent(self) -> bool:
        return self.clear_parent or key_is_null(self, "parent_id")


def key_is_null(model: BaseModel, key: str) -> bool:
    return key in model.model_fields_set and getattr(model, key) is None


class ReorderRequest(BaseModel):
    subtask_ids: List[int] = Field(min_length=1)


class MoveRequest(BaseModel):
    new_parent_id: Optional[int] = None


class BulkSubtaskRequest(BaseModel):
    operation: Literal["complete", "delete", "restore", "update_status", "update_priority"]
    subtask_ids: List[int] = Field(min_length=1)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None

    @model_validator(mode="after")
    def check_payload(self):
        if self.operation == "update_status" and self.status is None:
            raise ValueError("status is required for update_status")
        if self.operation == "update_priority" and self.priority is None:
            raise ValueError("priority is required for update_priority")
        return self


class TaskOut(BaseModel):
    id: int
    name: Dict[str, str]
    description: Optional[Dict[str, str]] = None
    localized_name: Optional[str] = None
    localized_description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    parent_id: Optional[int] = None
    user_id: int
    position: int = 0
    is_subtask: bool
    is_overdue: bool
    is_deleted: bool
    completion_percentage: int = 0
    subtask_count: int = 0
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TaskEnvelope(BaseModel):
    data: TaskOut
    message: Optional[str] = None


class TaskListMeta(BaseModel):
    current_page: int
    per_page: int
    total: int
    last_page: int


class TaskListResponse(BaseModel):
    data: List[TaskOut]
    meta: TaskListMeta
    locale: str


class MessageResponse(BaseModel):
    message: str


# --- Auth / User Models ---
def _check_email(v: str) -> str:
    v = v.strip().lower()
    local, _, domain = v.partition("@")
    if not local or "." not in domain:
        raise ValueError("Invalid email format")
    return v


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(max_length=255)
    password: str = Field(min_length=8, max_length=128)
    preferred_language: Optional[str] = None
    timezone: str = Field(default="UTC", max_length=64)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("name")
    @classmethod
    def sanitize_name(cls, v: str) -> str:
        v = sanitize_text(v)
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("preferred_language")
    @classmethod
    def check_language(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in SUPPORTED_LOCALES:
            raise ValueError(f"Unsupported locale: {v}")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str
    remember: bool = False

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    preferred_language: str
    timezone: str
    notification_preferences: Dict[str, bool]
    created_at: datetime


class AuthResponse(BaseModel):
    message: str
    user: UserOut
    token: str
    token_type: str = "bearer"
    expires_at: datetime


class PreferencesUpdate(BaseModel):
    preferred_language: Optional[str] = None
    timezone: Optional[str] = Field(default=None, max_length=64)
    notification_preferences: Optional[Dict[str, bool]] = None

    @field_validator("preferred_language")
    @classmethod
    def check_language(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in SUPPORTED_LOCALES:
            raise ValueError(f"Unsupported locale: {v}")
        return v


class LocaleSwitch(BaseModel):
    locale: str

    @field_validator("locale")
    @classmethod
    def check_locale(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in SUPPORTED_LOCALES:
            raise ValueError(f"Unsupported locale: {v}")
        return v
