"""
Filter-Engine für Aufgabenlisten.

TaskFilter beschreibt die Kriterien einer Listenabfrage; TaskQuery baut daraus
eine auf den Benutzer beschränkte, sortierte und paginierte SQLAlchemy-Query.

Cache-Vertrag (filter_signature):
    Die normalisierten Filterfelder werden in der festen Reihenfolge von
    SIGNATURE_FIELDS als [feld, wert]-Paare ausgegeben, gefolgt von
    ["locale", <aufgelöste Sprache>], kompakt als JSON serialisiert und mit
    SHA-256 gehasht. Schlüssel: user:{user_id}:tasks:{hexdigest}.
    Gleiche Filter ergeben immer denselben Schlüssel, jede Abweichung in
    einem Feld (auch page) einen anderen.
"""

import hashlib
import json
import logging
from datetime import datetime
from typing import Optional, Literal, List, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import String, case, func, or_
from sqlalchemy.orm import Session

from config import SUPPORTED_LOCALES, FALLBACK_LOCALE
from models import LifecycleState, to_naive_utc
from task_models import TaskDB, TaskStatus, TaskPriority

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("created_at", "updated_at", "due_date", "priority", "status", "name")

SIGNATURE_FIELDS = (
    "status",
    "priority",
    "parent_id",
    "hierarchy_level",
    "due_date_from",
    "due_date_to",
    "search",
    "search_locale",
    "locale_search",
    "include_completed",
    "include_deleted",
    "sort_by",
    "sort_direction",
    "page",
    "per_page",
)


class TaskFilter(BaseModel):
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    parent_id: Optional[int] = None
    hierarchy_level: Literal["root", "subtasks", "all"] = "all"
    due_date_from: Optional[datetime] = None
    due_date_to: Optional[datetime] = None
    search: Optional[str] = Field(default=None, max_length=255)
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=15, ge=1, le=100)
    sort_by: Literal["created_at", "updated_at", "due_date", "priority", "status", "name"] = "created_at"
    sort_direction: Literal["asc", "desc"] = "desc"
    include_completed: bool = False
    include_deleted: bool = False
    locale_search: bool = True
    search_locale: Optional[str] = None

    @field_validator("search")
    @classmethod
    def blank_search_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("search_locale")
    @classmethod
    def unsupported_locale_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lower()
        return v if v in SUPPORTED_LOCALES else None

    @field_validator("due_date_from", "due_date_to")
    @classmethod
    def naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_date_range(self):
        if self.due_date_from and self.due_date_to and self.due_date_from > self.due_date_to:
            raise ValueError("due_date_from must be before or equal to due_date_to")
        return self

    def normalized(self) -> List[Tuple[str, object]]:
        pairs = []
        for field in SIGNATURE_FIELDS:
            value = getattr(self, field)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, (TaskStatus, TaskPriority)):
                value = value.value
            pairs.append((field, value))
        return pairs


def filter_signature(filters: TaskFilter, locale: str) -> str:
    pairs = [list(p) for p in filters.normalized()]
    pairs.append(["locale", locale])
    encoded = json.dumps(pairs, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def listing_cache_key(user_id, filters: TaskFilter, locale: str) -> str:
    return f"user:{user_id}:tasks:{filter_signature(filters, locale)}"


def _translation(column, locale: str):
    return column[locale].as_string()


def _contains(expr, term: str, dialect: str):
    if dialect == "sqlite":
        # casefold wird in database.py pro Verbindung registriert
        return func.casefold(expr, type_=String).contains(term.casefold(), autoescape=True)
    return func.lower(expr, type_=String).contains(term.lower(), autoescape=True)


PRIORITY_RANK = case(
    *[(TaskDB.priority == p, rank) for rank, p in enumerate(TaskPriority)],
    else_=len(TaskPriority),
)
STATUS_RANK = case(
    *[(TaskDB.status == s, rank) for rank, s in enumerate(TaskStatus)],
    else_=len(TaskStatus),
)


class TaskQuery:
    def __init__(self, db: Session):
        self.db = db

    def search_clause(self, term: str, locale: str, locale_search: bool):
        """
        Case-insensitive Teilstring-Suche in name/description.

        locale_search=True: aktuelle Sprache, zusätzlich Fallback-Sprache
        wenn diese abweicht. Sonst: alle unterstützten Sprachen.
        """
        dialect = self.db.get_bind().dialect.name
        if locale_search:
            locales = [locale]
            if locale != FALLBACK_LOCALE:
                locales.append(FALLBACK_LOCALE)
        else:
            locales = list(SUPPORTED_LOCALES)
        clauses = []
        for loc in locales:
            clauses.append(_contains(_translation(TaskDB.name, loc), term, dialect))
            clauses.append(_contains(_translation(TaskDB.description, loc), term, dialect))
        return or_(*clauses)

    def build(self, user_id: int, filters: TaskFilter, locale: str):
        query = self.db.query(TaskDB).filter(TaskDB.user_id == user_id)

        if filters.status is not None:
            query = query.filter(TaskDB.status == filters.status)
        if filters.priority is not None:
            query = query.filter(TaskDB.priority == filters.priority)
        if filters.parent_id is not None:
            query = query.filter(TaskDB.parent_id == filters.parent_id)

        if filters.hierarchy_level == "root":
            query = query.filter(TaskDB.parent_id.is_(None))
        elif filters.hierarchy_level == "subtasks":
            query = query.filter(TaskDB.parent_id.isnot(None))

        if filters.due_date_from is not None:
            query = query.filter(TaskDB.due_date >= filters.due_date_from)
        if filters.due_date_to is not None:
            query = query.filter(TaskDB.due_date <= filters.due_date_to)

        if filters.search:
            search_locale = filters.search_locale or locale
            query = query.filter(self.search_clause(filters.search, search_locale, filters.locale_search))

        # status=completed gilt als ausdrückliche Anfrage nach erledigten Aufgaben
        if not filters.include_completed and filters.status != TaskStatus.COMPLETED:
            query = query.filter(TaskDB.status != TaskStatus.COMPLETED)
        if not filters.include_deleted:
            query = query.filter(TaskDB.state == LifecycleState.ACTIVE)

        return query

    def sort_expression(self, sort_by: str, locale: str):
        if sort_by == "priority":
            return PRIORITY_RANK
        if sort_by == "status":
            return STATUS_RANK
        if sort_by == "name":
            return func.coalesce(_translation(TaskDB.name, locale), _translation(TaskDB.name, FALLBACK_LOCALE))
        return getattr(TaskDB, sort_by)

    def paginate(self, user_id: int, filters: TaskFilter, locale: str):
        """Liefert (Aufgaben der Seite, Gesamtanzahl)."""
        query = self.build(user_id, filters, locale)
        total = query.order_by(None).count()

        expr = self.sort_expression(filters.sort_by, locale)
        order = expr.asc() if filters.sort_direction == "asc" else expr.desc()
        items = (
            query.order_by(order, TaskDB.id.asc())
            .offset((filters.page - 1) * filters.per_page)
            .limit(filters.per_page)
            .all()
        )
        logger.debug("Task query user=%s page=%s total=%s", user_id, filters.page, total)
        return items, total
