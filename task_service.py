"""
Aufgaben-Hierarchie: Anlegen, Teil-Update, Soft-Delete, Wiederherstellen,
Unteraufgaben und Statistik, immer auf einen Benutzer beschränkt.

Regeln:
- name enthält mindestens die Fallback-Sprache ("en")
- maximale Tiefe 2: eine Unteraufgabe hat immer eine Wurzelaufgabe als Parent,
  eine Aufgabe mit Unteraufgaben kann selbst keine Unteraufgabe werden
- eine Aufgabe ist nie ihr eigener Parent
- Löschen ist ein Soft-Delete ohne Kaskade

Jede Änderung läuft in einer Transaktion zusammen mit der Cache-Invalidierung.
Events und Benachrichtigungen werden erst nach dem Commit ausgelöst.
"""

import logging
import math
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from config import SUPPORTED_LOCALES, FALLBACK_LOCALE
from errors import (
    TaskValidationError,
    InvalidTaskHierarchyError,
    TaskNotFoundError,
    ParentTaskNotFoundError,
)
from models import LifecycleState, utcnow, to_naive_utc
from schemas import TaskCreate, TaskUpdate, TaskOut, BulkSubtaskRequest
from task_models import TaskDB, TaskStatus, TaskPriority
from task_query import TaskFilter, TaskQuery, listing_cache_key

logger = logging.getLogger(__name__)

TRACKED_FIELDS = ("name", "description", "status", "priority", "due_date", "parent_id")
NAME_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 1000


def completion_percentage(completed: int, total: int) -> int:
    if not total:
        return 0
    # kaufmännisch runden (0.5 aufwärts)
    return int(math.floor(100 * completed / total + 0.5))


def _diff_value(value):
    if isinstance(value, (TaskStatus, TaskPriority)):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def to_schema(task: TaskDB, locale: str, counts: Optional[Dict[int, Tuple[int, int]]] = None) -> TaskOut:
    total, completed = (counts or {}).get(task.id, (0, 0))
    return TaskOut(
        id=task.id,
        name=task.name,
        description=task.description,
        localized_name=task.localized_name(locale),
        localized_description=task.localized_description(locale),
        status=task.status,
        priority=task.priority,
        due_date=task.due_date,
        parent_id=task.parent_id,
        user_id=task.user_id,
        position=task.position,
        is_subtask=task.is_subtask,
        is_overdue=task.is_overdue,
        is_deleted=task.is_deleted,
        completion_percentage=completion_percentage(completed, total),
        subtask_count=total,
        deleted_at=task.deleted_at,
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


class TaskService:
    def __init__(self, db: Session, cache, publisher, notifier):
        self.db = db
        self.cache = cache
        self.publisher = publisher
        self.notifier = notifier

    # --- Lesen ---

    def _scoped(self, user_id: int, include_deleted: bool = False):
        query = self.db.query(TaskDB).filter(TaskDB.user_id == user_id)
        if not include_deleted:
            query = query.filter(TaskDB.state == LifecycleState.ACTIVE)
        return query

    def get(self, user, task_id: int, include_deleted: bool = False) -> TaskDB:
        task = self._scoped(user.id, include_deleted).filter(TaskDB.id == task_id).first()
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found", task_id=task_id)
        return task

    def subtask_counts(self, task_ids: List[int]) -> Dict[int, Tuple[int, int]]:
        """{parent_id: (aktive Unteraufgaben, davon erledigt)} in einer Abfrage."""
        if not task_ids:
            return {}
        rows = (
            self.db.query(
                TaskDB.parent_id,
                func.count(TaskDB.id),
                func.sum(case((TaskDB.status == TaskStatus.COMPLETED, 1), else_=0)),
            )
            .filter(TaskDB.parent_id.in_(task_ids), TaskDB.state == LifecycleState.ACTIVE)
            .group_by(TaskDB.parent_id)
            .all()
        )
        return {parent_id: (total, int(completed or 0)) for parent_id, total, completed in rows}

    def serialize(self, task: TaskDB, locale: str) -> TaskOut:
        return to_schema(task, locale, self.subtask_counts([task.id]))

    def snapshot(self, task: TaskDB) -> dict:
        return self.serialize(task, FALLBACK_LOCALE).model_dump(mode="json")

    def show(self, user, task_id: int, locale: str) -> TaskOut:
        return self.serialize(self.get(user, task_id), locale)

    def list_tasks(self, user, filters: TaskFilter, locale: str) -> dict:
        key = listing_cache_key(user.id, filters, locale)
        cached = self.cache.get_listing(key)
        if cached is not None:
            logger.debug("Task listing cache hit: %s", key)
            return cached

        items, total = TaskQuery(self.db).paginate(user.id, filters, locale)
        counts = self.subtask_counts([t.id for t in items])
        payload = {
            "data": [to_schema(t, locale, counts).model_dump(mode="json") for t in items],
            "meta": {
                "current_page": filters.page,
                "per_page": filters.per_page,
                "total": total,
                "last_page": max(1, math.ceil(total / filters.per_page)),
            },
            "locale": locale,
        }
        self.cache.put_listing(user.id, key, payload)
        return payload

    def statistics(self, user) -> dict:
        cached = self.cache.get_stats(user.id)
        if cached is not None:
            return cached

        active = self._scoped(user.id)
        by_status = {s.value: 0 for s in TaskStatus}
        rows = (
            active.with_entities(TaskDB.status, func.count(TaskDB.id))
            .group_by(TaskDB.status)
            .all()
        )
        for status, count in rows:
            by_status[status.value] = count
        total = sum(by_status.values())
        root_count = active.filter(TaskDB.parent_id.is_(None)).count()
        overdue = active.filter(
            TaskDB.due_date.isnot(None),
            TaskDB.due_date < utcnow(),
            TaskDB.status != TaskStatus.COMPLETED,
        ).count()

        stats = {
            "total": total,
            "by_status": by_status,
            "root_tasks": root_count,
            "subtasks": total - root_count,
            "overdue": overdue,
            "completion_rate": completion_percentage(by_status[TaskStatus.COMPLETED.value], total),
        }
        self.cache.put_stats(user.id, stats)
        return stats

    def subtasks(self, user, parent_id: int, locale: str) -> List[TaskOut]:
        parent = self.get(user, parent_id)
        children = (
            self._scoped(user.id)
            .filter(TaskDB.parent_id == parent.id)
            .order_by(TaskDB.position.asc(), TaskDB.id.asc())
            .all()
        )
        return [to_schema(c, locale) for c in children]

    # --- Validierung ---

    @staticmethod
    def _check_translations(errors, field, values, required, max_length):
        values = values or {}
        for loc in values:
            if loc not in SUPPORTED_LOCALES:
                errors.setdefault(f"{field}.{loc}", []).append("task.validation.locale_unsupported")
        if required and not values.get(FALLBACK_LOCALE):
            errors.setdefault(f"{field}.{FALLBACK_LOCALE}", []).append("task.validation.name_required")
        for loc, text in values.items():
            if len(text) > max_length:
                errors.setdefault(f"{field}.{loc}", []).append(f"task.validation.{field}_max")

    @staticmethod
    def _check_enum(errors, enum_cls, field, value):
        try:
            return enum_cls(value)
        except ValueError:
            errors.setdefault(field, []).append(f"task.validation.{field}_invalid")
            return None

    @staticmethod
    def _check_due_date(errors, value):
        value = to_naive_utc(value)
        if value is not None and value <= utcnow():
            errors.setdefault("due_date", []).append("task.validation.due_date_future")
        return value

    def validate_parent(self, user_id: int, parent_id: int, task: Optional[TaskDB] = None) -> TaskDB:
        """
        Prüft, ob `parent_id` als Parent für `task` (oder eine neue Aufgabe) taugt.

        Raises:
            InvalidTaskHierarchyError: Selbstreferenz, Parent ist selbst Unteraufgabe,
                oder `task` hat eigene Unteraufgaben.
            ParentTaskNotFoundError: Parent existiert nicht (für diesen Benutzer) oder ist gelöscht.
        """
        if task is not None and task.id == parent_id:
            raise InvalidTaskHierarchyError(
                "A task cannot be its own parent", message_key="task.self_parent",
                reason="self_parent", task_id=task.id,
            )
        parent = self._scoped(user_id).filter(TaskDB.id == parent_id).first()
        if parent is None:
            raise ParentTaskNotFoundError(f"Parent task {parent_id} not found", parent_id=parent_id)
        if parent.parent_id is not None:
            raise InvalidTaskHierarchyError(
                "Cannot create subtask of a subtask. Maximum nesting level is 2",
                message_key="task.max_depth", reason="max_depth", parent_id=parent_id,
            )
        if task is not None:
            # auch gelöschte Kinder zählen, sonst könnte ein Restore Tiefe 3 erzeugen
            has_children = self.db.query(TaskDB.id).filter(TaskDB.parent_id == task.id).first() is not None
            if has_children:
                raise InvalidTaskHierarchyError(
                    "A task with subtasks cannot become a subtask",
                    message_key="task.has_subtasks", reason="has_subtasks", task_id=task.id,
                )
        return parent

    def _next_position(self, user_id: int, parent_id: Optional[int]) -> int:
        query = self.db.query(func.max(TaskDB.position)).filter(TaskDB.user_id == user_id)
        if parent_id is None:
            query = query.filter(TaskDB.parent_id.is_(None))
        else:
            query = query.filter(TaskDB.parent_id == parent_id)
        current = query.scalar()
        return 0 if current is None else current + 1

    # --- Schreiben ---

    @contextmanager
    def _unit_of_work(self, user_id: int):
        """Schreibzugriff + Cache-Invalidierung atomar; bei Fehler Rollback."""
        try:
            yield
            self.db.flush()
            self.cache.invalidate_user(user_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _emit(self, user, event: str, task: TaskDB, changes: Optional[dict] = None, notify=()):
        snapshot = self.snapshot(task)
        self.publisher.publish(event, snapshot, changes)
        for action in notify:
            self.notifier.dispatch(user, snapshot, action, changes)

    def create(self, user, data: TaskCreate, locale: str) -> TaskOut:
        errors: Dict[str, List[str]] = {}
        self._check_translations(errors, "name", data.name, True, NAME_MAX_LENGTH)
        self._check_translations(errors, "description", data.description, False, DESCRIPTION_MAX_LENGTH)
        status = self._check_enum(errors, TaskStatus, "status", data.status)
        priority = self._check_enum(errors, TaskPriority, "priority", data.priority)
        due_date = self._check_due_date(errors, data.due_date)
        if errors:
            raise TaskValidationError(errors)

        with self._unit_of_work(user.id):
            if data.parent_id is not None:
                self.validate_parent(user.id, data.parent_id)
            task = TaskDB(
                name=data.name,
                description=data.description or None,
                status=status,
                priority=priority,
                due_date=due_date,
                parent_id=data.parent_id,
                user_id=user.id,
                position=self._next_position(user.id, data.parent_id),
                state=LifecycleState.ACTIVE,
            )
            self.db.add(task)

        logger.info("Task created: id=%s user=%s parent=%s", task.id, user.id, task.parent_id)
        self._emit(user, "created", task, notify=("created",))
        return self.serialize(task, locale)

    def update(self, user, task_id: int, patch: TaskUpdate, locale: str) -> TaskOut:
        task = self.get(user, task_id)
        fields = patch.provided()

        errors: Dict[str, List[str]] = {}
        if "name" in fields:
            self._check_translations(errors, "name", fields["name"], True, NAME_MAX_LENGTH)
        if fields.get("description"):
            self._check_translations(errors, "description", fields["description"], False, DESCRIPTION_MAX_LENGTH)
        if "status" in fields:
            fields["status"] = self._check_enum(errors, TaskStatus, "status", fields["status"])
        if "priority" in fields:
            fields["priority"] = self._check_enum(errors, TaskPriority, "priority", fields["priority"])
        if "due_date" in fields and not patch.should_clear_due_date:
            fields["due_date"] = self._check_due_date(errors, fields["due_date"])
        if errors:
            raise TaskValidationError(errors)

        if patch.should_clear_due_date:
            fields["due_date"] = None
        if patch.should_clear_parent:
            fields["parent_id"] = None
        if "description" in fields and not fields["description"]:
            fields["description"] = None

        old = {f: getattr(task, f) for f in TRACKED_FIELDS}
        with self._unit_of_work(user.id):
            new_parent = fields.get("parent_id", task.parent_id)
            if new_parent != task.parent_id:
                if new_parent is not None:
                    self.validate_parent(user.id, new_parent, task)
                task.position = self._next_position(user.id, new_parent)
            for field, value in fields.items():
                setattr(task, field, value)

        changes = {
            f: {"from": _diff_value(old[f]), "to": _diff_value(getattr(task, f))}
            for f in TRACKED_FIELDS
            if old[f] != getattr(task, f)
        }
        notify = []
        if changes:
            notify.append("updated")
        if "status" in changes and task.status == TaskStatus.COMPLETED:
            notify.append("completed")

        logger.info("Task updated: id=%s user=%s fields=%s", task.id, user.id, sorted(changes))
        self._emit(user, "updated", task, changes, notify=notify)
        return self.serialize(task, locale)

    def delete(self, user, task_id: int) -> None:
        task = self.get(user, task_id)
        with self._unit_of_work(user.id):
            task.soft_delete()
        logger.info("Task deleted: id=%s user=%s", task.id, user.id)
        self._emit(user, "deleted", task, notify=("deleted",))

    def restore(self, user, task_id: int, locale: str) -> TaskOut:
        task = self.get(user, task_id, include_deleted=True)
        if task.is_deleted:
            with self._unit_of_work(user.id):
                task.restore()
            logger.info("Task restored: id=%s user=%s", task.id, user.id)
            self._emit(user, "restored", task)
        return self.serialize(task, locale)

    # --- Unteraufgaben ---

    def create_subtask(self, user, parent_id: int, data: TaskCreate, locale: str) -> TaskOut:
        return self.create(user, data.model_copy(update={"parent_id": parent_id}), locale)

    def move_subtask(self, user, task_id: int, new_parent_id: Optional[int], locale: str) -> TaskOut:
        if new_parent_id is None:
            patch = TaskUpdate(clear_parent=True)
        else:
            patch = TaskUpdate(parent_id=new_parent_id)
        return self.update(user, task_id, patch, locale)

    def reorder_subtasks(self, user, parent_id: int, subtask_ids: List[int], locale: str) -> List[TaskOut]:
        parent = self.get(user, parent_id)
        children = self._scoped(user.id).filter(TaskDB.parent_id == parent.id).all()
        by_id = {c.id: c for c in children}
        if len(set(subtask_ids)) != len(subtask_ids) or set(subtask_ids) != set(by_id):
            raise TaskValidationError({"subtask_ids": ["task.validation.subtask_ids_invalid"]})

        with self._unit_of_work(user.id):
            for position, sid in enumerate(subtask_ids):
                by_id[sid].position = position
        logger.info("Subtasks reordered: parent=%s user=%s", parent.id, user.id)
        return [to_schema(by_id[sid], locale) for sid in subtask_ids]

    def bulk_subtasks(self, user, parent_id: int, request: BulkSubtaskRequest) -> int:
        """Sammelaktion auf Unteraufgaben von `parent_id`; alles oder nichts."""
        parent = self.get(user, parent_id)
        restoring = request.operation == "restore"
        ids = set(request.subtask_ids)
        tasks = (
            self._scoped(user.id, include_deleted=restoring)
            .filter(TaskDB.parent_id == parent.id, TaskDB.id.in_(ids))
            .order_by(TaskDB.id.asc())
            .all()
        )
        if {t.id for t in tasks} != ids:
            raise TaskValidationError({"subtask_ids": ["task.validation.subtask_ids_invalid"]})

        target_status = TaskStatus.COMPLETED if request.operation == "complete" else request.status
        pending = []
        with self._unit_of_work(user.id):
            for task in tasks:
                if request.operation == "delete":
                    task.soft_delete()
                    pending.append((task, "deleted", None, ("deleted",)))
                elif restoring:
                    if task.is_deleted:
                        task.restore()
                        pending.append((task, "restored", None, ()))
                elif request.operation in ("complete", "update_status"):
                    if task.status != target_status:
                        change = {"status": {"from": task.status.value, "to": target_status.value}}
                        task.status = target_status
                        notify = ("updated", "completed") if target_status == TaskStatus.COMPLETED else ("updated",)
                        pending.append((task, "updated", change, notify))
                elif request.operation == "update_priority":
                    if task.priority != request.priority:
                        change = {"priority": {"from": task.priority.value, "to": request.priority.value}}
                        task.priority = request.priority
                        pending.append((task, "updated", change, ("updated",)))

        logger.info("Bulk %s on %d subtasks of %s (user %s)", request.operation, len(pending), parent.id, user.id)
        for task, event, changes, notify in pending:
            self._emit(user, event, task, changes, notify=notify)
        return len(pending)
