from typing import Annotated

from fastapi import APIRouter, Depends, Query

from dependencies import get_current_user, get_locale, get_task_service, require_task_owner, require_body_parent_owner
from messages import trans
from models import User
from schemas import TaskCreate, TaskUpdate, TaskEnvelope, TaskListResponse, MessageResponse
from task_query import TaskFilter
from task_service import TaskService

router = APIRouter(
    prefix="/tasks",
    tags=["tasks"]
)


@router.get("", response_model=TaskListResponse)
def list_tasks(filters: Annotated[TaskFilter, Query()], user: User = Depends(get_current_user),
               service: TaskService = Depends(get_task_service), locale: str = Depends(get_locale)):
    """Gefilterte, sortierte und paginierte Aufgabenliste des Benutzers (gecacht)."""
    return service.list_tasks(user, filters, locale)


@router.get("/stats")
def task_stats(user: User = Depends(get_current_user), service: TaskService = Depends(get_task_service)):
    return {"data": service.statistics(user)}


@router.post("", response_model=TaskEnvelope, status_code=201, dependencies=[Depends(require_body_parent_owner)])
def create_task(task: TaskCreate, user: User = Depends(get_current_user),
                service: TaskService = Depends(get_task_service), locale: str = Depends(get_locale)):
    created = service.create(user, task, locale)
    return TaskEnvelope(data=created, message=trans("task.created", locale))


@router.get("/{task_id}", response_model=TaskEnvelope, dependencies=[Depends(require_task_owner)])
def read_task(task_id: int, user: User = Depends(get_current_user),
              service: TaskService = Depends(get_task_service), locale: str = Depends(get_locale)):
    return TaskEnvelope(data=service.show(user, task_id, locale))


@router.put("/{task_id}", response_model=TaskEnvelope,
            dependencies=[Depends(require_task_owner), Depends(require_body_parent_owner)])
def update_task(task_id: int, task: TaskUpdate, user: User = Depends(get_current_user),
                service: TaskService = Depends(get_task_service), locale: str = Depends(get_locale)):
    # Nur gesendete Felder werden geändert; null bei due_date/parent_id löscht den Wert
    updated = service.update(user, task_id, task, locale)
    return TaskEnvelope(data=updated, message=trans("task.updated", locale))


@router.delete("/{task_id}", response_model=MessageResponse, dependencies=[Depends(require_task_owner)])
def delete_task(task_id: int, user: User = Depends(get_current_user),
                service: TaskService = Depends(get_task_service), locale: str = Depends(get_locale)):
    service.delete(user, task_id)
    return MessageResponse(message=trans("task.deleted", locale))


@router.post("/{task_id}/restore", response_model=TaskEnvelope, dependencies=[Depends(require_task_owner)])
def restore_task(task_id: int, user: User = Depends(get_current_user),
                 service: TaskService = Depends(get_task_service), locale: str = Depends(get_locale)):
    restored = service.restore(user, task_id, locale)
    return TaskEnvelope(data=restored, message=trans("task.restored", locale))
