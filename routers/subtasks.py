from typing import List

from fastapi import APIRouter, Depends

from dependencies import (
    get_current_user, get_locale, get_task_service,
    require_parent_owner, require_task_owner, require_body_parent_owner,
)
from messages import trans
from models import User
from schemas import TaskCreate, TaskOut, TaskEnvelope, ReorderRequest, MoveRequest, BulkSubtaskRequest
from task_service import TaskService

router = APIRouter(tags=["subtasks"])


@router.get("/tasks/{parent_id}/subtasks", dependencies=[Depends(require_parent_owner)])
def list_subtasks(parent_id: int, user: User = Depends(get_current_user),
                  service: TaskService = Depends(get_task_service), locale: str = Depends(get_locale)):
    """Aktive Unteraufgaben, sortiert nach Position."""
    return {"data": service.subtasks(user, parent_id, locale)}


@router.post("/tasks/{parent_id}/subtasks", response_model=TaskEnvelope, status_code=201,
             dependencies=[Depends(require_parent_owner)])
def create_subtask(parent_id: int, task: TaskCreate, user: User = Depends(get_current_user),
                   service: TaskService = Depends(get_task_service), locale: str = Depends(get_locale)):
    created = service.create_subtask(user, parent_id, task, locale)
    return TaskEnvelope(data=created, message=trans("task.created", locale))


@router.put("/tasks/{parent_id}/subtasks/reorder", dependencies=[Depends(require_parent_owner)])
def reorder_subtasks(parent_id: int, payload: ReorderRequest, user: User = Depends(get_current_user),
                     service: TaskService = Depends(get_task_service), locale: str = Depends(get_locale)):
    """Neue Reihenfolge; subtask_ids muss genau die aktiven Unteraufgaben enthalten."""
    data: List[TaskOut] = service.reorder_subtasks(user, parent_id, payload.subtask_ids, locale)
    return {"data": data, "message": trans("task.subtasks_reordered", locale)}


@router.post("/tasks/{parent_id}/subtasks/bulk", dependencies=[Depends(require_parent_owner)])
def bulk_subtasks(parent_id: int, payload: BulkSubtaskRequest, user: User = Depends(get_current_user),
                  service: TaskService = Depends(get_task_service), locale: str = Depends(get_locale)):
    affected = service.bulk_subtasks(user, parent_id, payload)
    return {"affected": affected, "message": trans("task.bulk_done", locale, count=affected)}


@router.put("/subtasks/{task_id}/move", response_model=TaskEnvelope,
            dependencies=[Depends(require_task_owner), Depends(require_body_parent_owner)])
def move_subtask(task_id: int, payload: MoveRequest, user: User = Depends(get_current_user),
                 service: TaskService = Depends(get_task_service), locale: str = Depends(get_locale)):
    """Hängt eine Aufgabe unter einen anderen Parent oder macht sie (new_parent_id=null) zur Wurzel."""
    moved = service.move_subtask(user, task_id, payload.new_parent_id, locale)
    return TaskEnvelope(data=moved, message=trans("task.subtask_moved", locale))
