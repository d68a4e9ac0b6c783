"""
E-Mail-Benachrichtigungen über Celery.

Hier wird nur eingereiht; Rendern und Zustellen übernimmt ein externer Worker,
der die Task `notifications.send_task_email` konsumiert.
"""

import logging
from typing import Callable, Optional

from celery import Celery

from config import CELERY_BROKER_URL, NOTIFICATION_QUEUE
from task_models import localized

logger = logging.getLogger(__name__)

SEND_TASK_EMAIL = "notifications.send_task_email"

TEMPLATES = {
    "created": "emails.tasks.created",
    "updated": "emails.tasks.updated",
    "completed": "emails.tasks.completed",
    "deleted": "emails.tasks.deleted",
}

_celery_app: Optional[Celery] = None


def get_celery_app() -> Celery:
    global _celery_app
    if _celery_app is None:
        app = Celery("planner", broker=CELERY_BROKER_URL)
        app.conf.update(
            task_serializer="json",
            accept_content=["json"],
            timezone="UTC",
            enable_utc=True,
            task_default_queue=NOTIFICATION_QUEUE,
            task_routes={SEND_TASK_EMAIL: {"queue": NOTIFICATION_QUEUE}},
        )
        _celery_app = app
    return _celery_app


def celery_send(name: str, kwargs: dict, queue: str):
    return get_celery_app().send_task(name, kwargs=kwargs, queue=queue, retry=False)


class NotificationDispatcher:
    def __init__(self, send: Optional[Callable] = None, queue: str = NOTIFICATION_QUEUE):
        self.send = send or celery_send
        self.queue = queue

    def dispatch(self, user, task: dict, action: str, changes: Optional[dict] = None) -> bool:
        """Reiht eine Mail ein, falls der Benutzer sie wünscht. Fehler werden nur geloggt."""
        if action not in TEMPLATES:
            logger.error("Unknown notification action: %s", action)
            return False
        if not user.wants_notification(f"task_{action}"):
            logger.debug("User %s opted out of task_%s notifications", user.id, action)
            return False

        locale = user.preferred_language
        context = {
            "task": task,
            "task_name": localized(task.get("name"), locale),
            "recipient": {"id": user.id, "name": user.name, "email": user.email},
            "locale": locale,
            "changes": changes or {},
        }
        try:
            self.send(SEND_TASK_EMAIL, {"template": TEMPLATES[action], "to": user.email, "context": context}, self.queue)
        except Exception as e:
            # Broker nicht erreichbar o.ä.: kein Retry, Request läuft weiter
            logger.error("Failed to enqueue %s notification for task %s: %s", action, task.get("id"), e)
            return False
        logger.info("Queued %s notification for task %s (user %s)", action, task.get("id"), user.id)
        return True
