import json
import logging
from typing import Optional

from models import utcnow

logger = logging.getLogger(__name__)

GLOBAL_CHANNEL = "global_task_events"


def user_channel(user_id) -> str:
    return f"user_task_events:{user_id}"


class TaskEventPublisher:
    """
    Veröffentlicht Lebenszyklus-Events (created, updated, deleted, restored)
    auf dem Benutzerkanal und dem globalen Kanal.

    Fire-and-forget: Fehler werden geloggt, nie an den Aufrufer weitergegeben.
    """

    def __init__(self, cache):
        self.cache = cache

    def publish(self, event: str, task: dict, changes: Optional[dict] = None) -> bool:
        message = {
            "event": event,
            "task": task,
            "timestamp": utcnow().isoformat() + "Z",
        }
        if changes is not None:
            message["changes"] = changes
        try:
            payload = json.dumps(message, default=str)
        except (TypeError, ValueError) as e:
            logger.error("Could not serialize task event %s for task %s: %s", event, task.get("id"), e)
            return False

        ok = True
        for channel in (user_channel(task["user_id"]), GLOBAL_CHANNEL):
            if self.cache.publish(channel, payload) < 0:
                ok = False
                logger.warning("Failed to publish task event %s on %s (task %s)", event, channel, task.get("id"))
        if ok:
            logger.info("Task event published: %s task=%s user=%s", event, task.get("id"), task["user_id"])
        return ok
