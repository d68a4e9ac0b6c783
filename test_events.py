import json
from unittest.mock import MagicMock

from cache import RedisCache
from events import TaskEventPublisher, GLOBAL_CHANNEL, user_channel
from fakes import create_random_user, auth_headers
from models import User
from notifications import NotificationDispatcher, SEND_TASK_EMAIL


TASK = {"id": 12, "user_id": 3, "name": {"en": "Buy milk", "de": "Milch kaufen"}}


def test_event_goes_to_user_and_global_channel(cache, fake_redis):
    publisher = TaskEventPublisher(cache)
    assert publisher.publish("updated", TASK, {"status": {"from": "pending", "to": "completed"}}) is True

    channels = [channel for channel, _ in fake_redis.published]
    assert channels == ["user_task_events:3", GLOBAL_CHANNEL]
    message = json.loads(fake_redis.published[0][1])
    assert message["event"] == "updated"
    assert message["task"]["id"] == 12
    assert message["changes"]["status"]["to"] == "completed"
    assert message["timestamp"].endswith("Z")


def test_event_without_changes_has_no_changes_key(cache, fake_redis):
    TaskEventPublisher(cache).publish("created", TASK)
    assert "changes" not in json.loads(fake_redis.published[0][1])


def test_publish_failure_is_swallowed(cache, fake_redis):
    fake_redis.fail = True
    assert TaskEventPublisher(cache).publish("created", TASK) is False


def test_user_channel_name():
    assert user_channel(42) == "user_task_events:42"


# --- Benachrichtigungen ---

def sample_user(**prefs):
    return User(id=3, name="Anna", email="anna@example.com", preferred_language="de",
                notification_preferences=prefs)


def test_dispatch_enqueues_email_with_localized_name():
    send = MagicMock()
    assert NotificationDispatcher(send=send, queue="mail").dispatch(sample_user(), TASK, "created") is True

    name, kwargs, queue = send.call_args[0]
    assert name == SEND_TASK_EMAIL
    assert queue == "mail"
    assert kwargs["template"] == "emails.tasks.created"
    assert kwargs["to"] == "anna@example.com"
    assert kwargs["context"]["task_name"] == "Milch kaufen"
    assert kwargs["context"]["locale"] == "de"


def test_dispatch_respects_preferences():
    send = MagicMock()
    dispatcher = NotificationDispatcher(send=send)
    assert dispatcher.dispatch(sample_user(task_created=False), TASK, "created") is False
    assert dispatcher.dispatch(sample_user(email_notifications=False), TASK, "completed") is False
    # task_deleted ist standardmäßig aus
    assert dispatcher.dispatch(sample_user(), TASK, "deleted") is False
    send.assert_not_called()


def test_dispatch_failure_is_logged_not_raised():
    send = MagicMock(side_effect=ConnectionError("broker down"))
    assert NotificationDispatcher(send=send).dispatch(sample_user(), TASK, "updated") is False


def test_unknown_action_is_ignored():
    send = MagicMock()
    assert NotificationDispatcher(send=send).dispatch(sample_user(), TASK, "exploded") is False
    send.assert_not_called()


# --- HTTP ---

def test_creating_task_publishes_and_notifies(client, fake_redis, send_mock):
    token, email, user_id = create_random_user(client)
    response = client.post("/tasks", json={"name": {"en": "Buy milk"}}, headers=auth_headers(token))
    assert response.status_code == 201

    channels = [channel for channel, _ in fake_redis.published]
    assert channels == [user_channel(user_id), GLOBAL_CHANNEL]
    event = json.loads(fake_redis.published[0][1])
    assert event["event"] == "created"
    assert event["task"]["name"] == {"en": "Buy milk"}

    send_mock.assert_called_once()
    name, kwargs, _ = send_mock.call_args[0]
    assert name == SEND_TASK_EMAIL
    assert kwargs["template"] == "emails.tasks.created"
    assert kwargs["to"] == email


def test_failed_validation_emits_nothing(client, fake_redis, send_mock):
    token, _, _ = create_random_user(client)
    response = client.post("/tasks", json={"name": {"de": "Nur Deutsch"}}, headers=auth_headers(token))
    assert response.status_code == 422
    assert fake_redis.published == []
    send_mock.assert_not_called()


def test_broken_broker_and_redis_do_not_fail_request(client, fake_redis, send_mock):
    token, _, _ = create_random_user(client)
    send_mock.side_effect = ConnectionError("broker down")
    fake_redis.fail = True

    response = client.post("/tasks", json={"name": {"en": "Still works"}}, headers=auth_headers(token))
    assert response.status_code == 201
    assert response.json()["data"]["localized_name"] == "Still works"


def test_completing_task_sends_updated_and_completed(client, send_mock):
    token, _, _ = create_random_user(client)
    headers = auth_headers(token)
    task = client.post("/tasks", json={"name": {"en": "Finish"}}, headers=headers).json()["data"]
    send_mock.reset_mock()

    client.put(f"/tasks/{task['id']}", json={"status": "completed"}, headers=headers)
    templates = [c[0][1]["template"] for c in send_mock.call_args_list]
    assert templates == ["emails.tasks.updated", "emails.tasks.completed"]
    changes = send_mock.call_args_list[0][0][1]["context"]["changes"]
    assert changes == {"status": {"from": "pending", "to": "completed"}}


def test_unavailable_cache_publishes_nothing():
    cache = RedisCache(redis_url="redis://localhost:1/0")
    assert cache.is_available is False
    assert TaskEventPublisher(cache).publish("created", TASK) is False
