import uuid

import redis


class FakeRedis:
    """
    In-Memory-Ersatz für redis.Redis (decode_responses=True) in Tests.

    - merkt sich veröffentlichte Nachrichten in `published`
    - `fail = True` lässt jede Operation mit ConnectionError scheitern
    """

    def __init__(self):
        self.store = {}
        self.sets = {}
        self.ttls = {}
        self.published = []
        self.fail = False

    def _maybe_fail(self):
        if self.fail:
            raise redis.ConnectionError("redis down")

    def get(self, key):
        self._maybe_fail()
        return self.store.get(key)

    def set(self, key, value, ex=None):
        self._maybe_fail()
        self.store[key] = value
        if ex:
            self.ttls[key] = ex
        return True

    def delete(self, *keys):
        self._maybe_fail()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            if self.sets.pop(key, None) is not None:
                removed += 1
        return removed

    def sadd(self, key, *values):
        self._maybe_fail()
        members = self.sets.setdefault(key, set())
        before = len(members)
        members.update(values)
        return len(members) - before

    def smembers(self, key):
        self._maybe_fail()
        return set(self.sets.get(key, set()))

    def expire(self, key, ttl):
        self._maybe_fail()
        self.ttls[key] = ttl
        return True

    def publish(self, channel, message):
        self._maybe_fail()
        self.published.append((channel, message))
        return 1

    def ping(self):
        self._maybe_fail()
        return True

    def close(self):
        pass


def create_random_user(client, password="testpassword123", **extra):
    """Registriert einen User mit zufälliger E-Mail. Gibt (token, email, user_id) zurück."""
    unique_email = f"test_{uuid.uuid4().hex}@example.com"
    payload = {"name": "Test User", "email": unique_email, "password": password}
    payload.update(extra)
    reg_response = client.post("/auth/register", json=payload)
    assert reg_response.status_code == 201, reg_response.text
    data = reg_response.json()
    return data["token"], unique_email, data["user"]["id"]


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}
