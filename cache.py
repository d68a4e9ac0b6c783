"""
Redis-Cache mit Circuit Breaker, plus spezialisierte Wrapper für
Benutzersprache und Aufgabenlisten.

Schlüssel (ohne Präfix):
  user_locale:{user_id}            bevorzugte Sprache, TTL 1h
  user:{user_id}:tasks:{sha256}    Ergebnisseite einer gefilterten Liste
  user:{user_id}:task_keys         Set aller Listen-Schlüssel des Benutzers
  user:{user_id}:task_stats        Statistik

Redis ist optional: fällt er aus, liefern alle Operationen "Miss" und die
Daten kommen direkt aus der Datenbank.
"""

import json
import logging
import time
from typing import Any, Optional, Set

import redis

logger = logging.getLogger(__name__)


class RedisCache:
    """Redis-Wrapper mit typisierten Operationen und Circuit Breaker."""

    def __init__(self, redis_url: str = "redis://localhost:6379/0", prefix: str = "planner:",
                 default_ttl: int = 300, client=None):
        self._redis_url = redis_url
        self._prefix = prefix
        self._default_ttl = default_ttl
        self._client = client
        self._available = client is not None

        # Circuit Breaker
        self._failure_count = 0
        self._failure_threshold = 5
        self._failure_window = 30  # Sekunden
        self._first_failure_time = 0.0
        self._circuit_open = False

    def connect(self) -> bool:
        try:
            self._client = redis.Redis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
            )
            self._client.ping()
            self._available = True
            self._circuit_open = False
            self._failure_count = 0
            logger.info("Redis connected (%s)", self._prefix)
            return True
        except redis.RedisError as e:
            logger.warning("Redis connection failed: %s", e)
            self._available = False
            return False

    def _check_circuit(self) -> bool:
        if self._circuit_open:
            if time.time() - self._first_failure_time > self._failure_window:
                self._circuit_open = False
                self._failure_count = 0
                return self.connect()
            return False
        return self._available

    def _record_failure(self, op: str, error: Exception) -> None:
        logger.debug("Redis %s failed: %s", op, error)
        now = time.time()
        if self._failure_count == 0:
            self._first_failure_time = now
        self._failure_count += 1

        if self._failure_count >= self._failure_threshold:
            elapsed = now - self._first_failure_time
            if elapsed <= self._failure_window:
                self._circuit_open = True
                logger.error("Redis circuit breaker OPEN: %d failures in %.1fs", self._failure_count, elapsed)
            else:
                self._failure_count = 1
                self._first_failure_time = now

    def _make_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    # --- Basis-Operationen ---

    def get(self, key: str) -> Optional[str]:
        """Wert lesen. None bei Miss oder Fehler."""
        if not self._check_circuit():
            return None
        try:
            return self._client.get(self._make_key(key))
        except redis.RedisError as e:
            self._record_failure("GET", e)
            return None

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        if not self._check_circuit():
            return False
        try:
            self._client.set(self._make_key(key), value, ex=ttl or self._default_ttl)
            return True
        except redis.RedisError as e:
            self._record_failure("SET", e)
            return False

    def delete(self, *keys: str) -> int:
        if not keys or not self._check_circuit():
            return 0
        try:
            return self._client.delete(*[self._make_key(k) for k in keys])
        except redis.RedisError as e:
            self._record_failure("DEL", e)
            return 0

    def get_json(self, key: str) -> Optional[Any]:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None

    def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError):
            return False
        return self.set(key, payload, ttl=ttl)

    # --- Sets ---

    def sadd(self, key: str, *values: str, ttl: Optional[int] = None) -> bool:
        if not self._check_circuit():
            return False
        try:
            full_key = self._make_key(key)
            self._client.sadd(full_key, *values)
            if ttl:
                self._client.expire(full_key, ttl)
            return True
        except redis.RedisError as e:
            self._record_failure("SADD", e)
            return False

    def smembers(self, key: str) -> Set[str]:
        if not self._check_circuit():
            return set()
        try:
            return set(self._client.smembers(self._make_key(key)))
        except redis.RedisError as e:
            self._record_failure("SMEMBERS", e)
            return set()

    # --- Pub/Sub ---

    def publish(self, channel: str, message: str) -> int:
        """Nachricht veröffentlichen (Kanal ohne Präfix). -1 bei Fehler."""
        if not self._check_circuit():
            return -1
        try:
            return self._client.publish(channel, message)
        except redis.RedisError as e:
            self._record_failure("PUBLISH", e)
            return -1

    # --- Health ---

    def ping(self) -> bool:
        if not self._client:
            return False
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except redis.RedisError as e:
                logger.debug("Redis close failed: %s", e)
            self._client = None
        self._available = False
        self._circuit_open = False
        self._failure_count = 0

    @property
    def is_available(self) -> bool:
        return self._available and not self._circuit_open


class UserLocaleCache:
    """Bevorzugte Sprache pro Benutzer (Key: user_locale:{id})."""

    def __init__(self, cache: RedisCache, ttl: int = 3600):
        self._cache = cache
        self._ttl = ttl

    @staticmethod
    def key(user_id) -> str:
        return f"user_locale:{user_id}"

    def get(self, user_id) -> Optional[str]:
        return self._cache.get(self.key(user_id))

    def put(self, user_id, locale: str) -> bool:
        return self._cache.set(self.key(user_id), locale, ttl=self._ttl)

    def forget(self, user_id) -> int:
        return self._cache.delete(self.key(user_id))


class TaskCache:
    """
    Listen- und Statistik-Cache pro Benutzer.

    Jeder gespeicherte Listen-Schlüssel wird im Set user:{id}:task_keys
    registriert, damit invalidate_user() alle gefilterten Listen des
    Benutzers löschen kann. Die TTL bleibt als Obergrenze bestehen.
    """

    def __init__(self, cache: RedisCache, list_ttl: int = 300, stats_ttl: int = 900):
        self._cache = cache
        self._list_ttl = list_ttl
        self._stats_ttl = stats_ttl

    @staticmethod
    def keys_set(user_id) -> str:
        return f"user:{user_id}:task_keys"

    @staticmethod
    def stats_key(user_id) -> str:
        return f"user:{user_id}:task_stats"

    def get_listing(self, key: str):
        return self._cache.get_json(key)

    def put_listing(self, user_id, key: str, payload) -> bool:
        if not self._cache.set_json(key, payload, ttl=self._list_ttl):
            return False
        # Set lebt etwas länger als die Einträge, die es referenziert
        return self._cache.sadd(self.keys_set(user_id), key, ttl=self._list_ttl * 2)

    def get_stats(self, user_id):
        return self._cache.get_json(self.stats_key(user_id))

    def put_stats(self, user_id, stats) -> bool:
        return self._cache.set_json(self.stats_key(user_id), stats, ttl=self._stats_ttl)

    def invalidate_user(self, user_id) -> int:
        keys = self._cache.smembers(self.keys_set(user_id))
        removed = self._cache.delete(self.keys_set(user_id), self.stats_key(user_id), *sorted(keys))
        logger.debug("Invalidated %d cache keys for user %s", removed, user_id)
        return removed
