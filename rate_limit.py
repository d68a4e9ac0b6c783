"""
Drosselung der Auth-Endpunkte (Brute-Force-Schutz).

Schlüssel = sha1("endpunkt|ip|email"), festes Zeitfenster je Limit.
Ein erfolgreicher Login setzt den Zähler für seinen Schlüssel zurück.
Die allgemeine Drosselung pro IP für alle Routen übernimmt slowapi (dependencies.limiter).
"""

import hashlib
import logging
import math
import time

from limits import parse, storage, strategies

from config import RATE_LIMIT_STORAGE_URI, LOGIN_RATE_LIMIT, REGISTER_RATE_LIMIT, AUTH_RATE_LIMIT
from errors import RateLimitedError

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")


class AuthRateLimiter:
    def __init__(self, storage_uri: str = RATE_LIMIT_STORAGE_URI, limits=None, default: str = AUTH_RATE_LIMIT):
        self.storage = storage.storage_from_string(storage_uri)
        self.strategy = strategies.FixedWindowRateLimiter(self.storage)
        limits = limits or {"login": LOGIN_RATE_LIMIT, "register": REGISTER_RATE_LIMIT}
        self.limits = {endpoint: parse(value) for endpoint, value in limits.items()}
        self.default = parse(default)

    def limit_for(self, endpoint: str):
        return self.limits.get(endpoint, self.default)

    @staticmethod
    def key(endpoint: str, ip: str, email: str = "") -> str:
        raw = f"{endpoint}|{ip}|{(email or '').strip().lower()}"
        return hashlib.sha1(raw.encode("utf-8")).hexdigest()

    def check(self, endpoint: str, ip: str, email: str = "") -> None:
        """Zählt den Versuch und wirft RateLimitedError, wenn er über dem Limit liegt."""
        item = self.limit_for(endpoint)
        key = self.key(endpoint, ip, email)
        # hit() zählt und prüft in einem Schritt, parallele Anfragen sehen denselben Zähler
        if not self.strategy.hit(item, key):
            reset_at, _ = self.strategy.get_window_stats(item, key)
            retry_after = max(1, math.ceil(reset_at - time.time()))
            security_logger.warning("Auth rate limit exceeded: endpoint=%s ip=%s retry_after=%ss", endpoint, ip, retry_after)
            raise RateLimitedError(retry_after, endpoint=endpoint)

    def clear(self, endpoint: str, ip: str, email: str = "") -> None:
        self.strategy.clear(self.limit_for(endpoint), self.key(endpoint, ip, email))

    def reset(self) -> None:
        self.storage.reset()


auth_limiter = AuthRateLimiter()
