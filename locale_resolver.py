"""
Ermittelt genau eine unterstützte Sprache pro Request.

Reihenfolge (erste unterstützte gewinnt):
    1. X-Locale Header
    2. gecachte Sprache des angemeldeten Benutzers
    3. `locale` Query- oder Body-Parameter
    4. Accept-Language (nach Qualität sortiert)
    5. Sprache aus der Session
    6. Standardsprache der Anwendung

Nicht unterstützte Werte gelten als "nicht angegeben", nie als Fehler.
"""

import logging
from typing import Callable, List, Optional, Tuple

from config import SUPPORTED_LOCALES, DEFAULT_LOCALE

logger = logging.getLogger(__name__)


def parse_accept_language(header: Optional[str]) -> List[Tuple[str, float]]:
    """
    Zerlegt z.B. "de-DE,de;q=0.9,en;q=0.8" in [("de", 1.0), ("de", 0.9), ("en", 0.8)].

    Die Sprache wird auf die ersten zwei Buchstaben (klein) gekürzt.
    Ungültige Qualitätswerte zählen als 0.
    """
    if not header:
        return []
    result = []
    for part in header.split(","):
        part = part.strip()
        if not part:
            continue
        lang, _, params = part.partition(";")
        quality = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                quality = float(params[2:])
            except ValueError:
                quality = 0.0
        code = lang.strip()[:2].lower()
        if code:
            result.append((code, quality))
    return result


class LocaleResolver:
    def __init__(self, supported=SUPPORTED_LOCALES, default: str = DEFAULT_LOCALE, user_locale_cache=None):
        self.supported = tuple(supported)
        self.default = default if default in self.supported else self.supported[0]
        self.user_locale_cache = user_locale_cache

    def normalize(self, candidate) -> Optional[str]:
        if not isinstance(candidate, str):
            return None
        value = candidate.strip().lower()
        return value if value in self.supported else None

    def from_accept_language(self, header: Optional[str]) -> Optional[str]:
        candidates = [
            (code, q) for code, q in parse_accept_language(header)
            if code in self.supported and q > 0
        ]
        if not candidates:
            return None
        # sorted() ist stabil: bei gleicher Qualität gewinnt die erste Angabe
        candidates = sorted(candidates, key=lambda c: c[1], reverse=True)
        return candidates[0][0]

    def user_locale(self, user_id, load_user_locale: Optional[Callable] = None) -> Optional[str]:
        """Sprache des Benutzers aus dem Cache; bei Miss aus dem Profil laden und cachen."""
        if user_id is None:
            return None
        cached = self.user_locale_cache.get(user_id) if self.user_locale_cache else None
        if cached is not None:
            return self.normalize(cached)
        if load_user_locale is None:
            return None
        locale = self.normalize(load_user_locale(user_id))
        if locale and self.user_locale_cache:
            self.user_locale_cache.put(user_id, locale)
        return locale

    def resolve(self, header_locale=None, user_id=None, load_user_locale=None,
                param_locale=None, accept_language=None, session_locale=None) -> str:
        # Lazy ausgewertet: jeder Schritt nur, wenn der vorige nichts lieferte
        steps = (
            lambda: self.normalize(header_locale),
            lambda: self.user_locale(user_id, load_user_locale),
            lambda: self.normalize(param_locale),
            lambda: self.from_accept_language(accept_language),
            lambda: self.normalize(session_locale),
        )
        for step in steps:
            locale = step()
            if locale:
                return locale
        return self.default
