"""
services/locale_filter.py – Region detection from catalogue file names.

No-Intro / Redump names carry their region as a parenthesised tag, e.g.
``Tekken 3 (USA).7z``.  Titles tagged ``(World)`` or carrying no known tag
are treated as playable everywhere.
"""

from typing import Dict, Optional, Tuple

ENGLISH: str = "en"
JAPANESE: str = "jp"
EUROPEAN: str = "eu"
ALL: str = "*"

LOCALE_PATTERNS: Dict[str, Tuple[str, ...]] = {
    ENGLISH: ("(usa)", "(us)", "(world)", "(uk)", "(australia)", "(en)", "(english)"),
    JAPANESE: ("(japan)", "(jp)", "(ja)", "(japanese)", "(j)"),
    EUROPEAN: (
        "(europe)", "(eu)", "(germany)", "(france)", "(spain)", "(italy)",
        "(netherlands)", "(sweden)", "(de)", "(fr)", "(es)", "(it)",
    ),
}

LOCALE_NAMES: Dict[str, str] = {
    ENGLISH: "English (USA/Europe/World)",
    JAPANESE: "Japanese",
    EUROPEAN: "European",
    ALL: "All Regions",
}


def detect_locale(file_name: str) -> str:
    if not file_name:
        return ALL
    lower = file_name.lower()
    if "(world)" in lower:
        return ALL
    for locale, patterns in LOCALE_PATTERNS.items():
        if any(p in lower for p in patterns):
            return locale
    return ALL


def matches_locale(file_name: str, locale_filter: Optional[str]) -> bool:
    """English also admits European releases, which are usually in English."""
    if not locale_filter or locale_filter == ALL:
        return True
    game_locale = detect_locale(file_name)
    if game_locale == ALL:
        return True
    if locale_filter == ENGLISH:
        return game_locale in (ENGLISH, EUROPEAN)
    return game_locale == locale_filter


def is_valid_locale(locale: Optional[str]) -> bool:
    return not locale or locale in LOCALE_NAMES


def locale_name(locale: Optional[str]) -> str:
    if not locale:
        return LOCALE_NAMES[ALL]
    return LOCALE_NAMES.get(locale, locale)
