from __future__ import annotations

import re
from typing import Callable, Dict, List

from pypinyin import Style, lazy_pinyin
from unidecode import unidecode

from .config import ASCII_ALNUM, CJK_IDEOGRAPH, NOTE_SUFFIX

NameStrategy = Callable[[str], str]

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def _reading(char: str) -> str:
    """
    Tone-free latin reading of one ideograph.

    pypinyin first, unidecode when pypinyin has no entry, and the code point
    (`u4e4a`) as a last resort so every ideograph yields one segment.
    """
    for candidate in (
        "".join(lazy_pinyin(char, style=Style.NORMAL, errors="ignore")),
        unidecode(char),
    ):
        reading = _NON_SLUG.sub("", candidate.lower())
        if reading:
            return reading
    return f"u{ord(char):04x}"


def _join_segments(parts: List[str]) -> str:
    return re.sub(r"-+", "-", "-".join(parts)).strip("-").lower()


def transliterate_slug(text: str) -> str:
    """
    Turn a filename stem into a slug, one pinyin syllable per CJK ideograph.

        >>> transliterate_slug("我的 Notes v2.md")
        'wo-de-notes-v2'

    Consecutive ASCII letters/digits stay together as one segment; anything
    else acts as a separator. Returns "" when nothing usable is left.
    """
    clean = NOTE_SUFFIX.sub("", text)
    parts: List[str] = []
    buffer = ""

    for char in clean:
        if CJK_IDEOGRAPH.match(char):
            if buffer:
                parts.append(buffer)
                buffer = ""
            parts.append(_reading(char))
        elif ASCII_ALNUM.match(char):
            buffer += char
        else:
            if buffer:
                parts.append(buffer)
                buffer = ""
            parts.append("-")

    if buffer:
        parts.append(buffer)

    return _join_segments(parts)


def sanitize_slug(text: str) -> str:
    """Whitespace/punctuation clean-up only; non-ASCII content is dropped."""
    clean = NOTE_SUFFIX.sub("", text)
    return _NON_SLUG.sub("-", clean.lower()).strip("-")


NAME_STRATEGIES: Dict[str, NameStrategy] = {
    "transliterate": transliterate_slug,
    "sanitize": sanitize_slug,
}


def get_name_strategy(name: str) -> NameStrategy:
    try:
        return NAME_STRATEGIES[name.lower()]
    except KeyError:
        raise ValueError(
            f"unknown naming strategy '{name}'"
            f" (expected one of {tuple(NAME_STRATEGIES)})"
        ) from None
