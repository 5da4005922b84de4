"""Text processing helpers."""

from __future__ import annotations

import re

WHITESPACE_RE = re.compile(r"\s+")
_WORD_SPLIT_RE = re.compile(r"[\s_\-.]+")


def normalize(text: str) -> str:
    """Collapse whitespace and strip."""
    return WHITESPACE_RE.sub(" ", text).strip()


def excerpt(text: str, limit: int = 200) -> str:
    """Whitespace-normalized prefix of ``text``, ellipsized past ``limit``."""
    flat = normalize(text)
    if len(flat) <= limit:
        return flat
    return flat[: max(0, limit - 1)].rstrip() + "…"


def humanize_stem(file_name: str) -> str:
    """``graduation_day-2024.jpg`` -> ``graduation day 2024``."""
    stem = file_name.rsplit(".", 1)[0] if "." in file_name else file_name
    words = [word for word in _WORD_SPLIT_RE.split(stem) if word]
    return " ".join(words)
