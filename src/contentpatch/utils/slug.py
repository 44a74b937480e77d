"""Slug helper used for branch names."""

from __future__ import annotations

import re
from typing import Pattern

_NON_ALNUM: Pattern[str] = re.compile(r"[^a-z0-9]+")


def slugify(value: str | None, *, fallback: str = "project", max_length: int = 20) -> str:
    """Lowercase ``value``, turn every non-alphanumeric run into ``-`` and cut to ``max_length``.

    The cut happens after normalisation, so a trailing ``-`` can survive; branch
    names tolerate it and keeping it preserves the exact prefix length.
    """
    source = (value or "").strip().lower()
    slug = _NON_ALNUM.sub("-", source)[:max_length]
    if not slug.strip("-"):
        slug = _NON_ALNUM.sub("-", fallback.lower())[:max_length] or "project"
    return slug
