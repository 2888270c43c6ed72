#!/usr/bin/env python3
# utils.py – rev-u3  (2026-10-19)
"""
Pure helpers shared by every entity.

• slug()            – the one and only title → file-name derivation
• same()            – structural equality used by every diff-before-write
• valid_file_type() – supported audio extension whitelist
"""

from __future__ import annotations
import math, re
from typing import Any, Optional

from logging_config import ValidationError

SUPPORTED_TYPES = ("mp3", "m4a", "ogg", "wav")

_NAME_RE       = re.compile(r".*\.(" + "|".join(SUPPORTED_TYPES) + r")$", re.IGNORECASE)
_UNDERSCORE_RE = re.compile(r"""[\s\\/'"]+""")
_DASH_RE       = re.compile(r"[;&]+")

# ─────────────────────────── slug ────────────────────────────
def slug(name: str) -> str:
    """Return the file-name slug for *name*.

    Whitespace, slashes and quotes collapse to ``_``; ``;`` and ``&`` runs
    collapse to ``-``; the result is lower-cased.

    >>> slug("Track; One & Two")
    'track-_one_-_two'
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("slug() expects name to be a non-empty string")
    out = _UNDERSCORE_RE.sub("_", name.strip())
    out = _DASH_RE.sub("-", out)
    return out.lower()

# ─────────────────────── deep equality ───────────────────────
def is_number(v: Any) -> bool:
    """Finite int or float; bools do not count."""
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def _kind(v: Any) -> str:
    if isinstance(v, bool):
        return "bool"
    if isinstance(v, (int, float)):
        return "number"
    if isinstance(v, dict):
        return "object"
    if isinstance(v, (list, tuple)):
        return "array"
    return type(v).__name__


def same(a: Any, b: Any) -> bool:
    """Structural equality of two JSON-like values.

    Objects need the same key set (order ignored), arrays are compared
    position by position, and ``True`` never equals ``1``.
    """
    if _kind(a) != _kind(b):
        return False
    if isinstance(a, dict):
        if a.keys() != b.keys():
            return False
        return all(same(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)):
        return len(a) == len(b) and all(same(x, y) for x, y in zip(a, b))
    return a == b

# ───────────────────────── file types ────────────────────────
def valid_file_type(name: str) -> Optional[str]:
    """Return the lower-cased supported extension of *name*, else None."""
    if not name:
        return None
    m = _NAME_RE.match(name)
    return m.group(1).lower() if m else None


def format_time(total_seconds: float) -> str:
    """63 → '00:01:03'"""
    secs = max(0, int(total_seconds))
    hours, rest = divmod(secs, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"
