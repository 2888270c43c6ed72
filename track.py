#!/usr/bin/env python3
# track.py – rev-t4  (2026-10-19)
"""
One audio file in a playlist plus its playback options.

Every option goes through its own setter; a rejected value is logged and
the previous value is kept.
"""

from __future__ import annotations
import re
from typing import Any, Dict, Mapping, Optional

from logging_config import get_logger
from utils          import is_number

logger = get_logger("track")

DEFAULT_OPTIONS: Dict[str, Any] = {
    "volume":      1.0,
    "loop":        True,
    "delay":       20,
    "duration":    0,
    "start_point": 0,
    "end_point":   0,
}

_TYPE_RE = re.compile(r"\.([^.]+)$")


class Track:
    def __init__(self, title: str, src_dir: Optional[str] = None,
                 options: Optional[Mapping[str, Any]] = None):
        self.title     = ""
        self.file_type = ""
        self.src       = ""
        self.options: Dict[str, Any] = dict(DEFAULT_OPTIONS)

        self.set_title(title)
        self.set_options(options)
        self.set_src(src_dir)

    def __repr__(self):
        return f"<Track {self.title!r} ({self.file_type or '?'})>"

    # ─────────────────────────────── identity
    def set_title(self, title: str) -> bool:
        if not isinstance(title, str) or not title:
            logger.error("Track: set_title() expects title to be a non-empty string.")
            return False
        self.title = title
        m = _TYPE_RE.search(title)
        self.file_type = m.group(1) if m else ""
        return True

    def set_src(self, src_dir: Optional[str]) -> None:
        if not src_dir:
            return
        self.src = f"{src_dir}/{self.title}"

    @property
    def src_dir(self) -> str:
        """Directory part of ``src`` ('' until one was supplied)."""
        if not self.src or not self.src.endswith("/" + self.title):
            return ""
        return self.src[: -(len(self.title) + 1)]

    # ─────────────────────────────── options
    def set_options(self, options: Optional[Mapping[str, Any]]) -> None:
        """Apply every present field independently; absent ones are untouched."""
        if not options:
            return
        if "volume" in options:
            self.set_volume(options["volume"])
        if "loop" in options:
            self.set_loop(options["loop"])
        if "delay" in options:
            self.set_delay(options["delay"])
        if "duration" in options:
            self.set_duration(options["duration"])
        if "start_point" in options:
            self.set_start_point(options["start_point"])
        if "end_point" in options:
            self.set_end_point(options["end_point"])
        elif "duration" in options:
            self.set_end_point(options["duration"])

    def set_volume(self, volume: Any) -> bool:
        if not is_number(volume) or not 0 <= volume <= 1:
            logger.error("Track: set_volume() expects volume to be a float in range [0,1], got %r.", volume)
            return False
        self.options["volume"] = volume
        return True

    def set_loop(self, loop: Any) -> bool:
        if not isinstance(loop, bool):
            logger.error("Track: set_loop() expects loop to be a boolean, got %r.", loop)
            return False
        self.options["loop"] = loop
        return True

    def _set_non_negative(self, key: str, value: Any) -> bool:
        if not is_number(value) or value < 0:
            logger.error("Track: set_%s() expects %s to be a positive float, got %r.", key, key, value)
            return False
        self.options[key] = value
        return True

    def set_delay(self, delay: Any) -> bool:
        return self._set_non_negative("delay", delay)

    def set_duration(self, duration: Any) -> bool:
        return self._set_non_negative("duration", duration)

    def set_start_point(self, start_point: Any) -> bool:
        return self._set_non_negative("start_point", start_point)

    def set_end_point(self, end_point: Any) -> bool:
        return self._set_non_negative("end_point", end_point)

    # ─────────────────────────────── serialization
    def to_dict(self) -> Dict[str, Any]:
        return {
            "title":     self.title,
            "file_type": self.file_type,
            "src":       self.src,
            "options":   dict(self.options),
        }
