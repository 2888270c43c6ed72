#!/usr/bin/env python3
# config.py – rev-c3  (2026-10-19)
"""
A playlist's ordered track list plus its master volume.

Tracks are unique by title; insertion order is display order.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, List, Mapping, Optional

from logging_config import get_logger
from track          import Track
from utils          import is_number

logger = get_logger("config")


class Config:
    def __init__(self, volume: Optional[float] = None,
                 tracks: Optional[Iterable[Mapping[str, Any]]] = None):
        self.volume: float = 1.0
        self.tracks: List[Track] = []

        if volume is not None:
            self.set_volume(volume)
        for raw in tracks or ():
            if not isinstance(raw, Mapping) or not raw.get("title"):
                logger.warning("Config: skipping malformed track entry %r", raw)
                continue
            title = raw["title"]
            src   = raw.get("src") or ""
            src_dir = src[: -(len(title) + 1)] if src.endswith("/" + title) else ""
            self.add_track(title, src_dir, raw.get("options"))

    def __repr__(self):
        return f"<Config volume={self.volume} ({len(self.tracks)} tracks)>"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Config":
        return cls(raw.get("volume"), raw.get("tracks"))

    def to_dict(self) -> Dict[str, Any]:
        return {"volume": self.volume, "tracks": [t.to_dict() for t in self.tracks]}

    # ─────────────────────────────── volume
    def set_volume(self, volume: Any) -> bool:
        if not is_number(volume) or not 0 <= volume <= 1:
            logger.error("Config: set_volume() expects volume to be a float in range [0,1], got %r.", volume)
            return False
        self.volume = volume
        return True

    # ─────────────────────────────── tracks
    def get_track(self, title: str) -> Optional[Track]:
        if not title:
            logger.error("Config: get_track() expects title to be a non-empty string.")
            return None
        return next((t for t in self.tracks if t.title == title), None)

    def add_track(self, title: str, src_dir: Optional[str] = None,
                  options: Optional[Mapping[str, Any]] = None) -> Optional[Track]:
        """Append a new track; an existing title is left as it is."""
        if not isinstance(title, str) or not title:
            logger.error("Config: add_track() expects title to be a non-empty string.")
            return None
        existing = self.get_track(title)
        if existing is not None:
            return existing
        track = Track(title, src_dir, options)
        self.tracks.append(track)
        return track

    def remove_track(self, title: str) -> bool:
        if self.get_track(title) is None:
            logger.error("Config: remove_track() attempted to remove non-existent track %r.", title)
            return False
        self.tracks = [t for t in self.tracks if t.title != title]
        return True

    def edit_track(self, title: str, src_dir: Optional[str] = None,
                   options: Optional[Mapping[str, Any]] = None,
                   new_title: Optional[str] = None) -> Optional[Track]:
        """Update the track called *title*, adding it when missing.

        A rename onto a title another track already holds is refused.
        """
        track = self.get_track(title)
        if track is None:
            return self.add_track(new_title or title, src_dir, options)

        if new_title and new_title != title:
            if self.get_track(new_title) is not None:
                logger.error("Config: edit_track() cannot rename %r, %r already exists.", title, new_title)
            else:
                keep_dir = src_dir or track.src_dir
                track.set_title(new_title)
                track.set_src(keep_dir)
        if src_dir:
            track.set_src(src_dir)
        track.set_options(options)
        return track
