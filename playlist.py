#!/usr/bin/env python3
# playlist.py – rev-p5  (2026-10-19)
"""
Titled Config with a file identity.

• slug is derived from the title and names ``<slug>.playlist.json``
• old_slug remembers the file name of an unsaved rename
• save() only writes when the stored JSON differs from the model
"""

from __future__ import annotations
from typing import Any, Callable, Dict, Mapping, Optional, Union

from config         import Config
from logging_config import ValidationError, finish, get_logger
from storage        import DataStore
from utils          import slug as make_slug

logger = get_logger("playlist")

OnDone = Optional[Callable[..., None]]


class Playlist:
    def __init__(self, title: str, config: Union[Config, Mapping[str, Any], None] = None,
                 store: Optional[DataStore] = None):
        self.title    = ""
        self.old_slug = ""
        self.slug     = ""
        self.config   = Config()
        self.store    = store

        self.set_title(title)
        if config is not None:
            self.set_config(config)

    def __repr__(self):
        return f"<Playlist {self.title!r} ({len(self.config.tracks)} tracks)>"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], store: Optional[DataStore] = None) -> "Playlist":
        return cls(raw.get("title") or "", raw.get("config") or {}, store=store)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title":    self.title,
            "old_slug": self.old_slug,
            "slug":     self.slug,
            "config":   self.config.to_dict(),
        }

    # ─────────────────────────────── setters
    def set_title(self, title: str) -> bool:
        if not isinstance(title, str) or not title.strip():
            logger.error("Playlist: set_title() expects title to be a non-empty string.")
            return False
        if title == self.title:
            return True

        previous  = self.slug
        self.title = title
        self.slug  = make_slug(title)
        if self.old_slug == self.slug:
            self.old_slug = ""              # renamed back before the next save was queued
        elif not self.old_slug and previous and previous != self.slug:
            self.old_slug = previous
        return True

    def set_config(self, config: Union[Config, Mapping[str, Any]]) -> bool:
        if isinstance(config, Config):
            config = config.to_dict()
        if not isinstance(config, Mapping):
            logger.error("Playlist: set_config() expects config to be a mapping, got %r.", config)
            return False
        self.config = Config.from_dict(config)
        return True

    # ─────────────────────────────── persistence
    def _require_store(self, on_done: OnDone) -> bool:
        if self.store is None:
            finish(on_done, ValidationError(f"Playlist {self.title!r} has no data store"),
                   logger=logger)
            return False
        return True

    def save(self, on_done: OnDone = None) -> None:
        """Write ``<slug>.playlist.json`` if it differs, renaming first if needed."""
        if not self._require_store(on_done):
            return
        data     = self.to_dict()
        old_slug = self.old_slug
        # jobs run in submission order: once queued, the file is at self.slug
        self.old_slug = ""

        def _done(_wrote, err):
            # a failed rename restores old_slug so the next save retries it
            if err is not None and old_slug and not self.old_slug and old_slug != self.slug:
                self.old_slug = old_slug
            finish(on_done, err, logger=logger)

        self.store.submit(self.store.write_playlist, data, old_slug, on_done=_done)

    def remove(self, on_done: OnDone = None) -> None:
        if not self._require_store(on_done):
            return
        self.store.submit(self.store.delete_playlist, self.slug, self.old_slug,
                          on_done=lambda _r, err: finish(on_done, err, logger=logger))

    def read(self, on_done: OnDone = None) -> None:
        """Deliver ``(err, raw_json_text)``."""
        if not self._require_store(on_done):
            return
        self.store.submit(self.store.read_playlist, self.slug,
                          on_done=lambda text, err: finish(on_done, err, text, logger=logger))

# ────────────────────────── index entry ────────────────────────────
class PlaylistIndexEntry:
    """(title, slug) record mirrored in index.json."""

    def __init__(self, title: str):
        self.title = ""
        self.slug  = ""
        self.set_title(title)

    def __repr__(self):
        return f"<PlaylistIndexEntry {self.title!r}>"

    def set_title(self, title: str) -> bool:
        if not isinstance(title, str) or not title.strip():
            logger.error("PlaylistIndexEntry: set_title() expects title to be a non-empty string.")
            return False
        self.title = title
        self.slug  = make_slug(title)
        return True

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "slug": self.slug}
