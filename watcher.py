#!/usr/bin/env python3
# watcher.py – rev-w2  (2026-10-19)
"""
Single-directory change watch.

QFileSystemWatcher reports *that* a directory changed, never what changed,
so listeners are expected to rescan.
"""

from __future__ import annotations
from typing import Optional

from PySide6.QtCore import QFileSystemWatcher, QObject, Signal, Slot

from logging_config import get_logger

logger = get_logger("watcher")


class TrackWatch(QObject):
    changed = Signal(str)                   # watched directory

    def __init__(self, directory: str, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.directory = directory
        self._fs = QFileSystemWatcher(self)
        self._fs.directoryChanged.connect(self._on_fs_event)
        if not self._fs.addPath(directory):
            logger.warning("could not watch %s", directory)
        else:
            logger.debug("watching %s", directory)

    @property
    def active(self) -> bool:
        return self._fs is not None and self.directory in self._fs.directories()

    @Slot(str)
    def _on_fs_event(self, path: str) -> None:
        self.changed.emit(path)

    def close(self) -> None:
        if self._fs is None:
            return
        self._fs.directoryChanged.disconnect(self._on_fs_event)
        if self._fs.directories():
            self._fs.removePaths(self._fs.directories())
        self._fs.deleteLater()
        self._fs = None
        logger.debug("stopped watching %s", self.directory)
