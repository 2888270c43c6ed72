#!/usr/bin/env python3
# scanner.py – rev-s9  (2026-10-19)
"""
Track-directory discovery.

• Lists one directory (no recursion), keeps .mp3 / .m4a / .ogg / .wav
• Name order, matching what the file dialogs show
• probe_duration() reads the stream length with mutagen; unreadable
  files report 0 so the user can still set points by hand
"""

from __future__ import annotations
import os
from pathlib import Path
from typing  import Dict, List

from mutagen import File as MFile, MutagenError

from logging_config import get_logger
from utils          import valid_file_type

logger = get_logger("scanner")

# ────────────────────────── data class ────────────────────────────
class TrackFile:
    __slots__ = ("name", "type")

    def __init__(self, *, name: str, type: str):
        self.name = name
        self.type = type

    def __repr__(self):
        return f"<TrackFile {self.name!r}>"

    def __eq__(self, other):
        if not isinstance(other, TrackFile):
            return NotImplemented
        return self.name == other.name and self.type == other.type

    def __hash__(self):
        return hash((self.name, self.type))

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "type": self.type}

# ───────────────────────── public API ─────────────────────────────
def scan_tracks(root: str | Path) -> List[TrackFile]:
    """Return the supported audio files directly inside *root*.

    Raises OSError when the directory cannot be listed.
    """
    files: List[TrackFile] = []
    for name in sorted(os.listdir(root)):
        ftype = valid_file_type(name)
        if ftype is None:
            continue
        if not os.path.isfile(os.path.join(root, name)):
            continue
        files.append(TrackFile(name=name, type=ftype))
    logger.debug("scanned %s: %d track file(s)", root, len(files))
    return files


def probe_duration(path: str | Path) -> float:
    """Stream length in seconds, 0.0 when mutagen cannot tell."""
    try:
        audio = MFile(path)
        length = audio.info.length if audio is not None else 0
    except (MutagenError, OSError, AttributeError) as e:
        logger.debug("no duration for %s: %s", path, e)
        return 0.0
    return float(length or 0)
