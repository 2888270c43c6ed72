#!/usr/bin/env python3
# storage.py – rev-s9  (2026-10-19)

r"""
On-disk layout & blocking persistence protocol
══════════════════════════════════════════════
* Data folder, same for script **and** frozen binary
  – Windows  : %APPDATA%\Ambient-Weaver\
  – macOS/*nix: $XDG_DATA_HOME/ambient-weaver/ (~/.local/share/…)
  – override : $AMBIENT_WEAVER_DATA_DIR
* index.json            – {"entries": [{title, slug}], "tracks_dir": str}
* <slug>.playlist.json  – one serialized Playlist each
* Every write is atomic (tmp + replace); index.json keeps an index.bak.
* An unreadable playlist file is never overwritten: startup moves it aside
  to <slug>.playlist.bak before recreating it.
* Nothing here touches the Qt loop: DataStore methods block and are meant
  to be pushed through tasks.IOQueue.
"""

from __future__ import annotations
import json, os, shutil
from pathlib import Path
from typing  import Any, Callable, Dict, List, Optional

from logging_config import ParseError, get_logger
from tasks          import IOQueue
from utils          import same

logger = get_logger("storage")

APP_NAME            = "Ambient-Weaver"
INDEX_FILE          = "index.json"
INDEX_BAK           = "index.bak"
PLAYLIST_SUFFIX     = ".playlist.json"
PLAYLIST_BAK_SUFFIX = ".playlist.bak"

# ────────────────────────────────────────────────────────────
# 1. resolve canonical folders
# ────────────────────────────────────────────────────────────
def default_data_dir() -> Path:
    env = os.getenv("AMBIENT_WEAVER_DATA_DIR")
    if env:
        return Path(env).expanduser()
    if os.name == "nt":
        # %APPDATA% should exist for *all* normal accounts.
        appdata = Path(os.getenv("APPDATA") or Path.home() / "AppData" / "Roaming")
        return appdata / APP_NAME
    # XDG base dirs; ~/.local/share if XDG_DATA_HOME not set.
    base = Path(os.getenv("XDG_DATA_HOME") or Path.home() / ".local" / "share")
    return base / APP_NAME.lower()


def default_tracks_dir() -> str:
    env = os.getenv("AMBIENT_WEAVER_TRACKS_DIR")
    return os.path.abspath(os.path.expanduser(env or "~/Music"))

# ────────────────────────────────────────────────────────────
# 2. atomic writer (+ optional backup)
# ────────────────────────────────────────────────────────────
def _dumps(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def _atomic_write(path: Path, data: Any, backup: Optional[Path] = None) -> None:
    """Write *data* as UTF-8 JSON atomically; refresh *backup* first."""
    tmp = path.with_suffix(".tmp")          # same directory → same volume
    with tmp.open("w", encoding="utf-8") as f:
        f.write(_dumps(data))
        f.flush()
        os.fsync(f.fileno())
    if backup is not None and path.exists():
        shutil.copy2(path, backup)
    tmp.replace(path)


def _load_json(path: Path) -> Any:
    """Parse *path*; OSError propagates, bad JSON becomes ParseError."""
    text = path.read_text(encoding="utf-8")
    try:
        return json.loads(text)
    except ValueError as e:
        raise ParseError(f"{path.name}: {e}") from e


def write_if_changed(path: Path, data: Any, backup: Optional[Path] = None) -> bool:
    """Read-compare-write. Returns True when the file was (re)written.

    An unreadable existing file raises ParseError and is left untouched.
    """
    if not path.exists():
        _atomic_write(path, data, backup)
        logger.debug("created %s", path.name)
        return True
    if same(_load_json(path), data):
        logger.debug("%s unchanged, skipping write", path.name)
        return False
    _atomic_write(path, data, backup)
    logger.debug("updated %s", path.name)
    return True

# ────────────────────────────────────────────────────────────
# 3. DataStore – blocking protocol + the queue it runs on
# ────────────────────────────────────────────────────────────
class DataStore:
    def __init__(self, data_dir: Optional[Path] = None, io: Optional[IOQueue] = None):
        self.data_dir = Path(data_dir) if data_dir else default_data_dir()
        self.io = io or IOQueue()

    def __repr__(self):
        return f"<DataStore {str(self.data_dir)!r}>"

    def submit(self, fn: Callable[..., Any], *args: Any, on_done=None) -> None:
        self.io.submit(fn, *args, on_done=on_done)

    # ---------- paths
    @property
    def index_path(self) -> Path:
        return self.data_dir / INDEX_FILE

    def playlist_path(self, slug: str) -> Path:
        return self.data_dir / f"{slug}{PLAYLIST_SUFFIX}"

    # ---------- playlists
    def write_playlist(self, data: Dict[str, Any], old_slug: str = "") -> bool:
        """Persist one serialized playlist, reconciling a pending rename.

        With *old_slug* set, an existing ``<old_slug>.playlist.json`` is
        renamed to the current slug before the usual compare-and-write; a
        missing one means a first save under the new slug.
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self.playlist_path(data["slug"])
        if old_slug and old_slug != data["slug"]:
            old_path = self.playlist_path(old_slug)
            if old_path.exists():
                old_path.replace(path)
                logger.info("renamed %s → %s", old_path.name, path.name)
        data = dict(data, old_slug="")
        return write_if_changed(path, data)

    def read_playlist(self, slug: str) -> str:
        return self.playlist_path(slug).read_text(encoding="utf-8")

    def load_playlist(self, slug: str) -> Dict[str, Any]:
        data = _load_json(self.playlist_path(slug))
        if not isinstance(data, dict):
            raise ParseError(f"{slug}{PLAYLIST_SUFFIX}: expected a JSON object")
        return data

    def delete_playlist(self, slug: str, old_slug: str = "") -> None:
        """Unlink the playlist file; an unsaved rename still lives under *old_slug*."""
        path = self.playlist_path(slug)
        if old_slug and not path.exists() and self.playlist_path(old_slug).exists():
            path = self.playlist_path(old_slug)
        path.unlink()
        logger.info("deleted %s", path.name)

    def set_aside_playlist(self, slug: str) -> Path:
        """Move an unreadable ``<slug>.playlist.json`` to ``<slug>.playlist.bak``."""
        src = self.playlist_path(slug)
        dst = self.data_dir / f"{slug}{PLAYLIST_BAK_SUFFIX}"
        src.replace(dst)
        logger.warning("moved unreadable %s aside to %s", src.name, dst.name)
        return dst

    def list_playlist_slugs(self) -> List[str]:
        if not self.data_dir.is_dir():
            return []
        return sorted(p.name[: -len(PLAYLIST_SUFFIX)]
                      for p in self.data_dir.iterdir()
                      if p.name.endswith(PLAYLIST_SUFFIX) and p.is_file())

    # ---------- index
    def write_index(self, data: Dict[str, Any]) -> bool:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        return write_if_changed(self.index_path, data, self.data_dir / INDEX_BAK)

    def load_index(self) -> Dict[str, Any]:
        """Return the parsed index. Rolls back to index.bak on corruption."""
        try:
            data = _load_json(self.index_path)
            if not isinstance(data, dict):
                raise ParseError(f"{INDEX_FILE}: expected a JSON object")
            return data
        except ParseError as err:
            bak = self.data_dir / INDEX_BAK
            try:
                data = _load_json(bak)
            except (OSError, ParseError):
                raise err from None
            if not isinstance(data, dict):
                raise err
            logger.warning("%s was corrupt, restored from %s", INDEX_FILE, INDEX_BAK)
            shutil.copy2(bak, self.index_path)
            return data
