#!/usr/bin/env python3
# controller.py – rev-k7  (2026-10-19)
"""
Aggregate root for playlists, the index and the track-directory listing.

Startup is strictly sequenced::

    load_index → init_playlists → reconcile → scan_tracks (+ watch)

Commands mutate memory immediately and persist through the DataStore queue;
every command takes an optional ``on_done(err)``. Without one, failures are
logged. index.json and the playlist files are only *eventually* consistent:
add_playlist writes the playlist file, then the index, and a crash between
the two is repaired by reconcile() on the next start.

The UI layer receives this object by injection and listens to its signals.
"""

from __future__ import annotations
import os
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from PySide6.QtCore import QObject, Signal, Slot

import scanner
from config         import Config
from logging_config import (CollisionError, NotFoundError, ParseError,
                            ValidationError, finish, get_logger)
from playlist       import Playlist, PlaylistIndexEntry
from scanner        import TrackFile
from storage        import DataStore, default_tracks_dir
from utils          import slug as make_slug
from watcher        import TrackWatch

logger = get_logger("controller")

OnDone = Optional[Callable[..., None]]


class _Gather:
    """Calls *on_done* with the first error once *count* steps settled."""

    def __init__(self, count: int, on_done: Callable[[Optional[BaseException]], None]):
        self._left    = count
        self._errors: List[BaseException] = []
        self._on_done = on_done
        if count == 0:
            on_done(None)

    def __call__(self, err: Optional[BaseException] = None) -> None:
        if err is not None:
            self._errors.append(err)
        self._left -= 1
        if self._left == 0:
            self._on_done(self._errors[0] if self._errors else None)


class Controller(QObject):
    titles_changed     = Signal(object)         # sorted titles
    tracks_changed     = Signal(object, str)    # track_files, tracks_dir
    tracks_dir_changed = Signal(str)
    ready              = Signal()

    def __init__(self, store: Optional[DataStore] = None,
                 tracks_dir: Optional[str] = None, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.store = store or DataStore()
        self.index_entries: Dict[str, PlaylistIndexEntry] = {}
        self.playlists:     Dict[str, Playlist]           = {}
        self.track_files:   List[TrackFile]               = []
        self.tracks_dir = os.path.abspath(tracks_dir) if tracks_dir else default_tracks_dir()
        self._track_watch: Optional[TrackWatch] = None

    # ═════════════════ helpers ═════════════════
    def _slug_for(self, title: Any, op: str, on_done: OnDone = None) -> Optional[str]:
        if not isinstance(title, str) or not title.strip():
            finish(on_done, ValidationError(f"{op}() expects title to be a non-empty string."),
                   logger=logger)
            return None
        return make_slug(title)

    def _is_current(self, playlist: Playlist) -> bool:
        return self.playlists.get(playlist.slug) is playlist

    # ═════════════════ startup ═════════════════
    def start(self, on_done: OnDone = None) -> None:
        """Load the index, hydrate playlists, reconcile, then scan tracks."""
        errors: List[BaseException] = []

        def _keep(err, phase):
            if err is not None:
                logger.error("startup: %s failed: %s", phase, err)
                errors.append(err)

        def _after_index(err):
            if isinstance(err, FileNotFoundError):
                logger.info("no %s yet, starting empty", self.store.index_path.name)
            else:
                _keep(err, "load_index")
            self.init_playlists(_after_playlists)

        def _after_playlists(err):
            _keep(err, "init_playlists")
            self.reconcile(_after_reconcile)

        def _after_reconcile(err):
            _keep(err, "reconcile")
            self.scan_tracks(_after_tracks)

        def _after_tracks(err):
            _keep(err, "scan_tracks")
            logger.info("ready: %d playlist(s), %d track file(s)",
                        len(self.playlists), len(self.track_files))
            self.ready.emit()
            self.titles_changed.emit(self.get_titles())
            self.tracks_changed.emit(self.track_files, self.tracks_dir)
            if on_done is not None:
                on_done(errors[0] if errors else None)

        self.load_index(_after_index)

    def load_index(self, on_done: OnDone = None) -> None:
        """Read index.json into index_entries and adopt its tracks_dir."""
        def _loaded(data, err):
            if err is None:
                entries = data.get("entries") or []
                self.add_index_entry(self.get_titles(entries))
                tracks_dir = data.get("tracks_dir")
                if isinstance(tracks_dir, str) and tracks_dir:
                    self.tracks_dir = os.path.abspath(tracks_dir)
            finish(on_done, err, logger=logger)

        self.store.submit(self.store.load_index, on_done=_loaded)

    def init_playlists(self, on_done: OnDone = None) -> None:
        """Hydrate a Playlist for every index entry.

        Readable files are loaded as they are; a missing file is recreated
        empty under the indexed title, and an unparsable one is first moved
        aside to <slug>.playlist.bak.
        """
        entries = [e for e in self.index_entries.values() if e.slug not in self.playlists]
        gather = _Gather(len(entries), lambda err: finish(on_done, err, logger=logger))
        for entry in entries:
            self.store.submit(self.store.load_playlist, entry.slug,
                              on_done=lambda data, err, entry=entry: self._hydrate(entry, data, err, gather))

    def _hydrate(self, entry: PlaylistIndexEntry, data, err, done: Callable) -> None:
        if entry.slug in self.playlists:
            done(None)
            return
        if err is not None:
            playlist = Playlist(entry.title, store=self.store)
            self.playlists[playlist.slug] = playlist
            if isinstance(err, FileNotFoundError):
                logger.warning("%s has no playlist file, recreating it", entry.title)
                playlist.save(done)
            elif isinstance(err, ParseError):
                logger.error("%s could not be parsed (%s), recreating it empty", entry.title, err)

                def _moved(_path, move_err):
                    if move_err is not None:
                        done(move_err)
                        return
                    playlist.save(_recreated)

                def _recreated(save_err):
                    if save_err is not None:
                        logger.error("could not recreate %s: %s", entry.title, save_err)
                    done(err)

                self.store.submit(self.store.set_aside_playlist, entry.slug, on_done=_moved)
            else:
                # unreadable for another reason: usable in memory, file left alone
                done(err)
            return

        title = data.get("title")
        if not isinstance(title, str) or not title.strip() or make_slug(title) != entry.slug:
            title = entry.title
        self.playlists[entry.slug] = Playlist(title, data.get("config") or {}, store=self.store)
        done(None)

    def reconcile(self, on_done: OnDone = None) -> None:
        """Adopt playlist files that have no index entry, then save the index."""
        def _listed(slugs, err):
            if err is not None:
                finish(on_done, err, logger=logger)
                return
            orphans = [s for s in slugs if s not in self.index_entries]
            if not orphans:
                finish(on_done, None, logger=logger)
                return
            logger.warning("adopting %d unindexed playlist file(s): %s", len(orphans), ", ".join(orphans))

            def _adopted(first_err):
                self.save_index(lambda idx_err: finish(on_done, first_err or idx_err, logger=logger))

            gather = _Gather(len(orphans), _adopted)
            for slug in orphans:
                self.store.submit(self.store.load_playlist, slug,
                                  on_done=lambda data, e, slug=slug: self._adopt(slug, data, e, gather))

        self.store.submit(self.store.list_playlist_slugs, on_done=_listed)

    def _adopt(self, slug: str, data, err, done: Callable) -> None:
        if err is not None:
            done(err)
            return
        title = data.get("title")
        if not isinstance(title, str) or not title.strip() or make_slug(title) != slug:
            logger.error("%s.playlist.json does not match its title %r, not adopted", slug, title)
            done(None)
            return
        if slug not in self.playlists:
            self.playlists[slug] = Playlist(title, data.get("config") or {}, store=self.store)
        self.add_index_entry(title)
        done(None)

    # ═════════════════ playlists ═════════════════
    def add_playlist(self, title: str, config: Union[Config, Mapping[str, Any], None] = None,
                     on_done: OnDone = None) -> None:
        slug = self._slug_for(title, "add_playlist", on_done)
        if slug is None:
            return
        if slug in self.playlists:
            finish(on_done, None)
            return

        playlist = Playlist(title, config, store=self.store)
        self.playlists[slug] = playlist

        def _saved(save_err):
            # the index is written even when the playlist file is not
            if self._is_current(playlist):
                self.add_index_entry(playlist.title)
                self.titles_changed.emit(self.get_titles())
            self.save_index(lambda idx_err: finish(on_done, save_err or idx_err, logger=logger))

        playlist.save(_saved)

    def remove_playlist(self, title: str, on_done: OnDone = None) -> None:
        slug = self._slug_for(title, "remove_playlist", on_done)
        if slug is None:
            return
        if slug not in self.playlists and slug not in self.index_entries:
            finish(on_done, NotFoundError(f"remove_playlist(): no playlist {title!r}."), logger=logger)
            return

        if slug in self.index_entries:
            self.remove_index_entry(title)
            self.titles_changed.emit(self.get_titles())

        def _removed(rm_err):
            self.save_index(lambda idx_err: finish(on_done, rm_err or idx_err, logger=logger))

        playlist = self.playlists.pop(slug, None)
        if playlist is not None:
            playlist.remove(_removed)
            return

        def _unlinked(_result, err):
            # an index entry whose file never made it to disk
            _removed(None if isinstance(err, FileNotFoundError) else err)

        self.store.submit(self.store.delete_playlist, slug, on_done=_unlinked)

    def edit_playlist(self, title: str, new_data: Optional[Mapping[str, Any]] = None,
                      on_done: OnDone = None) -> None:
        """Replace the config and/or rename; adds the playlist when missing.

        A rename onto a title held by another playlist is refused with a
        CollisionError; a config change in the same call still applies.
        """
        slug = self._slug_for(title, "edit_playlist", on_done)
        if slug is None:
            return
        new_data = new_data or {}
        playlist = self.playlists.get(slug)
        if playlist is None:
            self.add_playlist(title, new_data.get("config"), on_done)
            return

        config_changed = title_changed = False
        collision: Optional[CollisionError] = None

        if new_data.get("config") is not None:
            config_changed = playlist.set_config(new_data["config"])

        new_title = new_data.get("title")
        if isinstance(new_title, str) and new_title and new_title != playlist.title:
            other = self.get_playlist(new_title)
            if other is not None and other is not playlist:
                collision = CollisionError(f"Playlist {new_title!r} already exists.")
            else:
                old_title = playlist.title
                playlist.set_title(new_title)
                if playlist.slug != slug:
                    del self.playlists[slug]
                    self.playlists[playlist.slug] = playlist
                self.edit_index_entry(old_title, new_title)
                title_changed = True

        if not (config_changed or title_changed):
            finish(on_done, collision, logger=logger)
            return

        def _saved(save_err):
            if not title_changed:
                finish(on_done, collision or save_err, logger=logger)
                return
            self.titles_changed.emit(self.get_titles())
            self.save_index(lambda idx_err: finish(on_done, collision or save_err or idx_err,
                                                   logger=logger))

        playlist.save(_saved)

    def get_playlist(self, title: str) -> Optional[Playlist]:
        if not isinstance(title, str) or not title.strip():
            logger.error("get_playlist() expects title to be a non-empty string.")
            return None
        return self.playlists.get(make_slug(title))

    # ═════════════════ tracks inside playlists ═════════════════
    def add_track(self, playlist_title: str, track_title: str,
                  options: Optional[Mapping[str, Any]] = None, on_done: OnDone = None) -> None:
        """Add a file from tracks_dir to a playlist and save it.

        Without an explicit duration the file is probed with mutagen and
        end_point follows the probed length.
        """
        playlist = self.get_playlist(playlist_title)
        if playlist is None:
            finish(on_done, NotFoundError(f"add_track(): no playlist {playlist_title!r}."), logger=logger)
            return
        if not isinstance(track_title, str) or not track_title:
            finish(on_done, ValidationError("add_track() expects a non-empty track title."), logger=logger)
            return
        if playlist.config.get_track(track_title) is not None:
            finish(on_done, None)
            return

        opts = dict(options or {})
        directory = self.tracks_dir

        def _add(duration, _err):
            if not self._is_current(playlist):
                finish(on_done, NotFoundError(f"add_track(): playlist {playlist_title!r} went away."),
                       logger=logger)
                return
            if duration:
                opts["duration"] = duration
            playlist.config.add_track(track_title, directory, opts)
            playlist.save(on_done)

        if "duration" in opts:
            _add(None, None)
        else:
            self.store.submit(scanner.probe_duration, os.path.join(directory, track_title), on_done=_add)

    def remove_track(self, playlist_title: str, track_title: str, on_done: OnDone = None) -> None:
        playlist = self.get_playlist(playlist_title)
        if playlist is None:
            finish(on_done, NotFoundError(f"remove_track(): no playlist {playlist_title!r}."), logger=logger)
            return
        if not playlist.config.remove_track(track_title):
            finish(on_done, NotFoundError(f"remove_track(): no track {track_title!r} in {playlist_title!r}."),
                   logger=logger)
            return
        playlist.save(on_done)

    # ═════════════════ index ═════════════════
    def add_index_entry(self, title: Union[str, Iterable[str]]) -> Optional[PlaylistIndexEntry]:
        """Add one entry (or one per title in a list); existing slugs are kept."""
        if isinstance(title, (list, tuple)):
            for t in title:
                self.add_index_entry(t)
            return None
        slug = self._slug_for(title, "add_index_entry")
        if slug is None:
            return None
        entry = self.index_entries.get(slug)
        if entry is None:
            entry = PlaylistIndexEntry(title)
            self.index_entries[slug] = entry
        return entry

    def remove_index_entry(self, title: str) -> bool:
        slug = self._slug_for(title, "remove_index_entry")
        if slug is None:
            return False
        if self.index_entries.pop(slug, None) is None:
            logger.error("remove_index_entry() attempted to remove non-existent entry %r.", title)
            return False
        return True

    def edit_index_entry(self, title: str, new_title: str) -> Optional[PlaylistIndexEntry]:
        """Retitle an entry; a missing one is created under *new_title*."""
        entry = self.get_index_entry(title)
        if entry is None:
            return self.add_index_entry(new_title or title)
        old_slug = entry.slug
        if not entry.set_title(new_title):
            return entry
        if entry.slug != old_slug:
            del self.index_entries[old_slug]
            self.index_entries[entry.slug] = entry
        return entry

    def get_index_entry(self, title: str) -> Optional[PlaylistIndexEntry]:
        if not isinstance(title, str) or not title.strip():
            logger.error("get_index_entry() expects title to be a non-empty string.")
            return None
        return self.index_entries.get(make_slug(title))

    def get_titles(self, entries: Optional[Iterable[Any]] = None) -> List[str]:
        """Sorted titles of *entries* (index entries or raw dicts)."""
        if entries is None:
            entries = self.index_entries.values()
        titles = []
        for e in entries:
            title = e.title if isinstance(e, PlaylistIndexEntry) else (e or {}).get("title")
            if isinstance(title, str) and title:
                titles.append(title)
        return sorted(titles)

    def save_index(self, on_done: OnDone = None) -> None:
        data = {
            "entries":    [e.to_dict() for e in self.index_entries.values()],
            "tracks_dir": self.tracks_dir,
        }
        self.store.submit(self.store.write_index, data,
                          on_done=lambda _wrote, err: finish(on_done, err, logger=logger))

    # ═════════════════ tracks directory ═════════════════
    def set_tracks_dir(self, directory: str) -> bool:
        if not isinstance(directory, str) or not directory:
            logger.error("set_tracks_dir() expects a non-empty path.")
            return False
        directory = os.path.abspath(os.path.expanduser(directory))
        if directory == self.tracks_dir:
            return False

        self.tracks_dir = directory
        self._close_watch()
        self.tracks_dir_changed.emit(directory)
        self.scan_tracks()
        self.save_index()
        return True

    def scan_tracks(self, on_done: OnDone = None) -> None:
        """List tracks_dir; replace track_files and notify only on a difference.

        A successful scan also (re)starts the watch when none is active.
        """
        directory = self.tracks_dir

        def _scanned(files, err):
            if directory != self.tracks_dir:
                logger.debug("discarding scan of previous tracks dir %s", directory)
                finish(on_done, None)
                return
            if err is not None:
                files = []
            self._apply_listing(files)
            if err is None and (self._track_watch is None or not self._track_watch.active):
                # Qt drops the path once the watched folder is deleted
                self._close_watch()
                self._open_watch(directory)
            finish(on_done, err, logger=logger)

        self.store.submit(scanner.scan_tracks, directory, on_done=_scanned)

    def _apply_listing(self, files: List[TrackFile]) -> bool:
        if files == self.track_files:
            return False
        self.track_files = files
        self.tracks_changed.emit(self.track_files, self.tracks_dir)
        return True

    def _open_watch(self, directory: str) -> None:
        self._track_watch = TrackWatch(directory, self)
        self._track_watch.changed.connect(self._on_watch_event)

    def _close_watch(self) -> None:
        if self._track_watch is None:
            return
        self._track_watch.changed.disconnect(self._on_watch_event)
        self._track_watch.close()
        self._track_watch.deleteLater()
        self._track_watch = None

    @Slot(str)
    def _on_watch_event(self, path: str) -> None:
        logger.debug("change in %s, rescanning", path)
        self.scan_tracks()

    # ═════════════════ shutdown ═════════════════
    def close(self, msecs: int = 3000) -> bool:
        """Stop watching and wait for queued disk writes."""
        self._close_watch()
        return self.store.io.wait(msecs)
