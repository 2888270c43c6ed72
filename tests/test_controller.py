import json, os, tempfile
from pathlib import Path
from unittest import TestCase
from unittest.mock import patch

from PySide6.QtCore import QCoreApplication, QDeadlineTimer

from controller import Controller
from logging_config import CollisionError, NotFoundError, ParseError, ValidationError
from storage import DataStore
from tasks import IOQueue


class ControllerTestCase(TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.data_dir = root / "data"
        self.tracks_dir = str(root / "tracks")
        os.mkdir(self.tracks_dir)
        self.store = DataStore(self.data_dir, IOQueue(run_in_thread=False))
        self.ctl = self._controller()

    def tearDown(self):
        self.ctl.close()
        self._tmp.cleanup()

    def _controller(self):
        return Controller(self.store, self.tracks_dir)

    def _touch(self, name):
        with open(os.path.join(self.tracks_dir, name), "wb") as f:
            f.write(b"\0")

    def _index(self):
        return json.loads(self.store.index_path.read_text(encoding="utf-8"))

    def _slugs_on_disk(self):
        return self.store.list_playlist_slugs()


class PlaylistCommandTests(ControllerTestCase):
    def test_add_writes_file_and_index(self):
        titles = []
        self.ctl.titles_changed.connect(titles.append)
        errs = []
        self.ctl.add_playlist("Forest Rain", None, errs.append)
        self.assertEqual(errs, [None])
        self.assertEqual(self._slugs_on_disk(), ["forest_rain"])
        self.assertEqual(self._index()["entries"], [{"title": "Forest Rain", "slug": "forest_rain"}])
        self.assertEqual(titles, [["Forest Rain"]])

    def test_duplicate_add_is_a_no_op(self):
        self.ctl.add_playlist("Rain")
        errs = []
        self.ctl.add_playlist("rain", None, errs.append)
        self.assertEqual(errs, [None])
        self.assertEqual(list(self.ctl.playlists), ["rain"])
        self.assertEqual(list(self.ctl.index_entries), ["rain"])
        self.assertEqual(self.ctl.get_playlist("Rain").title, "Rain")

    def test_add_rejects_empty_title(self):
        errs = []
        self.ctl.add_playlist("  ", None, errs.append)
        self.assertIsInstance(errs[0], ValidationError)
        self.assertEqual(self.ctl.playlists, {})

    def test_add_with_config(self):
        self.ctl.add_playlist("Rain", {"volume": 0.4, "tracks": [{"title": "a.mp3"}]})
        pl = self.ctl.get_playlist("Rain")
        self.assertEqual(pl.config.volume, 0.4)
        self.assertEqual([t.title for t in pl.config.tracks], ["a.mp3"])

    def test_remove(self):
        self.ctl.add_playlist("Rain")
        self.ctl.add_playlist("Storm")
        errs = []
        self.ctl.remove_playlist("Rain", errs.append)
        self.assertEqual(errs, [None])
        self.assertEqual(self._slugs_on_disk(), ["storm"])
        self.assertEqual([e["slug"] for e in self._index()["entries"]], ["storm"])
        self.assertIsNone(self.ctl.get_playlist("Rain"))

    def test_remove_unknown(self):
        errs = []
        self.ctl.remove_playlist("Nope", errs.append)
        self.assertIsInstance(errs[0], NotFoundError)

    def test_edit_config(self):
        self.ctl.add_playlist("Rain")
        errs = []
        self.ctl.edit_playlist("Rain", {"config": {"volume": 0.25}}, errs.append)
        self.assertEqual(errs, [None])
        on_disk = json.loads(self.store.playlist_path("rain").read_text(encoding="utf-8"))
        self.assertEqual(on_disk["config"]["volume"], 0.25)

    def test_edit_rename(self):
        self.ctl.add_playlist("Rain")
        errs = []
        self.ctl.edit_playlist("Rain", {"title": "Drizzle"}, errs.append)
        self.assertEqual(errs, [None])
        self.assertEqual(self._slugs_on_disk(), ["drizzle"])
        self.assertEqual(list(self.ctl.playlists), ["drizzle"])
        self.assertEqual(self._index()["entries"], [{"title": "Drizzle", "slug": "drizzle"}])
        self.assertEqual(self.ctl.get_playlist("Drizzle").old_slug, "")

    def test_edit_rename_collision_leaves_disk_alone(self):
        self.ctl.add_playlist("Rain")
        self.ctl.add_playlist("Storm")
        before = {s: self.store.read_playlist(s) for s in self._slugs_on_disk()}
        index_before = self.store.index_path.read_text(encoding="utf-8")
        errs = []
        self.ctl.edit_playlist("Rain", {"title": "storm"}, errs.append)
        self.assertEqual(len(errs), 1)
        self.assertIsInstance(errs[0], CollisionError)
        after = {s: self.store.read_playlist(s) for s in self._slugs_on_disk()}
        self.assertEqual(before, after)
        self.assertEqual(index_before, self.store.index_path.read_text(encoding="utf-8"))
        self.assertEqual(sorted(self.ctl.playlists), ["rain", "storm"])

    def test_edit_missing_adds(self):
        self.ctl.edit_playlist("Rain", {"config": {"volume": 0.5}})
        self.assertEqual(self.ctl.get_playlist("Rain").config.volume, 0.5)
        self.assertEqual(self._slugs_on_disk(), ["rain"])

    def test_titles_sorted(self):
        for t in ("b", "c", "a"):
            self.ctl.add_playlist(t)
        self.assertEqual(self.ctl.get_titles(), ["a", "b", "c"])
        self.assertEqual(self.ctl.get_titles([{"title": "z"}, {"title": "y"}, {}]), ["y", "z"])


class TrackCommandTests(ControllerTestCase):
    def test_add_track_probes_duration(self):
        self.ctl.add_playlist("Rain")
        errs = []
        with patch("scanner.probe_duration", return_value=33.0) as probe:
            self.ctl.add_track("Rain", "a.mp3", None, errs.append)
        self.assertEqual(errs, [None])
        probe.assert_called_once_with(os.path.join(self.tracks_dir, "a.mp3"))
        track = self.ctl.get_playlist("Rain").config.get_track("a.mp3")
        self.assertEqual(track.options["duration"], 33.0)
        self.assertEqual(track.options["end_point"], 33.0)
        self.assertEqual(track.src, f"{self.tracks_dir}/a.mp3")
        on_disk = json.loads(self.store.playlist_path("rain").read_text(encoding="utf-8"))
        self.assertEqual(on_disk["config"]["tracks"][0]["title"], "a.mp3")

    def test_add_track_with_duration_skips_probe(self):
        self.ctl.add_playlist("Rain")
        with patch("scanner.probe_duration") as probe:
            self.ctl.add_track("Rain", "a.mp3", {"duration": 5})
        probe.assert_not_called()

    def test_add_track_unknown_playlist(self):
        errs = []
        self.ctl.add_track("Nope", "a.mp3", None, errs.append)
        self.assertIsInstance(errs[0], NotFoundError)

    def test_remove_track(self):
        self.ctl.add_playlist("Rain", {"tracks": [{"title": "a.mp3"}, {"title": "b.mp3"}]})
        errs = []
        self.ctl.remove_track("Rain", "a.mp3", errs.append)
        self.ctl.remove_track("Rain", "a.mp3", errs.append)
        self.assertIsNone(errs[0])
        self.assertIsInstance(errs[1], NotFoundError)
        self.assertEqual([t.title for t in self.ctl.get_playlist("Rain").config.tracks], ["b.mp3"])


class TracksDirTests(ControllerTestCase):
    def test_listing_filtered_and_ordered(self):
        for name in ("c.wav", "b.txt", "a.mp3"):
            self._touch(name)
        seen = []
        self.ctl.tracks_changed.connect(lambda files, d: seen.append((files, d)))
        self.ctl.scan_tracks()
        self.assertEqual([f.name for f in self.ctl.track_files], ["a.mp3", "c.wav"])
        self.assertEqual(len(seen), 1)
        self.assertEqual(seen[0][1], self.tracks_dir)
        self.assertIsNotNone(self.ctl._track_watch)

    def test_watch_event_rescans(self):
        self._touch("a.mp3")
        self.ctl.scan_tracks()
        self._touch("d.ogg")
        self.ctl._track_watch.changed.emit(self.tracks_dir)
        self.assertEqual([f.name for f in self.ctl.track_files], ["a.mp3", "d.ogg"])

    def test_dropped_watch_rearmed_on_next_scan(self):
        self.ctl.scan_tracks()
        first = self.ctl._track_watch
        # what Qt does once the watched folder disappears
        first._fs.removePath(self.tracks_dir)
        self.assertFalse(first.active)
        self.ctl.scan_tracks()
        self.assertIsNot(self.ctl._track_watch, first)
        self.assertTrue(self.ctl._track_watch.active)

    def test_active_watch_kept(self):
        self.ctl.scan_tracks()
        first = self.ctl._track_watch
        self.ctl.scan_tracks()
        self.assertIs(self.ctl._track_watch, first)

    def test_unchanged_listing_not_replaced(self):
        self._touch("a.mp3")
        self.ctl.scan_tracks()
        listing = self.ctl.track_files
        seen = []
        self.ctl.tracks_changed.connect(lambda files, d: seen.append(files))
        self._touch("notes.txt")
        self.ctl._track_watch.changed.emit(self.tracks_dir)
        self.assertIs(self.ctl.track_files, listing)
        self.assertEqual(seen, [])

    def test_unreadable_dir_empties_listing(self):
        self._touch("a.mp3")
        self.ctl.scan_tracks()
        os.remove(os.path.join(self.tracks_dir, "a.mp3"))
        os.rmdir(self.tracks_dir)
        errs = []
        self.ctl.scan_tracks(errs.append)
        self.assertIsInstance(errs[0], OSError)
        self.assertEqual(self.ctl.track_files, [])

    def test_set_tracks_dir(self):
        other = os.path.join(self._tmp.name, "other")
        os.mkdir(other)
        with open(os.path.join(other, "x.m4a"), "wb") as f:
            f.write(b"\0")
        dirs = []
        self.ctl.tracks_dir_changed.connect(dirs.append)
        self.assertTrue(self.ctl.set_tracks_dir(other))
        self.assertFalse(self.ctl.set_tracks_dir(other))
        self.assertFalse(self.ctl.set_tracks_dir(""))
        self.assertEqual(dirs, [os.path.abspath(other)])
        self.assertEqual([f.name for f in self.ctl.track_files], ["x.m4a"])
        self.assertEqual(self._index()["tracks_dir"], os.path.abspath(other))
        self.assertEqual(self.ctl._track_watch.directory, os.path.abspath(other))


class StartupTests(ControllerTestCase):
    def _start(self, ctl):
        errs, ready = [], []
        ctl.ready.connect(lambda: ready.append(True))
        ctl.start(errs.append)
        self.assertEqual(ready, [True])
        return errs[0]

    def test_empty_start(self):
        self.assertIsNone(self._start(self.ctl))
        self.assertEqual(self.ctl.get_titles(), [])

    def test_restart_restores_playlists(self):
        self.ctl.add_playlist("Rain", {"volume": 0.3})
        self.ctl.add_playlist("Storm")
        fresh = self._controller()
        try:
            self.assertIsNone(self._start(fresh))
            self.assertEqual(fresh.get_titles(), ["Rain", "Storm"])
            self.assertEqual(fresh.get_playlist("Rain").config.volume, 0.3)
        finally:
            fresh.close()

    def test_orphan_file_adopted(self):
        self.store.write_playlist({"title": "Lost One", "old_slug": "", "slug": "lost_one",
                                   "config": {"volume": 1, "tracks": []}})
        self.assertIsNone(self._start(self.ctl))
        self.assertEqual(self.ctl.get_titles(), ["Lost One"])
        self.assertEqual(self._index()["entries"], [{"title": "Lost One", "slug": "lost_one"}])

    def test_missing_file_recreated(self):
        self.store.write_index({"entries": [{"title": "Rain", "slug": "rain"}],
                                "tracks_dir": self.tracks_dir})
        self.assertIsNone(self._start(self.ctl))
        self.assertEqual(self._slugs_on_disk(), ["rain"])
        self.assertIsNotNone(self.ctl.get_playlist("Rain"))

    def test_unparsable_file_moved_aside_and_reported(self):
        self.store.write_index({"entries": [{"title": "Rain", "slug": "rain"}],
                                "tracks_dir": self.tracks_dir})
        self.store.playlist_path("rain").write_text("{oops", encoding="utf-8")
        with self.assertLogs("weaver", level="ERROR"):
            err = self._start(self.ctl)
        self.assertIsInstance(err, ParseError)
        on_disk = json.loads(self.store.read_playlist("rain"))
        self.assertEqual(on_disk["title"], "Rain")
        self.assertEqual(on_disk["config"]["tracks"], [])
        bak = self.data_dir / "rain.playlist.bak"
        self.assertEqual(bak.read_text(encoding="utf-8"), "{oops")
        self.assertEqual(self._slugs_on_disk(), ["rain"])

    def test_tracks_dir_taken_from_index(self):
        other = os.path.join(self._tmp.name, "other")
        os.mkdir(other)
        self.store.write_index({"entries": [], "tracks_dir": other})
        self._start(self.ctl)
        self.assertEqual(self.ctl.tracks_dir, os.path.abspath(other))


class ThreadedRenameTests(TestCase):
    """Renames issued while earlier saves are still queued on the worker."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name) / "data"
        self.tracks_dir = os.path.join(self._tmp.name, "tracks")
        os.mkdir(self.tracks_dir)
        self.store = DataStore(self.data_dir, IOQueue(run_in_thread=True))
        self.ctl = Controller(self.store, self.tracks_dir)

    def tearDown(self):
        self.ctl.close()
        self._drain()
        self._tmp.cleanup()

    def _drain(self):
        io = self.store.io
        deadline = QDeadlineTimer(5000)
        while io.pending() and not deadline.hasExpired():
            io.wait(50)
            QCoreApplication.processEvents()
        self.assertEqual(io.pending(), 0)

    def _restart_titles(self):
        fresh = Controller(DataStore(self.data_dir, IOQueue(run_in_thread=False)), self.tracks_dir)
        try:
            errs = []
            fresh.start(errs.append)
            self.assertEqual(errs, [None])
            return fresh.get_titles()
        finally:
            fresh.close()

    def test_back_to_back_renames_leave_one_file(self):
        self.ctl.add_playlist("Rain")
        self._drain()
        self.ctl.edit_playlist("Rain", {"title": "Drizzle"})
        self.ctl.edit_playlist("Drizzle", {"title": "Storm"})
        self._drain()
        self.assertEqual(self.store.list_playlist_slugs(), ["storm"])
        self.assertEqual(list(self.ctl.playlists), ["storm"])
        self.assertEqual(self._restart_titles(), ["Storm"])

    def test_rename_there_and_back_while_queued(self):
        self.ctl.add_playlist("Rain")
        self._drain()
        self.ctl.edit_playlist("Rain", {"title": "Drizzle"})
        self.ctl.edit_playlist("Drizzle", {"title": "Rain"})
        self._drain()
        self.assertEqual(self.store.list_playlist_slugs(), ["rain"])
        self.assertEqual(self._restart_titles(), ["Rain"])

    def test_rename_before_first_save_lands(self):
        self.ctl.add_playlist("Rain")
        self.ctl.edit_playlist("Rain", {"title": "Drizzle"})
        self._drain()
        self.assertEqual(self.store.list_playlist_slugs(), ["drizzle"])
        self.assertEqual(self._restart_titles(), ["Drizzle"])
