#!/usr/bin/env python3
# main.py – rev-m1  (2026-10-19)
"""
Ambient Weaver
──────────────
Headless host for the playlist engine (PySide6 event loop).

• Loads index.json + every <slug>.playlist.json from the data folder
• Watches the tracks folder and reports listing changes
• ConsoleView stands in for the window: it gets the Controller injected and
  only reads models / listens to signals
"""

from __future__ import annotations
import argparse, signal, sys
from pathlib import Path
from typing  import List, Optional

from PySide6.QtCore import QCoreApplication, QObject, QTimer, Slot

from controller     import Controller
from logging_config import get_logger, setup_logging
from storage        import DataStore, default_data_dir
from tasks          import IOQueue
from utils          import format_time

logger = get_logger("main")

# ═════════════════ 1. console view ═════════════════
class ConsoleView(QObject):
    """Logs what a window would render."""

    def __init__(self, controller: Controller, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._ctl = controller
        controller.titles_changed.connect(self.update_playlist_list)
        controller.tracks_changed.connect(self.update_file_list)
        controller.tracks_dir_changed.connect(self.update_tracks_dir)

    @Slot(object)
    def update_playlist_list(self, titles: List[str]) -> None:
        logger.info("playlists (%d): %s", len(titles), ", ".join(titles) or "–")
        for title in titles:
            pl = self._ctl.get_playlist(title)
            if pl is None:
                continue
            total = sum(t.options["duration"] for t in pl.config.tracks)
            logger.info("  %-30s %3d track(s)  %s", title, len(pl.config.tracks), format_time(total))

    @Slot(object, str)
    def update_file_list(self, files, tracks_dir: str) -> None:
        logger.info("track files in %s: %s", tracks_dir, ", ".join(f.name for f in files) or "–")

    @Slot(str)
    def update_tracks_dir(self, tracks_dir: str) -> None:
        logger.info("tracks folder is now %s", tracks_dir)

# ═════════════════ 2. CLI ═════════════════
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ambient-weaver",
                                description="Playlist persistence and tracks-folder watcher.")
    p.add_argument("--data-dir", type=Path, default=None,
                   help=f"folder holding index.json and playlists (default: {default_data_dir()})")
    p.add_argument("--tracks-dir", default=None,
                   help="tracks folder to watch (default: the one stored in index.json)")
    p.add_argument("--log-level", default="INFO",
                   choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    p.add_argument("--log-file", type=Path, default=None)
    p.add_argument("--once", action="store_true",
                   help="load, reconcile and scan once, then exit")
    return p

# ═════════════════ 3. entry-point ═════════════════
def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    app   = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    store = DataStore(args.data_dir, IOQueue(parent=app))
    ctl   = Controller(store)
    _view = ConsoleView(ctl)

    def _started(err):
        if err is not None:
            logger.warning("started with errors: %s", err)
        if args.tracks_dir:
            ctl.set_tracks_dir(args.tracks_dir)
        if args.once:
            # queued behind the scan + index write above
            ctl.save_index(lambda _err: QTimer.singleShot(0, app.quit))

    signal.signal(signal.SIGINT, lambda *_: app.quit())
    # let Python see SIGINT while Qt spins
    tick = QTimer(app, interval=250, timeout=lambda: None)
    tick.start()

    ctl.start(_started)
    code = app.exec()
    ctl.close()
    return code


if __name__ == "__main__":
    sys.exit(main())
