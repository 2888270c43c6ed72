import gc, os, sys

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from PySide6.QtCore import QCoreApplication


@pytest.fixture(scope="session", autouse=True)
def qt_app():
    # signals and QObject parents want an application object around
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture(autouse=True)
def collect_qt_garbage():
    # Free each test's dropped QObjects (watchers, controllers) on the main
    # thread; otherwise a GC pass inside an IOQueue worker destroys them on
    # the wrong thread and Qt aborts the process.
    yield
    gc.collect()
