#!/usr/bin/env python3
# tasks.py – rev-q2  (2026-10-19)
"""
Background disk I/O with completions on the Qt main thread.

• One worker thread → jobs run strictly in submission order
• Completion callbacks receive ``(result, error)`` and always run on the
  thread that owns the queue (the GUI / event-loop thread)
• ``run_in_thread=False`` runs jobs inline; tests and scripts use it
"""

from __future__ import annotations
import itertools
from typing import Any, Callable, Dict, Optional, Tuple

from PySide6.QtCore import QObject, QRunnable, QThreadPool, Signal, Slot

from logging_config import get_logger

logger = get_logger("tasks")

Completion = Callable[[Any, Optional[BaseException]], None]


class _JobSignals(QObject):
    done = Signal(int, object, object)      # job id, result, error


class _Job(QRunnable):
    def __init__(self, job_id: int, fn: Callable[..., Any], args: Tuple[Any, ...]):
        super().__init__()
        self.signals = _JobSignals()
        self._id   = job_id
        self._fn   = fn
        self._args = args

    def run(self) -> None:  # pragma: no cover - exercised via IOQueue with threads
        try:
            result = self._fn(*self._args)
        except Exception as exc:            # handed back to the main thread
            self.signals.done.emit(self._id, None, exc)
            return
        self.signals.done.emit(self._id, result, None)


class IOQueue(QObject):
    """FIFO of blocking callables executed off the event-loop thread."""

    def __init__(self, run_in_thread: bool = True, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._run_in_thread = run_in_thread
        self._ids = itertools.count(1)
        self._pending: Dict[int, Tuple[_JobSignals, Optional[Completion]]] = {}
        self._pool: Optional[QThreadPool] = None
        if run_in_thread:
            self._pool = QThreadPool(self)
            self._pool.setMaxThreadCount(1)

    @property
    def run_in_thread(self) -> bool:
        return self._run_in_thread

    def submit(self, fn: Callable[..., Any], *args: Any,
               on_done: Optional[Completion] = None) -> None:
        if not self._run_in_thread:
            try:
                result = fn(*args)
            except Exception as exc:
                self._complete(on_done, None, exc)
                return
            self._complete(on_done, result, None)
            return

        job_id = next(self._ids)
        job = _Job(job_id, fn, args)
        job.signals.done.connect(self._on_job_done)
        self._pending[job_id] = (job.signals, on_done)
        self._pool.start(job)

    @Slot(int, object, object)
    def _on_job_done(self, job_id: int, result: Any, error: Any) -> None:
        _signals, on_done = self._pending.pop(job_id, (None, None))
        self._complete(on_done, result, error)

    def _complete(self, on_done: Optional[Completion], result: Any, error: Any) -> None:
        if on_done is not None:
            on_done(result, error)
        elif error is not None:
            logger.error("background job failed: %s", error)

    def pending(self) -> int:
        return len(self._pending)

    def wait(self, msecs: int = -1) -> bool:
        """Block until every submitted job has run (not until delivered)."""
        if self._pool is None:
            return True
        return self._pool.waitForDone(msecs)
