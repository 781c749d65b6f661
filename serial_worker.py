"""Single-thread serial executor with cancellable delayed calls."""

from __future__ import annotations

import logging
import threading
from queue import Queue
from typing import Callable, Optional

logger = logging.getLogger(__name__)

Task = Callable[[], None]


class DelayedCall:
    """Handle for a task scheduled with ``SerialWorker.call_later``."""

    def __init__(self, worker: "SerialWorker", delay_s: float, fn: Task) -> None:
        self._worker = worker
        self._fn = fn
        self._cancelled = threading.Event()
        self._timer = threading.Timer(delay_s, self._enqueue)
        self._timer.daemon = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def start(self) -> None:
        self._timer.start()

    def cancel(self) -> None:
        self._cancelled.set()
        self._timer.cancel()

    def _enqueue(self) -> None:
        if not self.cancelled:
            self._worker.submit(self._run)

    def _run(self) -> None:
        # May already be queued when cancelled
        if not self.cancelled:
            self._fn()


class RepeatingCall(DelayedCall):
    """Re-arms itself after every run until cancelled."""

    def __init__(self, worker: "SerialWorker", interval_s: float, fn: Task) -> None:
        super().__init__(worker, interval_s, fn)
        self._interval_s = interval_s
        self._lock = threading.Lock()

    def cancel(self) -> None:
        with self._lock:
            super().cancel()

    def _run(self) -> None:
        if self.cancelled:
            return
        try:
            self._fn()
        finally:
            with self._lock:
                if not self.cancelled:
                    self._timer = threading.Timer(self._interval_s, self._enqueue)
                    self._timer.daemon = True
                    self._timer.start()


class SerialWorker:
    def __init__(self, name: str) -> None:
        self._name = name
        self._queue: Queue[Optional[Task]] = Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        with self._lock:
            self._start_locked()

    def _start_locked(self) -> bool:
        if self._closed:
            return False
        if self._thread and self._thread.is_alive():
            return True
        self._thread = threading.Thread(target=self._loop, name=self._name, daemon=True)
        self._thread.start()
        return True

    def submit(self, fn: Task) -> None:
        """Queue ``fn``. Tasks submitted after ``stop`` are dropped."""
        self._enqueue(fn)

    def _enqueue(self, fn: Task) -> bool:
        with self._lock:
            running = self._start_locked()
        if not running:
            logger.debug("%s is stopped, dropping task %r", self._name, fn)
            return False
        self._queue.put(fn)
        return True

    def call_later(self, delay_s: float, fn: Task) -> DelayedCall:
        call = DelayedCall(self, delay_s, fn)
        call.start()
        return call

    def call_repeating(self, interval_s: float, fn: Task) -> RepeatingCall:
        call = RepeatingCall(self, interval_s, fn)
        call.start()
        return call

    def is_current(self) -> bool:
        return threading.current_thread() is self._thread

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until every task queued so far has run."""
        if self.is_current():
            return True
        done = threading.Event()
        if not self._enqueue(done.set):
            return False
        return done.wait(timeout)

    def stop(self, timeout: Optional[float] = 1.0) -> None:
        with self._lock:
            self._closed = True
            thread = self._thread
            self._thread = None
        if thread is None or not thread.is_alive():
            return
        self._queue.put(None)
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def _loop(self) -> None:
        while True:
            task = self._queue.get()
            if task is None:
                return
            try:
                task()
            except Exception:
                logger.exception("Unhandled error in %s task", self._name)
