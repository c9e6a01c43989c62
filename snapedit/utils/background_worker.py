"""
Background Worker
=================

One persistent daemon thread that runs submitted callables in order.

The offline queue uses it to drain off the caller's thread. Tasks submitted
with submit_replacing() are keyed: when several tasks with the same key are
waiting, only the most recent one runs, so a burst of reconnection signals
collapses into a single drain.

Usage:
    >>> worker = BackgroundWorker(name="OfflineDrain")
    >>> worker.submit_replacing("drain", manager.process_queue)
    >>> worker.shutdown()
"""

import logging
import queue
import threading
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

# Queue item: (key or None, generation, callable, args, kwargs)
_STOP = None


class BackgroundWorker:
    """
    Single-thread task executor with keyed (debounced) submissions.

    Attributes:
        name: Identifier used in the thread name and in log messages
    """

    def __init__(self, name: str = "BackgroundWorker"):
        self.name = name
        self._queue: "queue.Queue" = queue.Queue()
        self._running = True
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._busy = 0  # submitted but not yet finished or skipped

        # key -> generation of the latest submission with that key
        self._latest: Dict[str, int] = {}
        self._generation = 0

        self._thread = threading.Thread(target=self._run, name=f"{name}-Thread", daemon=True)
        self._thread.start()
        logger.debug(f"Worker '{name}' started")

    def submit(self, task: Callable, *args, **kwargs) -> bool:
        """Queue a task to run after everything already queued.

        Returns:
            False if the worker has been shut down and the task was dropped.
        """
        return self._put(None, task, args, kwargs)

    def submit_replacing(self, key: str, task: Callable, *args, **kwargs) -> bool:
        """Queue a task that supersedes any not-yet-started task with the same key."""
        return self._put(key, task, args, kwargs)

    def _put(self, key: Optional[str], task: Callable, args, kwargs) -> bool:
        with self._lock:
            if not self._running:
                logger.warning(f"Worker '{self.name}' is shut down, ignoring task")
                return False
            self._generation += 1
            generation = self._generation
            if key is not None:
                self._latest[key] = generation
            self._busy += 1
            self._queue.put((key, generation, task, args, kwargs))
        return True

    def cancel_all(self) -> None:
        """Drop every task that has not started yet. A running task is left to finish."""
        dropped = 0
        with self._lock:
            while True:
                try:
                    item = self._queue.get_nowait()
                except queue.Empty:
                    break
                if item is not _STOP:
                    dropped += 1
            self._latest.clear()
            self._busy -= dropped
            self._idle.notify_all()
        if dropped:
            logger.debug(f"Worker '{self.name}' cancelled {dropped} pending task(s)")

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no task is queued or running. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._busy == 0, timeout=timeout)

    def shutdown(self, timeout: float = 2.0) -> None:
        """Stop accepting tasks, discard pending ones and join the thread."""
        with self._lock:
            if not self._running:
                return
            self._running = False
        self.cancel_all()
        self._queue.put(_STOP)

        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning(f"Worker '{self.name}' thread did not terminate within {timeout}s")
        else:
            logger.debug(f"Worker '{self.name}' stopped")

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break

            key, generation, task, args, kwargs = item
            with self._lock:
                superseded = key is not None and self._latest.get(key) != generation

            if not superseded:
                try:
                    task(*args, **kwargs)
                except Exception as e:
                    logger.error(f"Worker '{self.name}' task failed: {type(e).__name__}: {e}", exc_info=True)

            with self._lock:
                if key is not None and self._latest.get(key) == generation:
                    del self._latest[key]
                self._busy -= 1
                self._idle.notify_all()

    def is_alive(self) -> bool:
        return self._thread.is_alive()
