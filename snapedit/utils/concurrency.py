"""
Concurrency Helpers
===================

- DaemonThreadPoolExecutor: fixed-size pool whose workers are daemon threads,
  used for bounded-concurrency batch edits.
- chunked(): split a sequence into fixed-size chunks.
- KeyedLock: one mutex per key, so work on the same cache key is serialised
  while different keys proceed in parallel.
"""

import queue
import threading
from concurrent.futures import Executor, Future
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List, Sequence, TypeVar

T = TypeVar("T")


class DaemonThreadPoolExecutor(Executor):
    """
    A ThreadPoolExecutor-like class that guarantees worker threads are daemons.
    This ensures that the executor does not prevent the Python process from exiting.

    It implements the subset of the concurrent.futures.Executor interface
    needed for batch editing: `submit`, `map` and context management.
    """
    def __init__(self, max_workers=None, thread_name_prefix='EditWorker'):
        """
        Initializes the executor with a maximum number of daemon worker threads.
        """
        if max_workers is None:
            max_workers = 5
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self._max_workers = max_workers
        self._thread_name_prefix = thread_name_prefix
        self._work_queue = queue.Queue()
        self._threads = []
        self._shutdown = False
        self._lock = threading.Lock()

    def submit(self, fn, *args, **kwargs):
        """
        Submits a callable to be executed with the given arguments.
        Returns a Future for its result.
        """
        with self._lock:
            if self._shutdown:
                raise RuntimeError('cannot schedule new futures after shutdown')

            f = Future()
            self._work_queue.put((fn, args, kwargs, f))
            self._adjust_thread_count()

        return f

    def _adjust_thread_count(self):
        # Called with self._lock held
        if len(self._threads) < self._max_workers:
            t = threading.Thread(
                target=self._worker_loop,
                daemon=True,
                name=f"{self._thread_name_prefix}-{len(self._threads)}"
            )
            t.start()
            self._threads.append(t)

    def _worker_loop(self):
        while True:
            item = self._work_queue.get()
            if item is None:
                # Sentinel
                break

            fn, args, kwargs, future = item

            if not future.set_running_or_notify_cancel():
                continue

            try:
                result = fn(*args, **kwargs)
            except BaseException as e:
                future.set_exception(e)
            else:
                future.set_result(result)

    def shutdown(self, wait=True, *, cancel_futures=False):
        with self._lock:
            self._shutdown = True
            threads = list(self._threads)

        if cancel_futures:
            while True:
                try:
                    item = self._work_queue.get_nowait()
                except queue.Empty:
                    break
                if item is not None:
                    item[3].cancel()

        # One sentinel per worker
        for _ in threads:
            self._work_queue.put(None)

        if wait:
            for t in threads:
                t.join()

    def map(self, fn, *iterables, timeout=None, chunksize=1):
        """
        Returns an iterator equivalent to map(fn, *iterables).

        All calls are submitted up front; results are yielded in submission
        order, each waiting at most `timeout` seconds.
        """
        futures = [self.submit(fn, *args) for args in zip(*iterables)]

        def result_iterator():
            for f in futures:
                yield f.result(timeout=timeout)

        return result_iterator()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
        return False


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split `items` into consecutive lists of at most `size` elements."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class KeyedLock:
    """
    A family of mutexes addressed by key.

    Locks are created on demand and dropped once no thread holds or waits
    for them, so the table does not grow with the number of distinct keys.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, List] = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            slot = self._locks.get(key)
            if slot is None:
                slot = [threading.Lock(), 0]
                self._locks[key] = slot
            slot[1] += 1

        try:
            with slot[0]:
                yield
        finally:
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
