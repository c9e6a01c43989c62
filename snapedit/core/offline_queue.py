"""
Offline Queue Manager
=====================

Holds edit requests made while the device has no connectivity and replays
them once it returns.

Entry lifecycle:
    Queued -> Processing -> Completed (removed, COMPLETED event)
                         -> Failed -> Queued again with retry_count + 1
                         -> PermanentlyFailed once retry_count reaches the
                            maximum (removed, PERMANENTLY_FAILED event)

Draining happens in waves of `batch_size` entries on a background worker
thread. When entries remain after a wave, a follow-up wave is scheduled
after `drain_delay` seconds, until the queue is empty or the connection is
lost. Every mutation is persisted through the QueueStore when one is set.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from snapedit.core import config
from snapedit.core.models import EditRequest, EditResult, OfflineQueueEntry
from snapedit.core.queue_store import QueueStore
from snapedit.utils.background_worker import BackgroundWorker

logger = logging.getLogger(__name__)

DRAIN_TASK = "drain"


class QueueEventType(Enum):
    QUEUED = "queued"
    COMPLETED = "completed"
    PERMANENTLY_FAILED = "permanently_failed"


@dataclass(frozen=True)
class QueueEvent:
    """Notification sent to queue listeners."""
    type: QueueEventType
    entry_id: str
    instruction: str
    context: str
    result: Optional[EditResult] = None


QueueListener = Callable[[QueueEvent], None]


class OfflineQueueManager:
    """
    Durable queue of edits waiting for connectivity.

    Args:
        processor: Object exposing `edit_with_retry(request) -> EditResult`
                   (normally the RetryController).
        store: Durable storage; None keeps the queue in memory only.
        online: Initial connectivity state.
        clock: Wall clock in seconds, used for `enqueued_at`.
        batch_size: Entries processed per wave.
        max_retries: Failed drains after which an entry is dropped.
        drain_delay: Seconds between waves.
    """

    def __init__(
        self,
        processor,
        store: Optional[QueueStore] = None,
        online: bool = True,
        clock: Callable[[], float] = time.time,
        batch_size: int = config.OFFLINE_BATCH_SIZE,
        max_retries: int = config.OFFLINE_MAX_RETRIES,
        drain_delay: float = config.OFFLINE_DRAIN_DELAY_SECONDS,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self._processor = processor
        self._store = store
        self._online = online
        self._clock = clock
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.drain_delay = drain_delay

        self._lock = threading.Lock()
        self._drain_lock = threading.Lock()
        self._entries: List[OfflineQueueEntry] = []
        self._in_flight: List[OfflineQueueEntry] = []
        self._listeners: List[QueueListener] = []
        self._timer: Optional[threading.Timer] = None
        self._closed = False
        self._worker = BackgroundWorker(name="OfflineDrain")

        if self._store is not None:
            try:
                self._entries = self._store.load()
            except OSError as e:
                logger.error(f"Failed to load offline queue: {e}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_online(self) -> bool:
        with self._lock:
            return self._online

    def add_listener(self, listener: QueueListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: QueueListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def enqueue(self, request: EditRequest, context: str = "") -> str:
        """
        Park a request until connectivity returns.

        The entry is persisted before this returns.

        Returns:
            The id of the new queue entry.
        """
        entry = OfflineQueueEntry(
            id=uuid.uuid4().hex,
            request=request,
            context=context,
            enqueued_at=self._clock(),
        )
        with self._lock:
            self._entries.append(entry)
            self._persist_locked()
            length = len(self._entries) + len(self._in_flight)

        logger.info(f"Edit queued for when connection returns: \"{request.instruction}\" ({length} pending)")
        self._emit(QueueEvent(QueueEventType.QUEUED, entry.id, request.instruction, context))
        return entry.id

    def set_online(self, online: bool) -> None:
        """
        Report a connectivity change.

        Going online schedules a drain on the worker thread; going offline
        cancels any scheduled drain. A wave already running stops before its
        next entry.
        """
        with self._lock:
            was_online = self._online
            self._online = online
            if not online:
                self._cancel_timer_locked()

        if online and not was_online:
            logger.info("Connection restored, processing offline queue...")
            self._worker.submit_replacing(DRAIN_TASK, self.process_queue)
        elif was_online and not online:
            logger.info("Connection lost, switching to offline mode...")
            self._worker.cancel_all()

    def process_queue(self) -> int:
        """
        Process one wave of up to `batch_size` entries.

        Only one wave runs at a time; a call made while another wave is
        running returns immediately.

        Returns:
            Number of entries that left the queue (completed or dropped).
        """
        if not self._drain_lock.acquire(blocking=False):
            logger.debug("Offline drain already running, skipping")
            return 0

        try:
            with self._lock:
                if not self._online or not self._entries or self._closed:
                    return 0
                wave = self._entries[:self.batch_size]
                del self._entries[:self.batch_size]
                self._in_flight = list(wave)
                pending = len(self._entries) + len(wave)

            logger.info(f"Processing {len(wave)} of {pending} offline edits...")
            removed = 0
            for entry in wave:
                if not self.is_online:
                    with self._lock:
                        self._entries[0:0] = self._in_flight
                        self._in_flight = []
                    logger.info("Connection lost during offline drain, pausing")
                    break
                if self._process_entry(entry):
                    removed += 1

            with self._lock:
                self._in_flight = []
                self._persist_locked()
                if self._entries and self._online and not self._closed:
                    self._schedule_follow_up_locked()

            return removed
        finally:
            self._drain_lock.release()

    def queue_status(self) -> Dict[str, Any]:
        """
        Returns:
            dict: queue_length, oldest_request_timestamp (None when empty)
                  and is_online.
        """
        with self._lock:
            entries = self._in_flight + self._entries
            return {
                "queue_length": len(entries),
                "oldest_request_timestamp": min((e.enqueued_at for e in entries), default=None),
                "is_online": self._online,
            }

    def pending_entries(self) -> List[OfflineQueueEntry]:
        with self._lock:
            return self._in_flight + self._entries

    def shutdown(self) -> None:
        """Cancel scheduled drains and stop the worker thread."""
        with self._lock:
            self._closed = True
            self._cancel_timer_locked()
        self._worker.shutdown()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _process_entry(self, entry: OfflineQueueEntry) -> bool:
        """Run one entry through the retry controller. Returns True if it left the queue."""
        request = entry.request
        try:
            result = self._processor.edit_with_retry(request)
        except Exception as e:
            logger.warning(f"Offline edit failed for \"{request.instruction}\": {type(e).__name__}: {e}")
            result = None
        else:
            if result.success:
                with self._lock:
                    self._in_flight.remove(entry)
                    self._persist_locked()
                logger.info(f"Processed offline edit: \"{request.instruction}\"")
                self._emit(QueueEvent(QueueEventType.COMPLETED, entry.id, request.instruction,
                                      entry.context, result))
                return True
            logger.warning(f"Offline edit failed for \"{request.instruction}\": {result.error.message}")

        entry.retry_count += 1
        with self._lock:
            self._in_flight.remove(entry)
            requeue = entry.retry_count < self.max_retries
            if requeue:
                self._entries.append(entry)
            self._persist_locked()
        if requeue:
            return False

        logger.error(f"Failed to process offline edit after {entry.retry_count} attempts: \"{request.instruction}\"")
        self._emit(QueueEvent(QueueEventType.PERMANENTLY_FAILED, entry.id, request.instruction,
                              entry.context, result))
        return True

    def _schedule_follow_up_locked(self) -> None:
        self._cancel_timer_locked()
        timer = threading.Timer(self.drain_delay, self._submit_drain)
        timer.daemon = True
        self._timer = timer
        timer.start()
        logger.debug(f"Next offline drain in {self.drain_delay}s")

    def _submit_drain(self) -> None:
        with self._lock:
            self._timer = None
            if not self._online or self._closed:
                return
        self._worker.submit_replacing(DRAIN_TASK, self.process_queue)

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _persist_locked(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(self._in_flight + self._entries)
        except OSError as e:
            logger.error(f"Failed to persist offline queue: {e}")

    def _emit(self, event: QueueEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Offline queue listener failed: {type(e).__name__}: {e}", exc_info=True)
