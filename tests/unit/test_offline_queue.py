"""
Unit tests for the offline queue manager and its durable storage.
"""

import json
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

from snapedit.core.models import EditOptions, EditRequest, EditResult, OfflineQueueEntry, Quality
from snapedit.core.offline_queue import OfflineQueueManager, QueueEventType
from snapedit.core.queue_store import QueueStore


class FakeProcessor:
    """Stands in for the retry controller."""

    def __init__(self, succeed=True, on_edit=None):
        self.succeed = succeed
        self.on_edit = on_edit
        self.requests = []
        self._lock = threading.Lock()

    def edit_with_retry(self, request):
        with self._lock:
            self.requests.append(request)
        if self.on_edit:
            self.on_edit(request)
        if self.succeed:
            return EditResult(success=True, edited_image_url=f"https://cdn.example/{request.instruction}.jpg")
        return EditResult.failure("SERVER_ERROR", "still down", True, 503)


class EventCollector:
    def __init__(self, expected: int, event_type: QueueEventType):
        self.expected = expected
        self.event_type = event_type
        self.events = []
        self.done = threading.Event()
        self._lock = threading.Lock()

    def __call__(self, event):
        with self._lock:
            self.events.append(event)
            if sum(1 for e in self.events if e.type is self.event_type) >= self.expected:
                self.done.set()


class TestOfflineQueueManager(unittest.TestCase):
    def setUp(self):
        self.managers = []

    def tearDown(self):
        for manager in self.managers:
            manager.shutdown()

    def _manager(self, processor, **kwargs):
        kwargs.setdefault("drain_delay", 0.01)
        manager = OfflineQueueManager(processor, **kwargs)
        self.managers.append(manager)
        return manager

    def test_enqueue_while_offline(self):
        clock_values = iter([100.0, 200.0])
        manager = self._manager(FakeProcessor(), online=False, clock=lambda: next(clock_values))
        collector = EventCollector(2, QueueEventType.QUEUED)
        manager.add_listener(collector)

        first = manager.enqueue(EditRequest(b"a", "brighten"), "field-log")
        second = manager.enqueue(EditRequest(b"b", "crop"), "chat")

        self.assertNotEqual(first, second)
        self.assertEqual(manager.queue_status(), {
            "queue_length": 2,
            "oldest_request_timestamp": 100.0,
            "is_online": False,
        })
        self.assertEqual([e.entry_id for e in collector.events], [first, second])

    def test_process_queue_does_nothing_offline(self):
        processor = FakeProcessor()
        manager = self._manager(processor, online=False)
        manager.enqueue(EditRequest(b"a", "brighten"))
        self.assertEqual(manager.process_queue(), 0)
        self.assertEqual(processor.requests, [])

    def test_reconnect_drains_queue(self):
        processor = FakeProcessor()
        manager = self._manager(processor, online=False)
        collector = EventCollector(3, QueueEventType.COMPLETED)
        manager.add_listener(collector)
        for i in range(3):
            manager.enqueue(EditRequest(b"img", f"edit-{i}"), "field-log")

        manager.set_online(True)

        self.assertTrue(collector.done.wait(2.0))
        self.assertEqual(manager.queue_status()["queue_length"], 0)
        self.assertIsNone(manager.queue_status()["oldest_request_timestamp"])
        completed = [e for e in collector.events if e.type is QueueEventType.COMPLETED]
        self.assertEqual([e.instruction for e in completed], ["edit-0", "edit-1", "edit-2"])
        self.assertTrue(all(e.result.success for e in completed))

    def test_waves_are_bounded_by_batch_size(self):
        processor = FakeProcessor()
        manager = self._manager(processor, drain_delay=60.0)
        for i in range(7):
            manager.enqueue(EditRequest(b"img", f"edit-{i}"))

        self.assertEqual(manager.process_queue(), 5)
        self.assertEqual(len(processor.requests), 5)
        self.assertEqual(manager.queue_status()["queue_length"], 2)

    def test_follow_up_waves_until_empty(self):
        manager = self._manager(FakeProcessor(), online=False)
        collector = EventCollector(12, QueueEventType.COMPLETED)
        manager.add_listener(collector)
        for i in range(12):
            manager.enqueue(EditRequest(b"img", f"edit-{i}"))

        manager.set_online(True)

        self.assertTrue(collector.done.wait(3.0))
        self.assertEqual(manager.queue_status()["queue_length"], 0)

    def test_permanent_failure_after_three_drains(self):
        processor = FakeProcessor(succeed=False)
        manager = self._manager(processor, online=False)
        collector = EventCollector(3, QueueEventType.PERMANENTLY_FAILED)
        manager.add_listener(collector)
        for i in range(3):
            manager.enqueue(EditRequest(b"img", f"edit-{i}"))

        manager.set_online(True)

        self.assertTrue(collector.done.wait(3.0))
        self.assertEqual(manager.queue_status()["queue_length"], 0)
        self.assertEqual(len(processor.requests), 9)
        failed = [e for e in collector.events if e.type is QueueEventType.PERMANENTLY_FAILED]
        self.assertTrue(all(e.result.error.code == "SERVER_ERROR" for e in failed))

    def test_failed_entry_is_requeued_with_retry_count(self):
        manager = self._manager(FakeProcessor(succeed=False), drain_delay=60.0)
        manager.enqueue(EditRequest(b"img", "brighten"))

        self.assertEqual(manager.process_queue(), 0)

        entries = manager.pending_entries()
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].retry_count, 1)

    def test_raising_processor_counts_as_failure(self):
        def explode(request):
            raise RuntimeError("no result")

        manager = self._manager(FakeProcessor(on_edit=explode), drain_delay=60.0)
        manager.enqueue(EditRequest(b"img", "brighten"))

        manager.process_queue()

        self.assertEqual(manager.pending_entries()[0].retry_count, 1)

    def test_going_offline_mid_wave_keeps_remaining_entries(self):
        holder = {}

        def drop_connection(request):
            if request.instruction == "edit-1":
                holder["manager"].set_online(False)

        manager = self._manager(FakeProcessor(on_edit=drop_connection), drain_delay=60.0)
        holder["manager"] = manager
        for i in range(4):
            manager.enqueue(EditRequest(b"img", f"edit-{i}"))

        removed = manager.process_queue()

        self.assertEqual(removed, 2)
        self.assertEqual([e.request.instruction for e in manager.pending_entries()], ["edit-2", "edit-3"])
        self.assertFalse(manager.queue_status()["is_online"])

    def test_removed_listener_is_not_notified(self):
        manager = self._manager(FakeProcessor(), online=False)
        kept = EventCollector(2, QueueEventType.QUEUED)
        dropped = EventCollector(2, QueueEventType.QUEUED)
        manager.add_listener(kept)
        manager.add_listener(dropped)

        manager.enqueue(EditRequest(b"img", "brighten"))
        manager.remove_listener(dropped)
        manager.remove_listener(dropped)
        manager.enqueue(EditRequest(b"img", "crop"))

        self.assertEqual(len(kept.events), 2)
        self.assertEqual(len(dropped.events), 1)

    def test_failing_listener_does_not_break_enqueue(self):
        manager = self._manager(FakeProcessor(), online=False)
        manager.add_listener(lambda event: 1 / 0)
        entry_id = manager.enqueue(EditRequest(b"img", "brighten"))
        self.assertTrue(entry_id)

    def test_queue_survives_restart(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = QueueStore(tmp)
            manager = self._manager(FakeProcessor(), store=store, online=False, clock=lambda: 42.0)
            manager.enqueue(EditRequest(b"raw-image-bytes", "brighten", EditOptions(iterations=2)), "document")
            manager.shutdown()

            processor = FakeProcessor()
            restored = self._manager(processor, store=QueueStore(tmp), online=False)
            self.assertEqual(restored.queue_status()["queue_length"], 1)
            self.assertEqual(restored.queue_status()["oldest_request_timestamp"], 42.0)

            collector = EventCollector(1, QueueEventType.COMPLETED)
            restored.add_listener(collector)
            restored.set_online(True)
            self.assertTrue(collector.done.wait(2.0))

            request = processor.requests[0]
            self.assertEqual(request.image_bytes, b"raw-image-bytes")
            self.assertEqual(request.options.iterations, 2)
            self.assertEqual(collector.events[0].context, "document")
            restored.shutdown()
            self.assertEqual(QueueStore(tmp).load(), [])

    def _durable_state_during(self, instruction, succeed):
        """Snapshot the stored queue while `instruction` is being processed."""
        snapshot = {}
        with tempfile.TemporaryDirectory() as tmp:
            def capture(request):
                if request.instruction == instruction:
                    snapshot["entries"] = [
                        (e.request.instruction, e.retry_count) for e in QueueStore(tmp).load()
                    ]

            manager = self._manager(FakeProcessor(succeed=succeed, on_edit=capture),
                                    store=QueueStore(tmp), drain_delay=60.0)
            manager.enqueue(EditRequest(b"img-a", "a"))
            manager.enqueue(EditRequest(b"img-b", "b"))

            manager.process_queue()
            manager.shutdown()
        return snapshot["entries"]

    def test_completed_entry_is_removed_from_storage_before_next_entry(self):
        self.assertEqual(self._durable_state_during("b", succeed=True), [("b", 0)])

    def test_failed_entry_is_stored_with_retry_count_before_next_entry(self):
        self.assertEqual(self._durable_state_during("b", succeed=False), [("b", 0), ("a", 1)])


class TestQueueStore(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = QueueStore(self._tmp.name, storage_key="edits")

    def tearDown(self):
        self._tmp.cleanup()

    def _entry(self, entry_id, data=b"bytes"):
        request = EditRequest(data, f"prompt-{entry_id}", EditOptions(quality=Quality.STANDARD, style="noir"))
        return OfflineQueueEntry(id=entry_id, request=request, context="chat", enqueued_at=10.5, retry_count=2)

    def test_round_trip(self):
        self.store.save([self._entry("a", b"AAA"), self._entry("b", b"BBB")])

        loaded = self.store.load()

        self.assertEqual([e.id for e in loaded], ["a", "b"])
        self.assertEqual(loaded[0].request.image_bytes, b"AAA")
        self.assertEqual(loaded[0].request.options.quality, Quality.STANDARD)
        self.assertEqual(loaded[0].request.options.style, "noir")
        self.assertEqual(loaded[1].retry_count, 2)
        self.assertEqual(loaded[1].enqueued_at, 10.5)

    def test_document_has_no_binary_payload(self):
        self.store.save([self._entry("a")])
        records = json.loads(Path(self._tmp.name, "edits.json").read_text(encoding="utf-8"))
        self.assertEqual(records[0]["blob"], "a.bin")
        self.assertNotIn("image_bytes", records[0])

    def test_stale_blobs_are_removed(self):
        self.store.save([self._entry("a"), self._entry("b")])
        self.store.save([self._entry("b")])
        self.assertEqual(sorted(p.name for p in self.store.blob_dir.iterdir()), ["b.bin"])

    def test_blob_only_appears_once_fully_written(self):
        with patch("snapedit.core.queue_store.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                self.store.save([self._entry("a", b"AAA")])

        self.assertFalse((self.store.blob_dir / "a.bin").exists())
        self.assertFalse(self.store.document_path.exists())

        self.store.save([self._entry("a", b"AAA")])
        self.assertEqual(sorted(p.name for p in self.store.blob_dir.iterdir()), ["a.bin"])
        self.assertEqual(self.store.load()[0].request.image_bytes, b"AAA")

    def test_entry_with_missing_blob_is_dropped(self):
        self.store.save([self._entry("a"), self._entry("b")])
        (self.store.blob_dir / "a.bin").unlink()
        self.assertEqual([e.id for e in self.store.load()], ["b"])

    def test_missing_or_corrupt_document(self):
        self.assertEqual(self.store.load(), [])
        self.store.document_path.write_text("{oops", encoding="utf-8")
        self.assertEqual(self.store.load(), [])


if __name__ == "__main__":
    unittest.main()
