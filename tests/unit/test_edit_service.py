"""
Unit tests for the cache-first edit service.
"""

import io
import threading
import time
import unittest

import requests
from PIL import Image

from snapedit.core.edit_cache import ContentCache
from snapedit.core.edit_service import EditService
from snapedit.core.errors import EditServerError, error_from_status
from snapedit.core.models import EditOptions, EditRequest


def _png(color=(10, 200, 90), size=(40, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeTransport:
    """Records submissions and replays scripted outcomes (dicts or exceptions)."""

    def __init__(self, *outcomes, delay: float = 0.0):
        self.outcomes = list(outcomes)
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def submit_edit(self, image, instruction, options):
        with self._lock:
            self.calls.append((image, instruction, options))
            outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if self.delay:
            time.sleep(self.delay)
        if isinstance(outcome, BaseException):
            raise outcome
        return dict(outcome)


SUCCESS = {
    "edited_image_url": "https://cdn.example/edited.jpg",
    "edited_image_id": "edit-42",
    "confidence": 0.93,
    "model_version": "nano-banana-2",
    "iterations": 2,
    "image_width": 40,
    "image_height": 30,
    "file_size": 1234,
}


class TestEditService(unittest.TestCase):
    def setUp(self):
        self.image = _png()

    def _service(self, transport):
        return EditService(transport, ContentCache(), clock=lambda: 1_700_000_000.0)

    def test_success_populates_metadata(self):
        transport = FakeTransport(SUCCESS)
        service = self._service(transport)

        result = service.edit(EditRequest(self.image, "brighten"))

        self.assertTrue(result.success)
        self.assertEqual(result.edited_image_url, SUCCESS["edited_image_url"])
        self.assertEqual(result.edited_image_id, "edit-42")
        self.assertEqual(result.metadata.prompt, "brighten")
        self.assertEqual(result.metadata.confidence, 0.93)
        self.assertEqual(result.metadata.model_version, "nano-banana-2")
        self.assertEqual(result.metadata.iterations, 2)
        self.assertEqual(result.metadata.image_size.file_size, 1234)
        self.assertEqual(len(result.metadata.original_image_id), 16)
        self.assertGreaterEqual(result.metadata.processing_time_ms, 0)

    def test_second_identical_edit_hits_cache(self):
        transport = FakeTransport(SUCCESS)
        service = self._service(transport)

        first = service.edit(EditRequest(self.image, "brighten"))
        second = service.edit(EditRequest(self.image, "brighten"))

        self.assertEqual(len(transport.calls), 1)
        self.assertEqual(first, second)

    def test_different_prompt_or_bytes_miss_cache(self):
        transport = FakeTransport(SUCCESS)
        service = self._service(transport)

        service.edit(EditRequest(self.image, "brighten"))
        service.edit(EditRequest(self.image, "darken"))
        service.edit(EditRequest(_png(color=(1, 2, 3)), "brighten"))

        self.assertEqual(len(transport.calls), 3)

    def test_failure_is_not_cached(self):
        transport = FakeTransport(error_from_status(503, "busy"), SUCCESS)
        service = self._service(transport)

        failed = service.edit(EditRequest(self.image, "brighten"))
        succeeded = service.edit(EditRequest(self.image, "brighten"))

        self.assertFalse(failed.success)
        self.assertEqual(failed.error.code, "SERVER_ERROR")
        self.assertTrue(failed.error.retryable)
        self.assertTrue(succeeded.success)
        self.assertEqual(len(transport.calls), 2)

    def test_client_error_is_not_retryable(self):
        service = self._service(FakeTransport(error_from_status(404, "missing")))
        result = service.edit(EditRequest(self.image, "brighten"))
        self.assertEqual(result.error.code, "NOT_FOUND")
        self.assertEqual(result.error.status_code, 404)
        self.assertFalse(result.retryable)

    def test_raw_transport_exceptions_are_classified(self):
        service = self._service(FakeTransport(requests.Timeout("slow")))
        result = service.edit(EditRequest(self.image, "brighten"))
        self.assertEqual(result.error.code, "TIMEOUT")
        self.assertTrue(result.retryable)

        service = self._service(FakeTransport(ConnectionError("reset")))
        result = service.edit(EditRequest(self.image, "brighten"))
        self.assertEqual(result.error.code, "NETWORK_ERROR")
        self.assertTrue(result.retryable)

    def test_invalid_input_fails_fast(self):
        transport = FakeTransport(SUCCESS)
        service = self._service(transport)

        bad_image = service.edit(EditRequest(b"not an image", "brighten"))
        empty_prompt = service.edit(EditRequest(self.image, "   "))

        for result in (bad_image, empty_prompt):
            self.assertFalse(result.success)
            self.assertEqual(result.error.code, "VALIDATION_ERROR")
            self.assertFalse(result.retryable)
        self.assertEqual(transport.calls, [])

    def test_response_fallbacks(self):
        service = self._service(FakeTransport({"edited_image_url": "https://cdn.example/a.jpg"}))

        result = service.edit(EditRequest(self.image, "brighten", EditOptions(iterations=3)))

        identity = result.metadata.original_image_id
        self.assertEqual(result.edited_image_id, f"edited-{identity}-1700000000000")
        self.assertIsNone(result.metadata.confidence)
        self.assertEqual(result.metadata.model_version, "gemini-2.5-flash-image")
        self.assertEqual(result.metadata.iterations, 1)
        self.assertEqual(result.metadata.image_size.width, 0)

    def test_confidence_is_clamped(self):
        high = dict(SUCCESS, confidence=1.7)
        result = self._service(FakeTransport(high)).edit(EditRequest(self.image, "brighten"))
        self.assertEqual(result.metadata.confidence, 1.0)

        odd = dict(SUCCESS, confidence="very")
        result = self._service(FakeTransport(odd)).edit(EditRequest(self.image, "brighten"))
        self.assertIsNone(result.metadata.confidence)

    def test_missing_url_is_invalid_response(self):
        result = self._service(FakeTransport({"edited_image_id": "x"})).edit(EditRequest(self.image, "p"))
        self.assertEqual(result.error.code, "INVALID_RESPONSE")
        self.assertFalse(result.retryable)

    def test_concurrent_identical_edits_share_one_call(self):
        transport = FakeTransport(SUCCESS, delay=0.05)
        service = self._service(transport)
        results = []

        def run():
            results.append(service.edit(EditRequest(self.image, "brighten")))

        threads = [threading.Thread(target=run) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(transport.calls), 1)
        self.assertEqual(len(results), 4)
        self.assertTrue(all(r.success for r in results))

    def test_services_do_not_share_cache(self):
        first = FakeTransport(SUCCESS)
        second = FakeTransport(SUCCESS)
        self._service(first).edit(EditRequest(self.image, "brighten"))
        self._service(second).edit(EditRequest(self.image, "brighten"))
        self.assertEqual((len(first.calls), len(second.calls)), (1, 1))

    def test_server_error_exception_type(self):
        result = self._service(FakeTransport(EditServerError("down", 502))).edit(EditRequest(self.image, "p"))
        self.assertEqual(result.error.status_code, 502)


if __name__ == "__main__":
    unittest.main()
