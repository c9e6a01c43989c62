"""
Image Editor
============

Top-level orchestrator. Owns one content cache and one offline queue and
wires them to the transport, the edit service and the retry controller:

    caller -> EditService (validate, preprocess, cache, transport)
           -> RetryController (attempts, backoff, batches)
           -> OfflineQueueManager (while disconnected)

Instances never share state unless the same cache or transport is passed to
both explicitly.
"""

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from snapedit.core import config
from snapedit.core.edit_cache import ContentCache
from snapedit.core.edit_service import EditService
from snapedit.core.models import EditOptions, EditRequest, EditResult
from snapedit.core.offline_queue import OfflineQueueManager
from snapedit.core.prompts import get_suggested_prompts
from snapedit.core.queue_store import QueueStore
from snapedit.core.retry import RetryController
from snapedit.core.settings import EditorConfig
from snapedit.integrations.nanobanana_client import NanoBananaClient

logger = logging.getLogger(__name__)


class ImageEditor:
    """
    Public editing surface.

    Args:
        settings: Service configuration; defaults to EditorConfig().
        transport: Replaces the NanoBananaClient built from `settings`.
        cache: Replaces the private ContentCache.
        online: Initial connectivity state of the offline queue.
        sleep: Used for retry backoff.
        clock: Wall clock in seconds.
    """

    def __init__(
        self,
        settings: Optional[EditorConfig] = None,
        transport=None,
        cache: Optional[ContentCache] = None,
        online: bool = True,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or EditorConfig()
        self.transport = transport if transport is not None else NanoBananaClient(
            api_key=self.settings.api_key,
            endpoint=self.settings.endpoint,
            model=self.settings.model,
            timeout=self.settings.timeout,
            platform=self.settings.platform,
            client_version=self.settings.client_version,
        )
        self.cache = cache if cache is not None else ContentCache(clock=clock)
        self.service = EditService(self.transport, self.cache, model=self.settings.model, clock=clock)
        self.retry = RetryController(self.service, sleep=sleep)

        store = None
        if self.settings.offline_storage_dir:
            store = QueueStore(Path(self.settings.offline_storage_dir).expanduser())
        self.offline_queue = OfflineQueueManager(self.retry, store=store, online=online, clock=clock)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    @staticmethod
    def _request(image: bytes, prompt: str, options: Optional[EditOptions]) -> EditRequest:
        return EditRequest(image_bytes=image, instruction=prompt, options=options or EditOptions())

    def edit_image(self, image: bytes, prompt: str, options: Optional[EditOptions] = None) -> EditResult:
        """Edit an image once. Failures come back as an unsuccessful EditResult."""
        return self.service.edit(self._request(image, prompt, options))

    def edit_image_with_retry(self, image: bytes, prompt: str,
                              options: Optional[EditOptions] = None) -> EditResult:
        """Edit an image, retrying transient failures with backoff."""
        return self.retry.edit_with_retry(self._request(image, prompt, options))

    def edit_images_in_batch(self, requests: Sequence[EditRequest],
                             concurrency: int = config.DEFAULT_BATCH_CONCURRENCY) -> List[EditResult]:
        """Edit many images, at most `concurrency` at a time, results in input order."""
        return self.retry.edit_batch(requests, concurrency)

    def get_suggested_prompts(self, context: str) -> List[str]:
        return get_suggested_prompts(context)

    # ------------------------------------------------------------------
    # Offline support
    # ------------------------------------------------------------------

    def queue_edit(self, image: bytes, prompt: str, context: str = "",
                   options: Optional[EditOptions] = None) -> str:
        """Park an edit until connectivity returns. Returns the queue entry id."""
        return self.offline_queue.enqueue(self._request(image, prompt, options), context)

    def set_online(self, online: bool) -> None:
        self.offline_queue.set_online(online)

    def get_queue_status(self) -> Dict[str, Any]:
        return self.offline_queue.queue_status()

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """Cache statistics, active configuration and transport metrics."""
        metrics = self.transport.get_metrics() if hasattr(self.transport, "get_metrics") else {}
        return {
            "cache": self.cache.stats(),
            "config": {
                "model": self.settings.model,
                "max_resolution": self.settings.max_resolution,
                "timeout": self.settings.timeout,
            },
            "requests": metrics,
        }

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Image edit cache cleared")

    def close(self) -> None:
        """Stop the offline queue and release the transport."""
        self.offline_queue.shutdown()
        if hasattr(self.transport, "close"):
            self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def create_editor(settings: Optional[EditorConfig] = None, online: bool = True, **overrides) -> ImageEditor:
    """
    Build a fully wired ImageEditor.

    Configuration comes from `settings` when given, otherwise from the
    environment with `overrides` applied (see EditorConfig.from_env).
    A missing API key is logged; edits will then fail with an
    authentication error instead of raising here.
    """
    if settings is None:
        settings = EditorConfig.from_env(**overrides)
    if not settings.api_key:
        logger.warning(
            f"Nano Banana API key not configured. Set {config.ENV_API_KEY} to enable image editing."
        )
    return ImageEditor(settings, online=online)
