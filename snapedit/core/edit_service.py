"""
Edit Service
============

Performs a single image edit against the remote service, consulting the
content cache first and populating it on success.

Pipeline for one request:
    1. Validate the instruction and the image (fail fast, non-retryable)
    2. Normalise the image
    3. Compute its content identity and look it up in the cache
    4. On a miss, submit one network exchange through the transport
    5. Build an EditResult and cache it (successes only)

Expected failures never raise: they come back as a failed EditResult whose
error carries a code, a message and a retryable flag. Work on the same
cache key is serialised, so concurrent identical requests perform at most
one network exchange.
"""

import logging
import math
import time
from typing import Any, Callable, Dict, Optional

import requests

from snapedit.core import config
from snapedit.core.edit_cache import ContentCache
from snapedit.core.errors import (
    EditAPIError,
    EditNetworkError,
    EditResponseError,
    EditTimeoutError,
    EditValidationError,
    is_retryable,
)
from snapedit.core.identity import cache_key, image_identity
from snapedit.core.image_processing import ImageValidationError, preprocess_image, validate_image
from snapedit.core.models import EditMetadata, EditRequest, EditResult, ImageSize
from snapedit.utils.concurrency import KeyedLock

logger = logging.getLogger(__name__)


class EditService:
    """
    Cache-first edit client.

    Args:
        transport: Object exposing `submit_edit(image, instruction, options) -> dict`
                   (normally a NanoBananaClient).
        cache: Content cache shared by all edits of this service.
        model: Model name reported when the service omits `model_version`.
        clock: Wall clock in seconds, used for generated ids.
    """

    def __init__(
        self,
        transport,
        cache: Optional[ContentCache] = None,
        model: str = config.DEFAULT_MODEL,
        clock: Callable[[], float] = time.time,
    ):
        self.transport = transport
        self.cache = cache if cache is not None else ContentCache()
        self.model = model
        self._clock = clock
        self._key_locks = KeyedLock()

    def edit(self, request: EditRequest) -> EditResult:
        """
        Edit one image.

        Args:
            request: The image, instruction and options to submit

        Returns:
            EditResult: success with metadata, or failure with an EditError
        """
        start = time.perf_counter()

        if not request.instruction or not request.instruction.strip():
            return self._failure(EditValidationError("Instruction must not be empty"))

        validation = validate_image(request.image_bytes)
        if not validation.valid:
            return self._failure(EditValidationError(validation.error or "Invalid image"))

        try:
            normalized = preprocess_image(request.image_bytes)
        except ImageValidationError as e:
            return self._failure(EditValidationError(str(e)))

        identity = image_identity(normalized.data)
        key = cache_key(identity, request.instruction)

        with self._key_locks.hold(str(key)):
            cached = self.cache.lookup(identity, request.instruction)
            if cached is not None:
                return cached

            try:
                payload = self.transport.submit_edit(normalized, request.instruction, request.options)
                result = self._build_result(payload, identity, request, start)
            except EditAPIError as e:
                return self._failure(e)
            except (requests.Timeout, TimeoutError) as e:
                return self._failure(EditTimeoutError(f"Request timeout: {e}"))
            except (requests.RequestException, ConnectionError) as e:
                return self._failure(EditNetworkError(f"Network error: {e}"))

            self.cache.store(identity, request.instruction, result)

        logger.info(f"Image edit completed in {result.metadata.processing_time_ms}ms")
        return result

    def _build_result(self, payload: Dict[str, Any], identity: str,
                      request: EditRequest, start: float) -> EditResult:
        edited_url = payload.get("edited_image_url")
        if not edited_url:
            raise EditResponseError("Edit response is missing edited_image_url")

        try:
            metadata = EditMetadata(
                original_image_id=identity,
                prompt=request.instruction,
                processing_time_ms=int((time.perf_counter() - start) * 1000),
                confidence=_parse_confidence(payload.get("confidence")),
                model_version=payload.get("model_version") or self.model,
                iterations=int(payload.get("iterations") or 1),
                image_size=ImageSize(
                    width=int(payload.get("image_width") or 0),
                    height=int(payload.get("image_height") or 0),
                    file_size=int(payload.get("file_size") or 0),
                ),
            )
        except (TypeError, ValueError) as e:
            raise EditResponseError(f"Malformed edit response: {e}") from e

        return EditResult(
            success=True,
            edited_image_url=edited_url,
            edited_image_id=payload.get("edited_image_id") or f"edited-{identity}-{int(self._clock() * 1000)}",
            metadata=metadata,
        )

    @staticmethod
    def _failure(error: EditAPIError) -> EditResult:
        logger.error(f"Image edit failed: [{error.code}] {error.message}")
        return EditResult.failure(
            code=error.code,
            message=error.message,
            retryable=is_retryable(error),
            status_code=error.status_code,
        )


def _parse_confidence(value: Any) -> Optional[float]:
    """Confidence clamped to [0, 1]; None when absent or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(confidence):
        return None
    return min(1.0, max(0.0, confidence))
