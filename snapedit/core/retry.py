"""
Retry Controller
================

Wraps the edit service with bounded retries and bounded-concurrency batches.

Per-request lifecycle:
    Pending -> Attempting -> Succeeded
                          -> Failed (retryable) -> Waiting -> Attempting ...
                          -> Failed (terminal)

- At most MAX_RETRIES attempts, waiting RETRY_DELAYS_SECONDS[n] after the
  n-th failed attempt (1s, then 2s).
- Non-retryable failures (4xx, validation) are returned after one attempt.
- edit_batch() runs fixed-size chunks one after another; requests inside a
  chunk run concurrently, so at most `concurrency` edits are in flight.
"""

import logging
import time
from typing import Callable, List, Optional, Sequence

from snapedit.core import config
from snapedit.core.edit_service import EditService
from snapedit.core.errors import EditRetryExhaustedError, is_retryable
from snapedit.core.models import EditRequest, EditResult
from snapedit.utils.concurrency import DaemonThreadPoolExecutor, chunked

logger = logging.getLogger(__name__)


class RetryController:
    """
    Retry and batch front-end for an EditService.

    Attributes:
        service: The wrapped edit service
        max_retries: Maximum number of attempts per request
        retry_delays: Seconds to wait after each failed attempt
    """

    def __init__(
        self,
        service: EditService,
        max_retries: int = config.MAX_RETRIES,
        retry_delays: Sequence[float] = config.RETRY_DELAYS_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.service = service
        self.max_retries = max_retries
        self.retry_delays = tuple(retry_delays)
        self._sleep = sleep

    def _delay_for(self, attempt: int) -> float:
        if not self.retry_delays:
            return 0.0
        return self.retry_delays[min(attempt, len(self.retry_delays) - 1)]

    def edit_with_retry(self, request: EditRequest) -> EditResult:
        """
        Edit an image, re-attempting transient failures.

        Returns:
            The first successful result, the first non-retryable failure, or
            the last failure once the attempts are used up.

        Raises:
            EditRetryExhaustedError: If no attempt produced a result at all.
        """
        last_result: Optional[EditResult] = None
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            logger.info(f"Edit attempt {attempt + 1}/{self.max_retries}")
            try:
                result = self.service.edit(request)
            except Exception as e:
                last_error = e
                logger.warning(f"Edit attempt {attempt + 1} failed: {type(e).__name__}: {e}")
                if not is_retryable(e):
                    break
            else:
                last_result = result
                if result.success:
                    return result
                if not result.retryable:
                    logger.info(f"Not retrying non-retryable error: {result.error.code}")
                    return result
                logger.warning(f"Edit attempt {attempt + 1} failed: {result.error.message}")

            if attempt < self.max_retries - 1:
                delay = self._delay_for(attempt)
                logger.info(f"Waiting {int(delay * 1000)}ms before retry...")
                self._sleep(delay)

        if last_result is not None:
            logger.error(f"All {self.max_retries} edit attempts failed")
            return last_result

        raise EditRetryExhaustedError(
            f"All edit attempts failed: {last_error}" if last_error else "All edit attempts failed"
        ) from last_error

    def edit_batch(self, requests: Sequence[EditRequest],
                   concurrency: int = config.DEFAULT_BATCH_CONCURRENCY) -> List[EditResult]:
        """
        Edit many images with at most `concurrency` requests in flight.

        Chunk n starts only after every request of chunk n-1 has resolved.
        Results are returned in submission order; a request whose retry loop
        raised is reported as a RETRIES_EXHAUSTED failure.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        results: List[EditResult] = []
        if not requests:
            return results

        chunks = chunked(requests, concurrency)
        logger.info(f"Batch editing {len(requests)} images in {len(chunks)} chunk(s) of up to {concurrency}")

        with DaemonThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="BatchEdit") as executor:
            for chunk in chunks:
                results.extend(executor.map(self._edit_reporting_exhaustion, chunk))

        return results

    def _edit_reporting_exhaustion(self, request: EditRequest) -> EditResult:
        try:
            return self.edit_with_retry(request)
        except EditRetryExhaustedError as e:
            return EditResult.failure(code=e.code, message=e.message, retryable=False)
