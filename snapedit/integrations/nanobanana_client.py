"""
Nano Banana Edit Client
=======================

Wrapper around the Nano Banana (Gemini 2.5 Flash Image) editing API.
Submits a normalised image plus a natural-language instruction as a
multipart request and returns the parsed JSON response.

Failures are raised as snapedit.core.errors exceptions so that the edit
service can classify them:
    - timeouts and connection failures -> EditTimeoutError / EditNetworkError
    - non-2xx statuses                 -> error_from_status()
    - unparsable success bodies        -> EditResponseError
"""

import logging
import os
import threading
import time
from typing import Any, Dict, List, Optional

import requests

from snapedit.core import config
from snapedit.core.errors import (
    EditNetworkError,
    EditResponseError,
    EditTimeoutError,
    error_from_status,
)
from snapedit.core.models import EditOptions, NormalizedImage
from snapedit.utils.logger import log_api_request, log_api_response

logger = logging.getLogger(__name__)

# Extension used for the uploaded file name, keyed by MIME type
_UPLOAD_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


class NanoBananaClient:
    """
    Client wrapper for the remote image editing API.

    Attributes:
        api_key (str): Bearer token for authentication.
        endpoint (str): Base URL of the editing service.
        model (str): Model identifier sent with each edit.
        timeout (float): Connect timeout and read (idle) timeout in seconds.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: str = config.DEFAULT_ENDPOINT,
        model: str = config.DEFAULT_MODEL,
        timeout: float = config.NETWORK_TIMEOUT_SECONDS,
        platform: str = config.PLATFORM_NAME,
        client_version: str = config.CLIENT_VERSION,
    ):
        """Initialize the client.

        Args:
            api_key: API key. If None, looks for the NANO_BANANA_API_KEY env var.
            endpoint: Base URL for the API.
            model: Model identifier.
            timeout: Applied to the connect phase and to each socket read.
            platform: Value of the X-Platform header.
            client_version: Value of the X-Version header.
        """
        self.api_key = (api_key or os.environ.get(config.ENV_API_KEY, "")).strip()
        self.endpoint = endpoint.rstrip('/')
        self.model = model
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            config.PLATFORM_HEADER: platform,
            config.VERSION_HEADER: client_version,
        })
        if self.api_key:
            self.session.headers.update({"Authorization": f"Bearer {self.api_key}"})

        # Observability counters
        self._metrics_lock = threading.Lock()
        self._request_count = 0
        self._status_counts: Dict[int, int] = {}
        self._error_counts: Dict[str, int] = {}
        self._latencies_ms: List[float] = []

    def is_available(self) -> bool:
        """Check if the API key is configured."""
        return bool(self.api_key)

    @property
    def edit_url(self) -> str:
        return f"{self.endpoint}{config.EDIT_PATH}"

    def submit_edit(self, image: NormalizedImage, instruction: str, options: EditOptions) -> Dict[str, Any]:
        """Send one edit request to the remote service.

        Args:
            image: Normalised image to upload.
            instruction: Natural-language editing prompt.
            options: Structured edit options.

        Returns:
            dict: The decoded JSON body of a 2xx response.

        Raises:
            EditAPIError: Subclass describing the failure.
        """
        extension = _UPLOAD_EXTENSIONS.get(image.mime_type, "bin")
        files = {"image": (f"image.{extension}", image.data, image.mime_type)}
        data = {"prompt": instruction, "model": self.model}
        data.update(options.to_form_fields())

        log_api_request(logger, "POST", self.edit_url, headers=dict(self.session.headers), data=data)
        logger.info(f"Sending image edit request: \"{instruction}\"")

        start = time.perf_counter()
        try:
            # requests bounds connect and each read separately, not the whole exchange
            resp = self.session.post(self.edit_url, files=files, data=data,
                                     timeout=(self.timeout, self.timeout))
        except requests.Timeout as e:
            self._record_error("Timeout", transport=True)
            raise EditTimeoutError(f"Request timeout after {self.timeout}s: {e}") from e
        except requests.ConnectionError as e:
            self._record_error("ConnectionError", transport=True)
            raise EditNetworkError(f"Network error: {e}") from e
        except requests.RequestException as e:
            self._record_error(type(e).__name__, transport=True)
            raise EditNetworkError(f"Network error: {e}") from e

        elapsed = time.perf_counter() - start
        self._record_response(resp.status_code, elapsed)

        if not 200 <= resp.status_code < 300:
            detail = ""
            try:
                body = resp.json()
                if isinstance(body, dict):
                    detail = str(body.get("message") or "")
            except ValueError:
                pass
            message = f"API Error: {resp.status_code} {resp.reason or ''}. {detail}".strip()
            log_api_response(logger, resp.status_code, elapsed_time=elapsed)
            self._record_error(f"HTTP{resp.status_code}")
            raise error_from_status(resp.status_code, message)

        try:
            payload = resp.json()
        except ValueError as e:
            self._record_error("InvalidJSON")
            raise EditResponseError(f"Invalid JSON in edit response: {e}", resp.status_code) from e

        if not isinstance(payload, dict):
            self._record_error("InvalidJSON")
            raise EditResponseError("Edit response is not a JSON object", resp.status_code)

        log_api_response(logger, resp.status_code, payload, elapsed)
        return payload

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def _record_response(self, status_code: int, elapsed: float) -> None:
        with self._metrics_lock:
            self._request_count += 1
            self._status_counts[status_code] = self._status_counts.get(status_code, 0) + 1
            self._latencies_ms.append(elapsed * 1000.0)

    def _record_error(self, name: str, transport: bool = False) -> None:
        with self._metrics_lock:
            if transport:
                # No response was recorded for this request
                self._request_count += 1
            self._error_counts[name] = self._error_counts.get(name, 0) + 1

    def get_request_count(self) -> int:
        with self._metrics_lock:
            return self._request_count

    def get_metrics(self) -> Dict[str, Any]:
        """Snapshot of request counters, suitable for JSON export."""
        with self._metrics_lock:
            latencies = list(self._latencies_ms)
            return {
                "requests": self._request_count,
                "status_codes": {str(k): v for k, v in self._status_counts.items()},
                "errors": dict(self._error_counts),
                "avg_latency_ms": (sum(latencies) / len(latencies)) if latencies else 0.0,
            }

    def close(self):
        """Release the underlying HTTP connection pool."""
        self.session.close()

    def __repr__(self) -> str:
        return f"<NanoBananaClient endpoint={self.endpoint} has_api_key={bool(self.api_key)}>"
