"""
Edit Errors and Retryability
============================

Exception hierarchy raised by the remote transport and the validation layer,
plus the helpers that decide whether a failure is worth another attempt.

Classification:
    - network failures, timeouts and 5xx responses are retryable
    - 4xx responses, validation failures and malformed responses are not
"""

from typing import Optional

import requests


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EditAPIError(Exception):
    """Base exception for all editing errors."""
    code = "EDIT_ERROR"
    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class EditValidationError(EditAPIError):
    """Raised when an image or instruction fails validation."""
    code = "VALIDATION_ERROR"


class EditNetworkError(EditAPIError):
    """Raised when the remote service cannot be reached."""
    code = "NETWORK_ERROR"
    retryable = True


class EditTimeoutError(EditNetworkError):
    """Raised when the remote service does not answer in time."""
    code = "TIMEOUT"


class EditServerError(EditAPIError):
    """Raised for 5xx responses."""
    code = "SERVER_ERROR"
    retryable = True


class EditClientError(EditAPIError):
    """Raised for 4xx responses."""
    code = "CLIENT_ERROR"


class EditAuthenticationError(EditClientError):
    """Raised for 401/403 responses."""
    code = "AUTHENTICATION_ERROR"


class EditNotFoundError(EditClientError):
    """Raised for 404 responses."""
    code = "NOT_FOUND"


class EditRateLimitError(EditClientError):
    """Raised for 429 responses."""
    code = "RATE_LIMITED"


class EditResponseError(EditAPIError):
    """Raised when a successful response cannot be parsed."""
    code = "INVALID_RESPONSE"


class EditRetryExhaustedError(EditAPIError):
    """Raised when every attempt failed without producing a result."""
    code = "RETRIES_EXHAUSTED"


# ============================================================================
# CLASSIFICATION
# ============================================================================

def error_from_status(status_code: int, message: str) -> EditAPIError:
    """
    Map a non-2xx HTTP status to the matching exception.

    Args:
        status_code: HTTP status returned by the remote service
        message: Human readable description

    Returns:
        An EditAPIError subclass instance (not raised)
    """
    if status_code in (401, 403):
        return EditAuthenticationError(message, status_code)
    if status_code == 404:
        return EditNotFoundError(message, status_code)
    if status_code == 429:
        return EditRateLimitError(message, status_code)
    if 400 <= status_code < 500:
        return EditClientError(message, status_code)
    if 500 <= status_code < 600:
        return EditServerError(message, status_code)
    return EditAPIError(message, status_code)


def is_retryable_status(status_code: Optional[int]) -> bool:
    return status_code is not None and 500 <= status_code < 600


def is_retryable(error: BaseException) -> bool:
    """Decide whether an exception describes a transient failure."""
    if isinstance(error, EditAPIError):
        if error.status_code is not None and 400 <= error.status_code < 500:
            return False
        return error.retryable or is_retryable_status(error.status_code)
    if isinstance(error, (requests.Timeout, requests.ConnectionError, TimeoutError, ConnectionError)):
        return True
    return False
