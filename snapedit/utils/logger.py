"""
Centralized Logging and Security Filtering
==========================================

This module provides the logging infrastructure for snapedit, with an
emphasis on keeping credentials out of log output. The remote editing
service is reached with a bearer token, and request headers are logged at
DEBUG level, so every handler installed here carries a redaction filter.

Key Features:
-------------
- Sensitive Data Masking: Automatic redaction of API keys, bearer tokens and
  passwords using regex and recursive dictionary filtering.
- API Instrumentation: Helpers for logging outgoing edit requests and their
  responses with timing and status.
- Contextual Logging: Timestamps, module origin and line numbers.
"""

import json
import logging
import re
import sys
from pathlib import Path
from typing import Any, Dict, Optional


# Default log directory: <project root>/logs
PROJECT_ROOT = Path(__file__).parent.parent.parent
LOG_DIR = PROJECT_ROOT / "logs"
LOG_FILE_NAME = "snapedit.log"

# Sensitive field patterns to mask
SENSITIVE_FIELDS = {
    'password', 'passwd', 'pwd', 'secret', 'token', 'api_key',
    'apikey', 'auth', 'authorization', 'credentials'
}

# Regex patterns for sensitive data in strings
SENSITIVE_PATTERNS = [
    (re.compile(r'(sk-[a-zA-Z0-9]{20,})'), '***'),  # API keys starting with sk-
    (re.compile(r'(Bearer\s+[a-zA-Z0-9\-._~+/]+=*)'), 'Bearer ***'),  # Bearer tokens
    (re.compile(r'([a-zA-Z0-9]{32,})'), lambda m: f"***{m.group(1)[-4:]}"),  # Long alphanumeric (likely keys)
]


class SensitiveDataFilter(logging.Filter):
    """
    Filtering hook to intercept and redact sensitive information.

    Attached to every handler created by setup_logging(). It scans log
    records for credential patterns and replaces them with masks before the
    record is written.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Mask sensitive data in the log message."""
        if isinstance(record.msg, str):
            record.msg = mask_sensitive_data(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = mask_sensitive_data(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    mask_sensitive_data(arg) if isinstance(arg, (dict, str)) else arg
                    for arg in record.args
                )

        return True


def mask_sensitive_data(data: Any, mask_value: str = "***") -> Any:
    """
    Recursively redact sensitive fields from complex data structures.

    Dictionary keys that look like credentials are masked (keys and tokens
    keep their last four characters); strings are scrubbed with
    SENSITIVE_PATTERNS.

    Args:
        data: The input data structure (dict, list, str, etc.) to be scrubbed.
        mask_value: The string used to replace sensitive content.

    Returns:
        A copy of the input data with sensitive values masked.
    """
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            key_lower = str(key).lower()

            if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
                if 'key' in key_lower or 'token' in key_lower:
                    if isinstance(value, str) and len(value) > 4:
                        masked[key] = f"{mask_value}{value[-4:]}"
                    else:
                        masked[key] = mask_value
                else:
                    masked[key] = mask_value
            else:
                masked[key] = mask_sensitive_data(value, mask_value)
        return masked

    elif isinstance(data, (list, tuple)):
        masked_list = [mask_sensitive_data(item, mask_value) for item in data]
        return type(data)(masked_list)

    elif isinstance(data, str):
        result = data
        for pattern, replacement in SENSITIVE_PATTERNS:
            result = pattern.sub(replacement, result)
        return result

    else:
        return data


def setup_logging(
    log_level: int = logging.DEBUG,
    console_level: int = logging.INFO,
    log_format: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> Path:
    """
    Initialize application-wide logging.

    Configures:
    - Root Logger: Set to DEBUG to capture all events.
    - File Handler: Persists detailed logs to '<log_dir>/snapedit.log'
      (overwritten on each run).
    - Console Handler: Human-readable output on stderr.

    Args:
        log_level: Granularity for the persistent log file.
        console_level: Granularity for the terminal output.
        log_format: Optional custom formatting string.
        log_dir: Directory for the log file (defaults to LOG_DIR).

    Returns:
        Path: The path to the log file.
    """
    log_dir = Path(log_dir) if log_dir else LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    if log_format is None:
        log_format = (
            '%(asctime)s - %(name)s - %(levelname)s - '
            '[%(filename)s:%(lineno)d] - %(message)s'
        )

    formatter = logging.Formatter(log_format, datefmt='%Y-%m-%d %H:%M:%S')

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture everything, handlers will filter

    # Remove existing handlers to avoid duplicates
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    file_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(console_handler)

    logging.getLogger(__name__).debug(f"snapedit logging initialised - Log file: {log_file}")

    return log_file


def shutdown_logging():
    """Flush and close all root handlers. Call before process exit."""
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        handler.flush()
        handler.close()
        root_logger.removeHandler(handler)


def log_config(config_name: str, config_data: Dict[str, Any], logger: Optional[logging.Logger] = None):
    """
    Log configuration settings with automatic sensitive data masking.

    Args:
        config_name: Name of the configuration being logged
        config_data: Dictionary of configuration settings
        logger: Optional logger instance (uses this module's logger if not provided)
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    masked_config = mask_sensitive_data(config_data)

    logger.info(f"Configuration: {config_name}")
    logger.debug(f"{config_name} details: {json.dumps(masked_config, indent=2, default=str)}")


def log_api_request(
    logger: logging.Logger,
    method: str,
    endpoint: str,
    headers: Optional[Dict] = None,
    data: Optional[Any] = None,
    params: Optional[Dict] = None
):
    """
    Log an outgoing API request with masked sensitive data.

    Args:
        logger: Logger instance to use
        method: HTTP method (GET, POST, etc.)
        endpoint: API endpoint URL
        headers: Request headers
        data: Request body data (form fields, never binary payloads)
        params: Query parameters
    """
    logger.info(f"API Request: {method} {endpoint}")

    if headers:
        logger.debug(f"Request headers: {mask_sensitive_data(headers)}")

    if params:
        logger.debug(f"Request params: {mask_sensitive_data(params)}")

    if data:
        masked_data = mask_sensitive_data(data)
        logger.debug(f"Request body: {json.dumps(masked_data, indent=2, default=str)}")


def log_api_response(
    logger: logging.Logger,
    status_code: int,
    response_data: Optional[Any] = None,
    elapsed_time: Optional[float] = None
):
    """
    Log an API response with timing information.

    Args:
        logger: Logger instance to use
        status_code: HTTP status code
        response_data: Response body data
        elapsed_time: Request duration in seconds
    """
    timing_info = f" ({elapsed_time:.3f}s)" if elapsed_time else ""
    logger.info(f"API Response: {status_code}{timing_info}")

    if response_data:
        masked_response = mask_sensitive_data(response_data)

        # Truncate large responses for readability
        response_str = json.dumps(masked_response, indent=2, default=str)
        if len(response_str) > 1000:
            response_str = response_str[:1000] + "\n... (truncated)"

        logger.debug(f"Response body: {response_str}")
