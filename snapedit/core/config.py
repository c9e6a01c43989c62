"""
Application Configuration and Constants
=======================================

This module contains all global configuration values, constants, and defaults used
throughout snapedit. It serves as a single source of truth for:

- Remote editing service identification (endpoint, model, headers)
- Image validation and normalisation limits
- Content cache sizing and expiry
- Network, retry and batch parameters
- Offline queue behaviour
- Suggested prompt tables

Note:
    All constants use UPPER_SNAKE_CASE naming convention. Modify these values to
    change library-wide behavior without touching business logic.
"""

# ============================================================================
# REMOTE EDITING SERVICE
# ============================================================================
# Identification of the remote image-editing service. The endpoint and API key
# can be overridden through the environment (see snapedit.core.settings).

DEFAULT_ENDPOINT = "https://api.nanobanana.ai"
DEFAULT_MODEL = "gemini-2.5-flash-image"
MAX_RESOLUTION = "1MP"

# Relative path of the edit operation on the remote service
EDIT_PATH = "/v1/edit"

# Static identification headers sent with every edit request
PLATFORM_HEADER = "X-Platform"
PLATFORM_NAME = "fieldtime-contractor"
VERSION_HEADER = "X-Version"
CLIENT_VERSION = "1.0.0"

# Environment variables consulted by EditorConfig.from_env()
ENV_API_KEY = "NANO_BANANA_API_KEY"
ENV_ENDPOINT = "NANO_BANANA_ENDPOINT"
ENV_OFFLINE_DIR = "SNAPEDIT_OFFLINE_DIR"

# ============================================================================
# IMAGE VALIDATION AND PREPROCESSING
# ============================================================================
# Settings that control which images are accepted and how large images are
# normalised before submission.

# Pillow format names accepted for editing
SUPPORTED_IMAGE_FORMATS = ("JPEG", "PNG", "WEBP")

# MIME types matching the supported formats (used for the multipart upload)
FORMAT_MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
}

# Hard cap on the raw payload size
MAX_IMAGE_SIZE_MB = 10
MAX_IMAGE_SIZE_BYTES = MAX_IMAGE_SIZE_MB * 1024 * 1024

# Payloads above this size are downscaled and re-encoded
COMPRESSION_THRESHOLD_BYTES = 1024 * 1024

# Pixel budget for normalised images (the service works best at ~1MP)
MAX_PIXELS = 1_000_000

# JPEG quality used when re-encoding a normalised image
JPEG_QUALITY = 85

# ============================================================================
# CONTENT CACHE
# ============================================================================

CACHE_MAX_ENTRIES = 50
CACHE_TTL_SECONDS = 24 * 60 * 60

# Number of oldest entries removed in a single eviction pass
CACHE_EVICTION_BATCH = 10

# Length of the hex prefix kept from SHA-256 digests
IDENTITY_PREFIX_LENGTH = 16

# ============================================================================
# NETWORK AND RETRY CONFIGURATION
# ============================================================================

# Maximum number of attempts for a single edit
MAX_RETRIES = 3

# Delay before each re-attempt (index = attempt number, zero based)
RETRY_DELAYS_SECONDS = (1.0, 2.0, 4.0)

# Maximum time to wait for the remote service before timing out
NETWORK_TIMEOUT_SECONDS = 30

# Default number of simultaneous edits in a batch
DEFAULT_BATCH_CONCURRENCY = 2

# ============================================================================
# OFFLINE QUEUE
# ============================================================================

OFFLINE_BATCH_SIZE = 5
OFFLINE_MAX_RETRIES = 3
OFFLINE_DRAIN_DELAY_SECONDS = 2.0

# Name of the queue document (and blob folder prefix) in durable storage
OFFLINE_QUEUE_STORAGE_KEY = "fieldtime-offline-edits"

# ============================================================================
# SUGGESTED PROMPTS
# ============================================================================
# Curated prompts offered by the UI. Every context list is appended to the
# base list.

BASE_PROMPTS = [
    "Remove background",
    "Enhance colors and lighting",
    "Make image brighter",
    "Sharpen and improve quality",
    "Remove unwanted objects",
]

CONTEXT_PROMPTS = {
    "field-log": [
        "Clean up construction site",
        "Improve weather conditions",
        "Remove workers for clean shot",
        "Enhance work progress visibility",
        "Add professional lighting to workspace",
    ],
    "chat": [
        "Make more professional",
        "Improve photo quality",
        "Remove personal items",
        "Better lighting for sharing",
    ],
    "document": [
        "Enhance document readability",
        "Remove shadows and glare",
        "Straighten document perspective",
        "Improve contrast for text",
    ],
    "calendar": [
        "Create clean event image",
        "Remove clutter from scene",
        "Add meeting room ambiance",
        "Professional event photo",
    ],
}
