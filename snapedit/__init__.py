"""
snapedit - AI image editing client
==================================

Submits an image plus a natural-language instruction to a remote image
editing service, with content-addressed caching, bounded retries,
bounded-concurrency batches and a durable offline queue.

    >>> from snapedit import create_editor
    >>> with create_editor() as editor:
    ...     result = editor.edit_image_with_retry(image_bytes, "Remove background")
"""

from snapedit.core.editor import ImageEditor, create_editor
from snapedit.core.models import (
    EditError,
    EditMetadata,
    EditOptions,
    EditRequest,
    EditResult,
    ImageSize,
    Quality,
)
from snapedit.core.offline_queue import QueueEvent, QueueEventType
from snapedit.core.settings import EditorConfig

__version__ = "1.0.0"

__all__ = [
    "ImageEditor",
    "create_editor",
    "EditorConfig",
    "EditError",
    "EditMetadata",
    "EditOptions",
    "EditRequest",
    "EditResult",
    "ImageSize",
    "Quality",
    "QueueEvent",
    "QueueEventType",
]
