"""
Edit Data Model
===============

Dataclasses describing a unit of editing work and its outcome:

- EditOptions: structured options forwarded to the remote service
- EditRequest: one (image, instruction, options) tuple
- EditMetadata / ImageSize: details attached to a successful edit
- EditError: structured failure description
- EditResult: immutable outcome of one attempt (or a cache hit)
- NormalizedImage: preprocessed image ready for submission
- OfflineQueueEntry: a request parked until connectivity returns
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional


class Quality(Enum):
    """Output quality requested from the remote service."""
    STANDARD = "standard"
    HIGH = "high"


@dataclass(frozen=True)
class EditOptions:
    """
    Options forwarded with an edit request.

    Attributes:
        preserve_aspect_ratio: Keep the source aspect ratio in the output.
        quality: Requested output quality.
        iterations: Number of refinement passes (>= 1).
        style: Optional free-text style hint.
    """
    preserve_aspect_ratio: bool = True
    quality: Quality = Quality.HIGH
    iterations: int = 1
    style: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.quality, str):
            object.__setattr__(self, "quality", Quality(self.quality))
        if not isinstance(self.iterations, int) or self.iterations < 1:
            raise ValueError(f"iterations must be an integer >= 1, got {self.iterations!r}")

    def to_form_fields(self) -> Dict[str, str]:
        """Render the options as multipart form fields."""
        fields = {
            "preserve_aspect_ratio": "true" if self.preserve_aspect_ratio else "false",
            "quality": self.quality.value,
            "iterations": str(self.iterations),
        }
        if self.style:
            fields["style"] = self.style
        return fields

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preserve_aspect_ratio": self.preserve_aspect_ratio,
            "quality": self.quality.value,
            "iterations": self.iterations,
            "style": self.style,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EditOptions":
        return cls(
            preserve_aspect_ratio=data.get("preserve_aspect_ratio", True),
            quality=data.get("quality", Quality.HIGH.value),
            iterations=data.get("iterations", 1),
            style=data.get("style"),
        )


@dataclass(frozen=True)
class EditRequest:
    """A single image edit: raw image bytes plus a natural-language instruction."""
    image_bytes: bytes
    instruction: str
    options: EditOptions = field(default_factory=EditOptions)

    def __repr__(self) -> str:
        return (
            f"<EditRequest instruction={self.instruction!r} "
            f"bytes={len(self.image_bytes)} options={self.options}>"
        )


@dataclass(frozen=True)
class NormalizedImage:
    """Image bytes after validation and preprocessing."""
    data: bytes
    format: str
    mime_type: str
    width: int
    height: int

    @property
    def pixel_count(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of image validation; `error` is set when `valid` is False."""
    valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class ImageSize:
    width: int = 0
    height: int = 0
    file_size: int = 0


@dataclass(frozen=True)
class EditMetadata:
    """
    Details attached to a successful edit.

    `confidence` is None when the service did not report one; otherwise it
    lies in [0, 1].
    """
    original_image_id: str
    prompt: str
    processing_time_ms: int
    confidence: Optional[float]
    model_version: str
    iterations: int
    image_size: ImageSize = field(default_factory=ImageSize)


@dataclass(frozen=True)
class EditError:
    """Structured failure description carried by a failed EditResult."""
    code: str
    message: str
    retryable: bool
    status_code: Optional[int] = None


@dataclass(frozen=True)
class EditResult:
    """
    Immutable outcome of one edit attempt.

    Successful results carry the edited image location and metadata; failed
    results carry an EditError.
    """
    success: bool
    edited_image_url: str = ""
    edited_image_id: str = ""
    metadata: Optional[EditMetadata] = None
    error: Optional[EditError] = None

    @classmethod
    def failure(cls, code: str, message: str, retryable: bool,
                status_code: Optional[int] = None) -> "EditResult":
        return cls(
            success=False,
            error=EditError(code=code, message=message, retryable=retryable, status_code=status_code),
        )

    @property
    def retryable(self) -> bool:
        return bool(self.error and self.error.retryable)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class OfflineQueueEntry:
    """
    An edit request waiting for connectivity.

    Owned by the offline queue manager; `retry_count` counts failed drain
    attempts and `enqueued_at` is a wall-clock timestamp in seconds.
    """
    id: str
    request: EditRequest
    context: str
    enqueued_at: float
    retry_count: int = 0
