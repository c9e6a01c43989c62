"""
Content Identity
================

Hash-derived identities used as cache keys. The image identity is a
truncated SHA-256 of the normalised image bytes, so it is independent of
filenames and metadata; the prompt is hashed the same way and the two are
joined into the cache key.
"""

import hashlib
from dataclasses import dataclass

from snapedit.core import config


@dataclass(frozen=True)
class CacheKey:
    """Identity of a (normalised image, instruction) pair."""
    image_identity: str
    prompt_hash: str

    def __str__(self) -> str:
        return f"{self.image_identity}-{self.prompt_hash}"


def _digest(data: bytes, length: int) -> str:
    return hashlib.sha256(data).hexdigest()[:length]


def image_identity(image_bytes: bytes, length: int = config.IDENTITY_PREFIX_LENGTH) -> str:
    """
    Compute the content identity of normalised image bytes.

    Args:
        image_bytes: Normalised image payload
        length: Number of hex characters kept from the digest

    Returns:
        Hex string prefix of the SHA-256 digest
    """
    return _digest(image_bytes, length)


def hash_prompt(prompt: str, length: int = config.IDENTITY_PREFIX_LENGTH) -> str:
    """Stable hash of the instruction text."""
    return _digest(prompt.encode("utf-8"), length)


def cache_key(identity: str, prompt: str) -> CacheKey:
    return CacheKey(image_identity=identity, prompt_hash=hash_prompt(prompt))
