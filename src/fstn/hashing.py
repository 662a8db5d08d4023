"""Content addressing for blobs.

A blob's identity is the lowercase hex SHA-256 of its bytes. The client
always computes it locally and checks whatever the server sends back.
"""

from pathlib import Path
from typing import BinaryIO, Iterable, Optional, Union
import hashlib
import re

from .constants import CHUNK_SIZE

_CONTENT_ID_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def digest(data: bytes) -> str:
    """Compute the content id of a byte payload.

    Args:
        data: Full blob payload

    Returns:
        64-character lowercase hex SHA-256 digest
    """
    return hashlib.sha256(data).hexdigest()


def digest_chunks(chunks: Iterable[bytes], sink: Optional[BinaryIO] = None) -> str:
    """Compute the content id of a payload delivered in pieces.

    Args:
        chunks: Payload pieces, in order
        sink: If given, every piece is also written here

    Returns:
        Same value digest() returns for the concatenated pieces
    """
    sha256 = hashlib.sha256()
    for chunk in chunks:
        if not chunk:
            continue
        sha256.update(chunk)
        if sink is not None:
            sink.write(chunk)
    return sha256.hexdigest()


def compute_file_digest(path: Union[str, Path]) -> str:
    """Compute the content id of a file without reading it all at once.

    Args:
        path: Path to file to hash

    Returns:
        Same value digest() returns for the file's bytes
    """
    with Path(path).open("rb") as f:
        return digest_chunks(iter(lambda: f.read(CHUNK_SIZE), b""))


def is_content_id(text: str) -> bool:
    """Check whether text has the shape of a content id."""
    return bool(_CONTENT_ID_RE.match(text))


def matches(actual_id: str, expected_id: str) -> bool:
    """Compare two content ids, ignoring case and surrounding whitespace."""
    return actual_id.strip().lower() == expected_id.strip().lower()


def verify(data: bytes, expected_id: str) -> bool:
    """Recompute the digest of data and compare it to expected_id."""
    return matches(digest(data), expected_id)


def verify_file(path: Union[str, Path], expected_id: str) -> bool:
    """Streaming variant of verify() for files on disk."""
    return matches(compute_file_digest(path), expected_id)


__all__ = [
    "digest",
    "digest_chunks",
    "compute_file_digest",
    "is_content_id",
    "matches",
    "verify",
    "verify_file",
]
