"""
SHA-256 digest helpers.

Hashing is CPU-bound, so the async helpers run it in a worker thread to keep
the event loop free for concurrent fetches and directory scans.
"""

import asyncio
import hashlib
import os

from packsync.constants import (
    DIGEST_ALLOWED_CHARS,
    DIGEST_HEX_LENGTH,
    HASH_READ_CHUNK_SIZE,
)
from packsync.exceptions import DigestFormatError, FileSystemError
from packsync.log_utils import logger


def compute_digest(data: bytes) -> str:
    """Return the lowercase SHA-256 hex digest of `data`."""
    return hashlib.sha256(data).hexdigest()


def calculate_sha256(file_path: "os.PathLike[str] | str") -> str:
    """
    Compute the SHA-256 hex digest of a file.

    Streams the file in chunks without loading it into memory.

    Raises:
        FileSystemError: If the file cannot be opened or read.
    """
    sha256_hash = hashlib.sha256()
    try:
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(HASH_READ_CHUNK_SIZE), b""):
                sha256_hash.update(chunk)
    except OSError as e:
        raise FileSystemError(
            "Cannot read file for hashing", path=str(file_path), details=str(e)
        ) from e
    return sha256_hash.hexdigest()


async def async_file_digest(file_path: "os.PathLike[str] | str") -> str:
    """Hash a file in a worker thread."""
    loop = asyncio.get_running_loop()
    digest = await loop.run_in_executor(None, calculate_sha256, file_path)
    logger.debug("Hashed %s: %s", os.fspath(file_path), digest)
    return digest


async def async_bytes_digest(data: bytes) -> str:
    """Hash an in-memory byte string in a worker thread."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, compute_digest, data)


def is_valid_digest(value: object) -> bool:
    if not isinstance(value, str) or len(value) != DIGEST_HEX_LENGTH:
        return False
    return set(value.lower()) <= DIGEST_ALLOWED_CHARS


def normalize_digest(value: object) -> str:
    """
    Validate a declared digest and return it in lowercase.

    Raises:
        DigestFormatError: If `value` is not a 64-character hex string.
    """
    if not is_valid_digest(value):
        raise DigestFormatError(
            "Malformed SHA-256 digest",
            field="sha",
            value=repr(value),
            details=f"expected {DIGEST_HEX_LENGTH} hex characters",
        )
    return str(value).lower()


def digests_match(actual: str, expected: str) -> bool:
    """Compare two hex digests, ignoring case."""
    return actual.lower() == expected.lower()
