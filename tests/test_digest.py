import hashlib
import threading

import pytest

import packsync.digest as digest_module
from packsync.digest import (
    async_bytes_digest,
    async_file_digest,
    calculate_sha256,
    compute_digest,
    digests_match,
    is_valid_digest,
    normalize_digest,
)
from packsync.exceptions import DigestFormatError, FileSystemError

pytestmark = [pytest.mark.unit, pytest.mark.core_downloads]

EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def test_compute_digest_known_value():
    assert compute_digest(b"") == EMPTY_SHA256
    assert compute_digest(b"abc") == hashlib.sha256(b"abc").hexdigest()


def test_calculate_sha256_streams_large_file(tmp_path):
    data = b"0123456789abcdef" * 100_000
    path = tmp_path / "big.bin"
    path.write_bytes(data)

    assert calculate_sha256(path) == hashlib.sha256(data).hexdigest()
    assert calculate_sha256(str(path)) == hashlib.sha256(data).hexdigest()


def test_calculate_sha256_missing_file(tmp_path):
    missing = tmp_path / "missing.bin"
    with pytest.raises(FileSystemError) as exc_info:
        calculate_sha256(missing)
    assert exc_info.value.path == str(missing)


@pytest.mark.asyncio
async def test_async_helpers_match_sync(tmp_path):
    path = tmp_path / "file.txt"
    path.write_bytes(b"hello")

    assert await async_file_digest(path) == compute_digest(b"hello")
    assert await async_bytes_digest(b"hello") == compute_digest(b"hello")


@pytest.mark.asyncio
async def test_async_helpers_hash_off_the_event_loop_thread(mocker):
    loop_thread = threading.get_ident()
    seen = []

    def record(data):
        seen.append(threading.get_ident())
        return hashlib.sha256(data).hexdigest()

    mocker.patch.object(digest_module, "compute_digest", side_effect=record)

    assert await async_bytes_digest(b"hello") == compute_digest(b"hello")
    assert len(seen) == 1
    assert seen[0] != loop_thread


@pytest.mark.parametrize(
    "value, expected",
    [
        (EMPTY_SHA256, True),
        (EMPTY_SHA256.upper(), True),
        (EMPTY_SHA256[:-1], False),
        (EMPTY_SHA256 + "0", False),
        ("g" * 64, False),
        (None, False),
        (1234, False),
    ],
)
def test_is_valid_digest(value, expected):
    assert is_valid_digest(value) is expected


def test_normalize_digest_lowercases():
    assert normalize_digest(EMPTY_SHA256.upper()) == EMPTY_SHA256


def test_normalize_digest_rejects_malformed():
    with pytest.raises(DigestFormatError) as exc_info:
        normalize_digest("abc")
    assert exc_info.value.field == "sha"


def test_digests_match_ignores_case():
    assert digests_match(EMPTY_SHA256, EMPTY_SHA256.upper())
    assert not digests_match(EMPTY_SHA256, compute_digest(b"x"))
