"""Tests for single-file fetch tasks: retry discipline, verification, writing."""

import asyncio
from unittest.mock import AsyncMock

import aiohttp
import pytest

import packsync.fetch as fetch_module
from packsync.exceptions import FetchError, FileSystemError, IntegrityError
from packsync.fetch import FetchConfig, FetchTask, download_with_retry, fetch_file
from packsync.progress import ProgressChannel, Tick
from tests.fake_http import sha256_hex

pytestmark = [pytest.mark.unit, pytest.mark.core_downloads]

URL = "https://example.com/mods/c.jar"
BODY = b"jar bytes " * 1000


class TestFetchConfig:
    def test_defaults_match_documented_retry_policy(self):
        config = FetchConfig()
        assert config.max_retries == 5
        assert [config.backoff_delay(n) for n in range(1, 6)] == [
            0.25,
            0.5,
            0.75,
            1.0,
            1.25,
        ]
        assert config.make_semaphore() is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_retries": -1},
            {"backoff_step": -0.1},
            {"max_concurrent": 0},
            {"chunk_size": 0},
        ],
    )
    def test_rejects_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            FetchConfig(**kwargs)

    def test_bounded_concurrency_creates_semaphore(self):
        semaphore = FetchConfig(max_concurrent=3).make_semaphore()
        assert semaphore is not None
        assert semaphore._value == 3


@pytest.mark.asyncio
class TestDownloadWithRetry:
    async def test_transport_failures_retry_five_times_then_fail(
        self, fake_session, mocker
    ):
        """A source that never connects gets 6 attempts and linear backoff."""
        sleep = mocker.patch.object(fetch_module.asyncio, "sleep", AsyncMock())
        session = fake_session({URL: aiohttp.ClientConnectionError("refused")})

        with pytest.raises(FetchError) as exc_info:
            await download_with_retry(session, URL, FetchConfig())

        assert len(session.calls) == 6
        assert [c.args[0] for c in sleep.await_args_list] == [
            0.25,
            0.5,
            0.75,
            1.0,
            1.25,
        ]
        assert exc_info.value.retry_count == 5
        assert exc_info.value.url == URL
        assert exc_info.value.is_retryable is False

    async def test_timeout_is_treated_as_transport_failure(self, fake_session, mocker):
        mocker.patch.object(fetch_module.asyncio, "sleep", AsyncMock())
        session = fake_session({URL: [TimeoutError(), BODY]})

        data = await download_with_retry(session, URL, FetchConfig())

        assert data == BODY
        assert len(session.calls) == 2

    async def test_recovers_after_transient_failures(self, fake_session, mocker):
        sleep = mocker.patch.object(fetch_module.asyncio, "sleep", AsyncMock())
        session = fake_session(
            {
                URL: [
                    aiohttp.ServerDisconnectedError(),
                    aiohttp.ClientConnectionError("reset"),
                    BODY,
                ]
            }
        )

        data = await download_with_retry(session, URL, FetchConfig())

        assert data == BODY
        assert [c.args[0] for c in sleep.await_args_list] == [0.25, 0.5]

    async def test_custom_ceiling_and_step(self, fake_session, mocker):
        sleep = mocker.patch.object(fetch_module.asyncio, "sleep", AsyncMock())
        session = fake_session({URL: aiohttp.ClientConnectionError("down")})

        with pytest.raises(FetchError):
            await download_with_retry(
                session, URL, FetchConfig(max_retries=2, backoff_step=0.01)
            )

        assert len(session.calls) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [0.01, 0.02]

    async def test_http_error_status_is_not_retried(self, fake_session, mocker):
        sleep = mocker.patch.object(fetch_module.asyncio, "sleep", AsyncMock())
        session = fake_session({URL: 503})

        with pytest.raises(FetchError) as exc_info:
            await download_with_retry(session, URL, FetchConfig())

        assert exc_info.value.status_code == 503
        assert len(session.calls) == 1
        sleep.assert_not_awaited()

    async def test_protocol_error_is_not_retried(self, fake_session, mocker):
        sleep = mocker.patch.object(fetch_module.asyncio, "sleep", AsyncMock())
        session = fake_session({URL: aiohttp.ClientPayloadError("truncated body")})

        with pytest.raises(FetchError, match="truncated body"):
            await download_with_retry(session, URL, FetchConfig())

        assert len(session.calls) == 1
        sleep.assert_not_awaited()

    async def test_semaphore_is_released_between_attempts(self, fake_session, mocker):
        mocker.patch.object(fetch_module.asyncio, "sleep", AsyncMock())
        session = fake_session({URL: [aiohttp.ClientConnectionError("x"), BODY]})
        semaphore = asyncio.Semaphore(1)

        await download_with_retry(session, URL, FetchConfig(), semaphore)

        assert not semaphore.locked()


@pytest.mark.asyncio
class TestFetchFile:
    async def test_writes_verified_bytes_and_ticks(self, fake_session, tmp_path):
        session = fake_session({URL: BODY})
        channel = ProgressChannel()
        target = tmp_path / "c.jar"

        written = await fetch_file(
            session, target, URL, sha256_hex(BODY), progress=channel
        )

        assert written == len(BODY)
        assert target.read_bytes() == BODY
        channel.close()
        assert [event async for event in channel] == [Tick()]

    async def test_overwrites_existing_content(self, fake_session, tmp_path):
        target = tmp_path / "c.jar"
        target.write_bytes(b"old and much longer content than the new file")
        session = fake_session({URL: b"new"})

        await fetch_file(session, target, URL, sha256_hex(b"new"))

        assert target.read_bytes() == b"new"

    async def test_accepts_uppercase_expected_digest(self, fake_session, tmp_path):
        session = fake_session({URL: BODY})
        target = tmp_path / "c.jar"

        await fetch_file(session, target, URL, sha256_hex(BODY).upper())

        assert target.read_bytes() == BODY

    async def test_digest_mismatch_is_fatal_and_writes_nothing(
        self, fake_session, tmp_path
    ):
        session = fake_session({URL: b"tampered"})
        channel = ProgressChannel()
        target = tmp_path / "c.jar"
        expected = sha256_hex(BODY)

        with pytest.raises(IntegrityError) as exc_info:
            await fetch_file(session, target, URL, expected, progress=channel)

        error = exc_info.value
        assert error.expected == expected
        assert error.actual == sha256_hex(b"tampered")
        assert error.path == str(target)
        assert error.url == URL
        assert not target.exists()
        assert list(tmp_path.iterdir()) == []
        channel.close()
        assert [event async for event in channel] == []

    async def test_unwritable_destination_fails_before_fetching(
        self, fake_session, tmp_path
    ):
        session = fake_session({URL: BODY})
        target = tmp_path / "missing-dir" / "c.jar"

        with pytest.raises(FileSystemError) as exc_info:
            await fetch_file(session, target, URL, sha256_hex(BODY))

        assert exc_info.value.path == str(target)
        assert session.calls == []

    async def test_fetch_failure_sends_no_tick(self, fake_session, tmp_path):
        session = fake_session({URL: 404})
        channel = ProgressChannel()

        with pytest.raises(FetchError):
            await fetch_file(
                session, tmp_path / "c.jar", URL, sha256_hex(BODY), progress=channel
            )

        channel.close()
        assert [event async for event in channel] == []

    async def test_failed_fetch_keeps_previous_content(self, fake_session, tmp_path):
        target = tmp_path / "c.jar"
        target.write_bytes(b"previous build")
        session = fake_session({URL: 404})

        with pytest.raises(FetchError):
            await fetch_file(session, target, URL, sha256_hex(BODY))

        assert target.read_bytes() == b"previous build"
        assert list(tmp_path.iterdir()) == [target]

    async def test_nothing_is_opened_until_semaphore_is_acquired(
        self, fake_session, tmp_path
    ):
        session = fake_session({URL: BODY})
        target = tmp_path / "c.jar"
        semaphore = asyncio.Semaphore(1)
        await semaphore.acquire()

        task = asyncio.create_task(
            fetch_file(session, target, URL, sha256_hex(BODY), semaphore=semaphore)
        )
        await asyncio.sleep(0.05)

        assert list(tmp_path.iterdir()) == []
        assert session.calls == []

        semaphore.release()
        assert await task == len(BODY)
        assert target.read_bytes() == BODY
        assert not semaphore.locked()

    async def test_fetch_task_run_delegates(self, fake_session, tmp_path):
        session = fake_session({URL: BODY})
        task = FetchTask(tmp_path / "c.jar", URL, sha256_hex(BODY))

        assert await task.run(session) == len(BODY)
        assert (tmp_path / "c.jar").read_bytes() == BODY
