import aiohttp
import platformdirs
import pytest

from tests.fake_http import FakeSession

_ASYNC_NETWORK_BLOCK_MSG = (
    "Async network access is blocked during tests. Use the fake_session fixture."
)


async def _async_block_network(*_args, **_kwargs):
    """
    Prevent async network calls during tests by raising a RuntimeError.

    Raises:
        RuntimeError: `_ASYNC_NETWORK_BLOCK_MSG`.
    """
    raise RuntimeError(_ASYNC_NETWORK_BLOCK_MSG)


# Configure pytest-asyncio - only register if available
try:
    import importlib

    importlib.import_module("pytest_asyncio")
    pytest_plugins = ("pytest_asyncio",)
except ImportError:
    pytest_plugins = ()


def pytest_configure(config):
    """Register the markers used across the suite."""
    for marker in (
        "asyncio: mark test as an asyncio test",
        "unit: fast isolated tests",
        "core_downloads: fetch, reconcile and progress engine tests",
        "configuration: configuration and logging tests",
        "integration: end-to-end runs through the public entry points",
    ):
        config.addinivalue_line("markers", marker)


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Point platformdirs and PACKSYNC_* environment at a temporary directory layout.
    """
    base = tmp_path_factory.mktemp("packsync")
    config_dir = base / "config"
    log_dir = base / "log"
    home_dir = base / "home"
    for path in (config_dir, log_dir, home_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.delenv("PACKSYNC_LOG_LEVEL", raising=False)
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_log_dir", lambda *_args, **_kwargs: str(log_dir)
    )


def pytest_runtest_setup():
    """
    Prevent real network requests by replacing aiohttp's HTTP entry points.
    """
    aiohttp.request = _async_block_network
    aiohttp.ClientSession._request = _async_block_network  # type: ignore[assignment]


@pytest.fixture
def fake_session():
    """Factory fixture: fake_session({url: outcome}) -> FakeSession."""
    return FakeSession
