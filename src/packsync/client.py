"""
HTTP session management for packsync.

All network access goes through a shared aiohttp ClientSession: the fetch
tasks of one reconciliation run, manifest retrieval and packs list lookups.
"""

import asyncio
import importlib.metadata
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiohttp
from aiohttp import ClientSession, ClientTimeout, TCPConnector

from packsync.constants import (
    APP_NAME,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    HTTP_STATUS_ERROR_THRESHOLD,
)
from packsync.log_utils import logger

_USER_AGENT_CACHE: Optional[str] = None


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `packsync/{version}`, where `{version}` is the installed
        package version or `unknown` if it cannot be determined.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        try:
            app_version = importlib.metadata.version(APP_NAME)
        except importlib.metadata.PackageNotFoundError:
            app_version = "unknown"
        _USER_AGENT_CACHE = f"{APP_NAME}/{app_version}"

    return _USER_AGENT_CACHE


def create_session(
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
    connector_limit: Optional[int] = None,
) -> ClientSession:
    """
    Create an aiohttp ClientSession configured for packsync.

    Parameters:
        timeout (float): Longest wait for the next chunk of a response body,
            in seconds. There is no cap on a whole transfer, so large files
            on slow links are not cut off while data keeps arriving.
        connector_limit (Optional[int]): Maximum open connections; None or 0
            leaves the pool unbounded so every fetch task gets a connection.

    Returns:
        ClientSession: A new session; the caller is responsible for closing it.
    """
    connector = TCPConnector(limit=connector_limit or 0, enable_cleanup_closed=True)
    client_timeout = ClientTimeout(
        total=None,
        connect=min(DEFAULT_CONNECT_TIMEOUT, timeout),
        sock_read=timeout,
    )
    return ClientSession(
        connector=connector,
        timeout=client_timeout,
        headers={"User-Agent": get_user_agent()},
    )


@asynccontextmanager
async def session_scope(
    session: Optional[ClientSession] = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
    connector_limit: Optional[int] = None,
) -> AsyncIterator[ClientSession]:
    """
    Yield `session` if one is given, otherwise a new session closed on exit.
    """
    if session is not None:
        yield session
        return

    owned = create_session(timeout=timeout, connector_limit=connector_limit)
    try:
        yield owned
    finally:
        await owned.close()


async def fetch_bytes(session: ClientSession, url: str) -> Optional[bytes]:
    """
    Fetch the raw body of `url`.

    Network failures and HTTP error statuses are logged and reported as None
    rather than raised; callers treat an unavailable document as absent.
    """
    try:
        async with session.get(url) as response:
            if response.status >= HTTP_STATUS_ERROR_THRESHOLD:
                logger.error(f"HTTP error {response.status} fetching {url}")
                return None
            return await response.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.error(f"Network error fetching {url}: {e}")
        return None


async def fetch_text(session: ClientSession, url: str) -> Optional[str]:
    """Fetch `url` and decode it as UTF-8; None if unavailable or not text."""
    body = await fetch_bytes(session, url)
    if body is None:
        return None
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as e:
        logger.error(f"Response from {url} is not valid UTF-8: {e}")
        return None
