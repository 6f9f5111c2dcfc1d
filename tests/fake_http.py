"""
In-memory stand-ins for the parts of aiohttp the engine uses.
"""

import hashlib
from typing import Dict, List, Union

Outcome = Union[bytes, int, BaseException]


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class FakeContent:
    def __init__(self, body: bytes) -> None:
        self._body = body

    def iter_chunked(self, size: int):
        async def _chunks():
            for start in range(0, len(self._body), size):
                yield self._body[start : start + size]

        return _chunks()


class FakeResponse:
    def __init__(self, body: bytes = b"", status: int = 200) -> None:
        self.status = status
        self.headers = {"Content-Length": str(len(body))}
        self.content = FakeContent(body)
        self._body = body

    async def read(self) -> bytes:
        return self._body


class FakeRequest:
    """Async context manager standing in for aiohttp's request context."""

    def __init__(self, outcome: Outcome) -> None:
        self._outcome = outcome

    async def __aenter__(self) -> FakeResponse:
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        if isinstance(self._outcome, int):
            return FakeResponse(b"", status=self._outcome)
        return FakeResponse(self._outcome)

    async def __aexit__(self, *exc_info) -> None:
        return None


class FakeSession:
    """
    Minimal aiohttp.ClientSession double.

    `routes` maps a URL to bytes (200 response), an int (status with empty
    body), an exception (raised when the request is entered), or a list of
    those consumed one per request (the last one repeats).
    """

    def __init__(self, routes: Dict[str, Union[Outcome, List[Outcome]]]) -> None:
        self.routes = dict(routes)
        self.calls: List[str] = []
        self.closed = False

    def get(self, url: str, **_kwargs) -> FakeRequest:
        self.calls.append(url)
        outcome = self.routes.get(url, 404)
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        return FakeRequest(outcome)

    async def close(self) -> None:
        self.closed = True

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
