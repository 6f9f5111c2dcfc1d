"""
Progress reporting for reconciliation runs.

A run sends exactly one Total event (the number of fetch tasks it spawned)
and one Tick event per fetch task that completed successfully. The events are
NOT ordered relative to each other: fetch tasks start while the tree walk is
still running, so Ticks are routinely observed before the Total. Consumers
must accept any interleaving.
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Union


@dataclass(frozen=True)
class Total:
    """Number of fetch tasks spawned by the run."""

    count: int


@dataclass(frozen=True)
class Tick:
    """One fetch task finished successfully."""


ProgressEvent = Union[Total, Tick]


class ProgressChannel:
    """
    Multi-producer, single-consumer stream of ProgressEvents.

    Producers (the run coordinator and every fetch task) call send(), which
    never blocks. The consumer iterates with `async for` until close() is
    called, or polls with get().
    """

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Optional[ProgressEvent]]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: ProgressEvent) -> None:
        if self._closed:
            raise RuntimeError("Cannot send on a closed progress channel")
        self._queue.put_nowait(event)

    def close(self) -> None:
        """Stop iteration once the already-queued events have been consumed."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def get(self) -> Optional[ProgressEvent]:
        """Return the next event, or None once the channel is closed and drained."""
        event = await self._queue.get()
        if event is None:
            # Keep the end marker in place for any later reader.
            self._queue.put_nowait(None)
        return event

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event
