import asyncio

import pytest

from packsync.progress import ProgressChannel, Tick, Total

pytestmark = [pytest.mark.unit, pytest.mark.core_downloads]


@pytest.mark.asyncio
class TestProgressChannel:
    async def test_iteration_yields_events_until_closed(self):
        channel = ProgressChannel()
        channel.send(Tick())
        channel.send(Total(2))
        channel.send(Tick())
        channel.close()

        assert [event async for event in channel] == [Tick(), Total(2), Tick()]

    async def test_send_after_close_raises(self):
        channel = ProgressChannel()
        channel.close()

        assert channel.closed
        with pytest.raises(RuntimeError):
            channel.send(Tick())

    async def test_close_is_idempotent_and_get_keeps_returning_none(self):
        channel = ProgressChannel()
        channel.close()
        channel.close()

        assert await channel.get() is None
        assert await channel.get() is None

    async def test_consumer_receives_events_from_concurrent_producers(self):
        channel = ProgressChannel()

        async def producer(count):
            for _ in range(count):
                await asyncio.sleep(0)
                channel.send(Tick())

        async def consume():
            return [event async for event in channel]

        consumer = asyncio.create_task(consume())
        await asyncio.gather(producer(3), producer(4))
        channel.send(Total(7))
        channel.close()

        events = await consumer
        assert events.count(Tick()) == 7
        assert events[-1] == Total(7)
