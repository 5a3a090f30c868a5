"""Tests for the change feed behind live views."""

import asyncio

import pytest

from oneline.feed import ChangeFeed


class TestChangeFeed:
    @pytest.mark.asyncio
    async def test_initial_signal(self):
        feed = ChangeFeed()
        changes = feed.changes()
        assert await anext(changes) is None
        assert feed.subscriber_count == 1
        await changes.aclose()
        assert feed.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_signals_are_coalesced(self):
        feed = ChangeFeed()
        changes = feed.changes(initial=False)
        waiter = asyncio.ensure_future(anext(changes))
        await asyncio.sleep(0)

        feed.publish()
        feed.publish()
        feed.publish()
        await asyncio.wait_for(waiter, timeout=1)

        second = asyncio.ensure_future(anext(changes))
        await asyncio.sleep(0.01)
        assert not second.done()
        second.cancel()
        with pytest.raises(asyncio.CancelledError):
            await second
        assert feed.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_every_subscriber_is_notified(self):
        feed = ChangeFeed()
        first = feed.changes(initial=False)
        second = feed.changes(initial=False)
        waiters = [asyncio.ensure_future(anext(first)), asyncio.ensure_future(anext(second))]
        await asyncio.sleep(0)

        feed.publish()
        await asyncio.wait_for(asyncio.gather(*waiters), timeout=1)
        await first.aclose()
        await second.aclose()

    def test_publish_without_subscribers(self):
        ChangeFeed().publish()
