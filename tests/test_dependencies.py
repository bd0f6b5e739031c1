import asyncio
from types import SimpleNamespace

import pytest

from tracking.ingestion.dependencies import watch_disconnect


class StubRequest:
    """Reports a disconnect after ``connected_polls`` checks."""

    def __init__(self, connected_polls: int):
        self.connected_polls = connected_polls
        self.checks = 0
        self.url = SimpleNamespace(path="/tenant/events/300/logs")

    async def is_disconnected(self) -> bool:
        self.checks += 1
        return self.checks > self.connected_polls


@pytest.mark.asyncio
async def test_disconnect_sets_cancelled():
    request = StubRequest(connected_polls=2)

    async with watch_disconnect(request, poll_interval=0.01) as cancelled:
        await asyncio.wait_for(cancelled.wait(), timeout=1.0)

    assert cancelled.is_set()
    assert request.checks == 3


@pytest.mark.asyncio
async def test_connected_client_never_cancels():
    request = StubRequest(connected_polls=10**6)

    async with watch_disconnect(request, poll_interval=0.01) as cancelled:
        await asyncio.sleep(0.05)

    checks = request.checks
    await asyncio.sleep(0.05)

    assert not cancelled.is_set()
    # Polling stops once the block exits
    assert request.checks == checks
