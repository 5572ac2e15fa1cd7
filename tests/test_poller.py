import asyncio

import pytest

from menu_optimizer.client.poller import CandidatePoller, PollingCancelled, PollingTimeout


class VirtualClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = []

    def time(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _fetcher(responses):
    remaining = list(responses)

    async def fetch():
        return remaining.pop(0) if remaining else []

    return fetch


@pytest.mark.asyncio
async def test_poller_returns_first_non_empty_result() -> None:
    clock = VirtualClock()
    poller = CandidatePoller(
        _fetcher([[], [], ["candidate"]]),
        interval=5,
        sleep=clock.sleep,
        clock=clock.time,
    )

    result = await poller.wait()

    assert result == ["candidate"]
    assert poller.attempts == 3
    assert clock.sleeps == [5, 5]
    assert clock.now == 10


@pytest.mark.asyncio
async def test_poller_times_out_when_max_wait_is_set() -> None:
    clock = VirtualClock()
    poller = CandidatePoller(_fetcher([]), interval=5, max_wait=12, sleep=clock.sleep, clock=clock.time)

    with pytest.raises(PollingTimeout):
        await poller.wait()

    assert poller.attempts == 4
    assert clock.now == 15


@pytest.mark.asyncio
async def test_poller_stops_after_cancel() -> None:
    clock = VirtualClock()

    async def cancelling_sleep(seconds: float) -> None:
        await clock.sleep(seconds)
        if len(clock.sleeps) == 3:
            poller.cancel()

    poller = CandidatePoller(_fetcher([]), interval=5, sleep=cancelling_sleep, clock=clock.time)

    with pytest.raises(PollingCancelled):
        await poller.wait()

    assert poller.attempts == 3
    assert poller.cancelled is True


@pytest.mark.asyncio
async def test_cancel_interrupts_a_sleeping_poller() -> None:
    loop = asyncio.get_running_loop()
    poller = CandidatePoller(_fetcher([]), interval=2)
    task = asyncio.create_task(poller.wait())
    await asyncio.sleep(0.05)

    cancelled_at = loop.time()
    poller.cancel()
    with pytest.raises(PollingCancelled):
        await asyncio.wait_for(task, timeout=1)

    assert loop.time() - cancelled_at < 0.5
    assert poller.attempts == 1


@pytest.mark.asyncio
async def test_poller_task_can_be_cancelled() -> None:
    calls = []

    async def fetch():
        calls.append(1)
        return []

    poller = CandidatePoller(fetch, interval=0.01)
    task = asyncio.create_task(poller.wait())
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert calls


def test_poller_rejects_non_positive_interval() -> None:
    async def fetch():
        return []

    with pytest.raises(ValueError):
        CandidatePoller(fetch, interval=0)
