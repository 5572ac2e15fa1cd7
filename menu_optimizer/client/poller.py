"""Fixed-interval polling for freshly generated candidates."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional

from menu_optimizer.config.settings import CANDIDATE_POLL_INTERVAL_SECONDS

logger = logging.getLogger(__name__)


class PollingCancelled(RuntimeError):
    """Raised by ``wait`` when ``cancel`` was called before candidates appeared."""


class PollingTimeout(RuntimeError):
    """Raised by ``wait`` once ``max_wait`` seconds went by without candidates."""


class CandidatePoller:
    """Call ``fetch`` every ``interval`` seconds until it returns something.

    There is no backoff and, unless ``max_wait`` is set, no limit on the number
    of attempts. Stopping the poller never touches the job running server side.
    ``sleep`` and ``clock`` can be swapped for a virtual clock in tests.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[List[Any]]],
        *,
        interval: float = CANDIDATE_POLL_INTERVAL_SECONDS,
        max_wait: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.fetch = fetch
        self.interval = interval
        self.max_wait = max_wait
        self._sleep = sleep
        self._clock = clock
        self._cancelled = asyncio.Event()
        self.attempts = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def wait(self) -> List[Any]:
        started = self._clock()
        while True:
            if self.cancelled:
                raise PollingCancelled("Polling cancelled.")

            self.attempts += 1
            results = await self.fetch()
            if results:
                logger.debug("Candidates available", extra={"attempts": self.attempts, "count": len(results)})
                return list(results)

            if self.max_wait is not None and self._clock() - started >= self.max_wait:
                raise PollingTimeout(f"No candidates after {self.attempts} attempts.")

            await self._pause()

    async def _pause(self) -> None:
        """Sleep for one interval, cut short by ``cancel``."""

        sleeper = asyncio.ensure_future(self._sleep(self.interval))
        stopper = asyncio.ensure_future(self._cancelled.wait())
        try:
            done, _ = await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
            if sleeper in done:
                sleeper.result()
        finally:
            for task in (sleeper, stopper):
                if not task.done():
                    task.cancel()


__all__ = ["CandidatePoller", "PollingCancelled", "PollingTimeout"]
