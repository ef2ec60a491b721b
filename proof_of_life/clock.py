import asyncio
import time


class SystemClock:
    """Wall-clock time; waits suspend only the awaiting task."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class VirtualClock:
    """
    Simulated time, advanced only by ``sleep``.

    Used to replay recorded video at its own pace and to make runs
    deterministic. ``sleep`` still yields to the event loop, so other tasks
    progress and the awaiting task can be cancelled.
    """

    def __init__(self, start: float = 0.0):
        self._now = start

    def now(self) -> float:
        return self._now

    async def sleep(self, seconds: float) -> None:
        self._now += max(0.0, seconds)
        await asyncio.sleep(0)
