import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class RequestExpirySweeper:
    """Periodically runs the housekeeping sweep that retires lapsed ride requests.

    Expiry is also enforced whenever a request is claimed, cancelled or
    edited, so the sweep only keeps listings and stats tidy.
    """

    def __init__(self, sweep: Callable[[], list[Any]], interval_seconds: float = 15.0) -> None:
        self._sweep = sweep
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                expired = await asyncio.to_thread(self._sweep)
                if expired:
                    logger.debug(f"Sweep retired {len(expired)} ride requests")
            except Exception:
                logger.exception("Ride request expiry sweep failed")
