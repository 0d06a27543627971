import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from ridedispatch.db.utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class PendingOffer:
    request_id: str
    expires_at: datetime
    handle: asyncio.TimerHandle
    loop: asyncio.AbstractEventLoop


class OfferTimeoutManager:
    """Max-wait timers for dispatched requests, on the asyncio event loop.

    When a timer fires, ``on_timeout(request_id, expires_at)`` runs in a worker
    thread. Timers may be cleared from any thread.
    """

    def __init__(
        self,
        on_timeout: Callable[[str, datetime], None],
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._on_timeout = on_timeout
        self._clock = clock
        self._pending: dict[str, PendingOffer] = {}
        self._running: set[asyncio.Task[None]] = set()
        self._lock = threading.Lock()

    def start_offer_timeout(self, request_id: str, expires_at: datetime) -> None:
        """Arm (or re-arm) the timer for a request. Must be called from the event loop."""
        loop = asyncio.get_running_loop()
        delay = max(0.0, (expires_at - self._clock()).total_seconds())
        handle = loop.call_later(delay, self._fire, request_id)

        with self._lock:
            previous = self._pending.pop(request_id, None)
            self._pending[request_id] = PendingOffer(request_id, expires_at, handle, loop)
        if previous is not None:
            previous.handle.cancel()

    def clear_offer(self, request_id: str, reason: str) -> bool:
        with self._lock:
            pending = self._pending.pop(request_id, None)
        if pending is None:
            return False
        try:
            pending.loop.call_soon_threadsafe(pending.handle.cancel)
        except RuntimeError:
            # Loop already closed; nothing left to cancel
            pass
        logger.debug(f"Offer timer for {request_id} cleared ({reason})")
        return True

    def has_pending(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._pending

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def cancel_all(self) -> None:
        with self._lock:
            request_ids = list(self._pending)
        for request_id in request_ids:
            self.clear_offer(request_id, "shutdown")

    async def drain(self) -> None:
        """Wait for timeout callbacks already in flight."""
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    def _fire(self, request_id: str) -> None:
        with self._lock:
            pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        task = pending.loop.create_task(
            asyncio.to_thread(self._run_timeout, request_id, pending.expires_at)
        )
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    def _run_timeout(self, request_id: str, expires_at: datetime) -> None:
        try:
            self._on_timeout(request_id, expires_at)
        except Exception:
            logger.exception(f"Timeout handling for request {request_id} failed")
