import asyncio
import threading
from typing import Optional

from .errors import OperationCancelled


class CancellationToken:
    """
    Cooperative cancellation flag shared between a job and the code running it.

    ``cancel()`` may be called from any thread. Work checks the flag at stage
    boundaries; ``sleep()`` wakes up early when the token fires.
    """

    def __init__(self):
        self._cancelled = threading.Event()
        self._waiters: list[tuple[asyncio.AbstractEventLoop, asyncio.Event]] = []
        self._lock = threading.Lock()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            waiters = list(self._waiters)

        for loop, event in waiters:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(event.set)

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled:
            raise OperationCancelled("Operation was cancelled")

    async def sleep(self, delay: float) -> bool:
        """
        Wait up to ``delay`` seconds.

        Returns True if the full delay elapsed, False if the token fired first.
        Never raises on cancellation.
        """
        if self.is_cancelled:
            return False

        loop = asyncio.get_running_loop()
        event = asyncio.Event()
        entry = (loop, event)
        with self._lock:
            if self._cancelled.is_set():
                return False
            self._waiters.append(entry)

        try:
            await asyncio.wait_for(event.wait(), timeout=delay)
            return False
        except asyncio.TimeoutError:
            return not self.is_cancelled
        finally:
            with self._lock:
                self._waiters.remove(entry)


def ensure_token(token: Optional[CancellationToken]) -> CancellationToken:
    return token if token is not None else CancellationToken()
