"""
Cooperative cancellation for handlers.

Every request's system map carries the worker's CancellationToken under
the "cancellation" key. The worker cancels it when it starts draining
(stop message from the listener, or the peer closed the connection). A
handler may poll it, block on it, or subscribe a callback; nothing is
aborted forcibly.

    async def handler(cgi, payload, system):
        token = system["cancellation"]
        for chunk in work():
            if token.cancelled:
                break
            ...
"""

import logging
import threading
from typing import Callable, List, Optional


logger = logging.getLogger(__name__)


class CancellationToken:
    """One-shot stop notification with subscribers."""

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout; returns cancelled state."""
        return self._event.wait(timeout)

    def subscribe(self, callback: Callable[[], None]) -> None:
        """
        Run callback on cancellation.

        Subscribing to an already cancelled token runs callback at once.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def cancel(self) -> None:
        """Cancel the token and notify subscribers once."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.exception(f"Cancellation callback failed: {e}")
