"""
Cancellation token

Shared by the caller and the blocking waits of a run.
"""

import logging
import threading
from typing import Callable, List

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-shot, thread-safe cancellation flag"""

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        """Cancel and wake every waiter (idempotent)"""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Error in cancel callback: {e}")

    def wait(self, timeout: float = None) -> bool:
        """
        Sleep until cancelled or timeout

        Returns:
            True if cancelled
        """
        return self._event.wait(timeout)

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Call callback on cancellation (immediately if already cancelled)

        Returns:
            Function removing the registration
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def unregister():
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)
                return unregister

        callback()
        return lambda: None
