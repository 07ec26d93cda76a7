from __future__ import annotations

import logging
import signal
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class CancelToken:
    """
    Cooperative shutdown flag.

    Loops check `cancelled` before starting a new iteration; `wait()` is a
    sleep that returns early once cancellation is requested.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "requested") -> None:
        if not self._event.is_set():
            self.reason = reason
            logger.warning("Cancellation requested (%s); finishing in-flight work", reason)
        self._event.set()

    def wait(self, seconds: float) -> None:
        if seconds > 0:
            self._event.wait(seconds)

    def install_signal_handlers(self) -> None:
        """Route SIGINT/SIGTERM to cancel(); main thread only."""

        def _handler(signum, _frame):
            self.cancel(signal.Signals(signum).name)

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
