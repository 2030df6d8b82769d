"""Cooperative shutdown for the execution loop.

The loop polls a CancellationToken once per cycle. The token is the only
piece of state shared across threads: a signal handler (or any other
thread) calls ``cancel()``, the loop thread reads ``cancelled``.
"""

import logging
import signal
import threading
from typing import Optional


logger = logging.getLogger(__name__)


class CancellationToken:
    """One-shot cancellation flag backed by ``threading.Event``."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float]) -> bool:
        """Block for up to ``timeout`` seconds or until cancelled.

        Returns:
            True if the token was cancelled
        """
        return self._event.wait(timeout)


def install_sigint_handler(token: CancellationToken):
    """Make Ctrl-C cancel ``token`` instead of raising KeyboardInterrupt.

    Must be called from the main thread.

    Returns:
        The previously installed SIGINT handler
    """
    def _handler(signum, frame):
        logger.info("Interrupt received, stopping")
        token.cancel()

    return signal.signal(signal.SIGINT, _handler)
