import logging
import os
import signal
import threading

logger = logging.getLogger(__name__)

FORCED_EXIT_CODE = 130


class AbortFlag:
    """Cooperative cancellation shared by the analyzer workers and the engine."""

    def __init__(self):
        self._event = threading.Event()

    def set(self):
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()


def install_signal_handlers(abort: AbortFlag, on_first=None):
    """First SIGINT/SIGTERM requests a graceful stop; a second SIGINT exits at once.

    ``on_first`` is called once, on the signal that sets the flag.
    Must be called from the main thread.
    """

    def _handler(signum, frame):
        if abort.is_set():
            if signum == signal.SIGINT:
                logger.warning("Second interrupt, exiting immediately")
                os._exit(FORCED_EXIT_CODE)
            return
        logger.warning(f"Received signal {signum}, finishing current file then stopping")
        abort.set()
        if on_first is not None:
            on_first()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
