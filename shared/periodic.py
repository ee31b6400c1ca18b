"""
Cancellable fixed-interval timer.

Runs a callback in a daemon thread every `interval` seconds until cancelled.
The stop flag is checked before every call, so a cancelled timer never fires
again (a call already in progress is allowed to finish).
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTimer:
    def __init__(
        self,
        interval: float,
        callback: Callable[[], None],
        name: str = "periodic",
        run_immediately: bool = False,
    ):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.run_immediately = run_immediately

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._stop.is_set()

    def start(self) -> "PeriodicTimer":
        if self._thread is not None:
            logger.warning(f"Timer {self.name} already started")
            return self
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        return self

    def cancel(self) -> None:
        self._stop.set()

    def join(self, timeout: float = 5.0) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def _run(self) -> None:
        if self.run_immediately:
            self._fire()
        while not self._stop.wait(self.interval):
            self._fire()

    def _fire(self) -> None:
        if self._stop.is_set():
            return
        try:
            self.callback()
        except Exception as e:
            logger.error(f"Timer {self.name} callback failed: {e}", exc_info=True)
