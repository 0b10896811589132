"""Cancellable recurring trigger for automatic sync."""

import logging
import threading
from typing import Callable, Optional


class PeriodicTrigger:
    """
    Calls a function every `interval` seconds on a daemon thread.

    Exceptions raised by the callback are logged and the trigger keeps
    running. `stop()` returns immediately; a callback already running is
    left to finish on its own.
    """

    def __init__(self, interval: float, callback: Callable[[], object], name: str = "VaultSync-AutoSync"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.callback = callback
        self.name = name
        self.logger = logging.getLogger('vaultsync.git_sync.scheduler')
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._stop_event.is_set()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("PeriodicTrigger can only be started once")
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        self.logger.debug(f"Started {self.name} every {self.interval:.0f}s")

    def stop(self) -> None:
        self._stop_event.set()
        self.logger.debug(f"Stopped {self.name}")

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.callback()
            except Exception as e:
                self.logger.error(f"Scheduled run of {self.name} failed: {e}", exc_info=True)
