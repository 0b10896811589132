"""Sync phases and the listeners that present them."""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Deque, List, Optional

SUCCESS_DISPLAY_SECONDS = 3.0


class SyncPhase(Enum):
    """Phases emitted by the sync manager as it moves through an operation."""
    IDLE = "idle"
    PULLING = "pulling"
    PUSHING = "pushing"
    COMMITTING = "committing"
    CONFLICT = "conflict"
    ERROR = "error"
    SUCCESS = "success"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncPhase.CONFLICT, SyncPhase.ERROR, SyncPhase.SUCCESS)


StatusListener = Callable[[SyncPhase, str], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StatusEvent:
    """One phase transition."""
    phase: SyncPhase
    message: str
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


class StatusLog:
    """
    Status display model.

    Records the latest phase and a short history. A success is shown for a
    few seconds and then reads as idle again.
    """

    def __init__(
        self,
        enabled: bool = True,
        history_size: int = 50,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.enabled = enabled
        self._clock = clock
        self._lock = threading.Lock()
        self._history: Deque[StatusEvent] = deque(maxlen=history_size)
        self._latest: Optional[StatusEvent] = None

    def __call__(self, phase: SyncPhase, message: str) -> None:
        if not self.enabled:
            return
        event = StatusEvent(phase, message, self._clock())
        with self._lock:
            self._history.append(event)
            self._latest = event

    def current(self) -> StatusEvent:
        """The phase the display should show now."""
        with self._lock:
            latest = self._latest
        if latest is None:
            return StatusEvent(SyncPhase.IDLE, "Ready", self._clock())
        if latest.phase == SyncPhase.SUCCESS:
            age = (self._clock() - latest.timestamp).total_seconds()
            if age >= SUCCESS_DISPLAY_SECONDS:
                return StatusEvent(SyncPhase.IDLE, "Ready", latest.timestamp)
        return latest

    def history(self) -> List[StatusEvent]:
        with self._lock:
            return list(self._history)


class Notifier:
    """Reports the end of each operation through logging."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.logger = logging.getLogger('vaultsync.notifications')

    def __call__(self, phase: SyncPhase, message: str) -> None:
        if not self.enabled or not phase.is_terminal:
            return
        if phase == SyncPhase.SUCCESS:
            self.logger.info(f"Vault sync: {message}")
        else:
            self.logger.warning(f"Vault sync {phase.value}: {message}")
