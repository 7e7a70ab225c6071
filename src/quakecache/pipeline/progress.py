"""
Progress reporting for top-level cache operations.

``ProgressReporter`` owns the single progress state. Only the running
operation writes to it, through ``report()`` and ``reset()``; any number
of subscribers read immutable ``FetchProgress`` snapshots.

State machine::

    idle -> validating -> fetching -> storing -> idle

Errors never leave a trace in the reporter: ``tracking()`` resets it to
idle on every exit path and the exception propagates to the caller.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional

from ..models import now_ms


class Operation(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    FETCHING = "fetching"
    STORING = "storing"


@dataclass(frozen=True)
class FetchProgress:
    """Snapshot of the running operation."""

    operation: Operation = Operation.IDLE
    current_step: int = 0
    total_steps: int = 0
    message: str = ""
    started_at_ms: Optional[int] = None
    events_loaded: int = 0
    current_range: Optional[str] = None

    @property
    def is_idle(self) -> bool:
        return self.operation is Operation.IDLE

    @property
    def fraction(self) -> float:
        if self.total_steps <= 0:
            return 0.0
        return min(1.0, self.current_step / self.total_steps)

    def to_dict(self) -> Dict:
        return {
            "operation": self.operation.value,
            "current_step": self.current_step,
            "total_steps": self.total_steps,
            "message": self.message,
            "started_at_ms": self.started_at_ms,
            "events_loaded": self.events_loaded,
            "current_range": self.current_range,
        }


IDLE = FetchProgress()

ProgressCallback = Callable[[FetchProgress], None]


class ProgressReporter:
    """Single-writer, many-reader progress state."""

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._clock = clock
        self._state = IDLE
        self._subscribers: List[ProgressCallback] = []
        self._lock = threading.Lock()
        self._log = logging.getLogger("pipeline.progress")

    @property
    def snapshot(self) -> FetchProgress:
        return self._state

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def report(
        self,
        operation: Operation,
        step: int = 0,
        total: int = 0,
        message: str = "",
        events_loaded: Optional[int] = None,
        current_range: Optional[str] = None,
    ) -> FetchProgress:
        """Move to ``operation`` and publish the new snapshot."""
        previous = self._state
        started = previous.started_at_ms
        if started is None or operation is Operation.IDLE:
            started = None if operation is Operation.IDLE else self._clock()
        state = FetchProgress(
            operation=operation,
            current_step=step,
            total_steps=total,
            message=message,
            started_at_ms=started,
            events_loaded=(
                previous.events_loaded if events_loaded is None else events_loaded
            ),
            current_range=current_range,
        )
        self._publish(state)
        return state

    def add_events(self, count: int) -> None:
        self._publish(replace(self._state, events_loaded=self._state.events_loaded + count))

    def reset(self) -> None:
        self._publish(IDLE)

    @contextmanager
    def tracking(self, message: str = "Preparing...") -> Iterator["ProgressReporter"]:
        """Scope a top-level operation; always ends idle."""
        self.reset()
        self.report(Operation.VALIDATING, message=message)
        try:
            yield self
        finally:
            self.reset()

    def _publish(self, state: FetchProgress) -> None:
        self._state = state
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(state)
            except Exception:
                self._log.exception("Progress subscriber %r failed", callback)
