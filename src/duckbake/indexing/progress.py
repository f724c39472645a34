"""
Progress events and cancellation flags for vectorization jobs.
"""

from __future__ import annotations

import threading
from typing import Callable, Literal, TypeAlias

from loguru import logger
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

JobStatus: TypeAlias = Literal[
    "pending", "loading_model", "processing", "completed", "cancelled", "error"
]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "cancelled", "error"})


class VectorizationProgress(BaseModel):
    """Progress notification emitted at every job state change.

    Serialized with camelCase keys (``sourceId``, ``processedUnits``, ...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    source_id: str
    source_name: str
    total_units: int
    processed_units: int
    status: JobStatus
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)


ProgressListener: TypeAlias = Callable[[VectorizationProgress], None]


class ProgressBroadcaster:
    """Fan progress events out to subscribed listeners.

    Delivery is fire-and-forget: a failing listener is logged and skipped.
    """

    def __init__(self) -> None:
        self._listeners: list[ProgressListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: ProgressListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, event: VectorizationProgress) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as exc:
                logger.warning(
                    f"Progress listener failed for {event.source_id} ({event.status}): {exc}"
                )


class CancellationRegistry:
    """Process-wide set of source ids whose running job should stop."""

    def __init__(self) -> None:
        self._requested: set[str] = set()
        self._lock = threading.Lock()

    def request(self, source_id: str) -> None:
        """Ask the job for *source_id* to stop at its next batch boundary."""
        with self._lock:
            self._requested.add(source_id)

    def is_requested(self, source_id: str) -> bool:
        with self._lock:
            return source_id in self._requested

    def clear(self, source_id: str) -> None:
        with self._lock:
            self._requested.discard(source_id)

    def consume(self, source_id: str) -> bool:
        """Return whether cancellation was requested, clearing the flag."""
        with self._lock:
            if source_id in self._requested:
                self._requested.discard(source_id)
                return True
            return False
