"""Sync lifecycle events and the in-process bus that delivers them.

Events are a closed set of frozen dataclasses; consumers match on the
concrete class::

    def on_event(event: SyncEvent) -> None:
        match event:
            case ProgressEvent(progress=p):
                ...
            case CompletedEvent(result=r):
                ...
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from chunksync.sync.protocol import SyncProgress, SyncResult, SyncStatus
from chunksync.utils.timeutils import now_ms

logger = logging.getLogger(__name__)


class SyncEventType(StrEnum):
    """Event tags."""

    STATUS_CHANGED = "status_changed"
    PROGRESS = "progress"
    ERROR = "error"
    CONFLICT = "conflict"
    COMPLETED = "completed"


@dataclass(frozen=True)
class StatusChangedEvent:
    type: ClassVar[SyncEventType] = SyncEventType.STATUS_CHANGED

    status: SyncStatus
    timestamp: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class ProgressEvent:
    type: ClassVar[SyncEventType] = SyncEventType.PROGRESS

    progress: SyncProgress
    timestamp: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class ErrorEvent:
    type: ClassVar[SyncEventType] = SyncEventType.ERROR

    error: str
    timestamp: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class ConflictEvent:
    type: ClassVar[SyncEventType] = SyncEventType.CONFLICT

    chunk_id: str
    timestamp: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class CompletedEvent:
    type: ClassVar[SyncEventType] = SyncEventType.COMPLETED

    result: SyncResult
    timestamp: int = field(default_factory=now_ms)


SyncEvent = StatusChangedEvent | ProgressEvent | ErrorEvent | ConflictEvent | CompletedEvent

EventListener = Callable[[SyncEvent], Any]


def event_to_dict(event: SyncEvent) -> dict[str, Any]:
    """Serialize an event for logs or JSON output."""
    payload: dict[str, Any]
    match event:
        case StatusChangedEvent(status=status):
            payload = {"status": status.value}
        case ProgressEvent(progress=progress):
            payload = {
                "phase": progress.phase.value,
                "total_progress": progress.total_progress,
                "current_chunk": progress.current_chunk,
                "processed_chunks": progress.processed_chunks,
                "total_chunks": progress.total_chunks,
            }
        case ErrorEvent(error=error):
            payload = {"error": error}
        case ConflictEvent(chunk_id=chunk_id):
            payload = {"id": chunk_id}
        case CompletedEvent(result=result):
            payload = result.to_dict()
    return {"type": event.type.value, "data": payload, "timestamp": event.timestamp}


class Subscription:
    """Handle returned by :meth:`EventBus.add_listener`.

    Disposing it unregisters the listener. Disposal is idempotent, and the
    handle works as a context manager so the listener is removed on every
    exit path::

        with engine.add_event_listener(print):
            await engine.sync()
    """

    def __init__(self, bus: EventBus, listener: EventListener) -> None:
        self._bus = bus
        self._listener = listener
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def dispose(self) -> None:
        if self._active:
            self._active = False
            self._bus._unregister(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()


class EventBus:
    """Synchronous publish/subscribe channel.

    Listeners run in registration order at the moment :meth:`emit` is
    called. An exception raised by one listener is logged and does not
    stop delivery to the others.
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def __len__(self) -> int:
        return len(self._subscriptions)

    def add_listener(self, listener: EventListener) -> Subscription:
        subscription = Subscription(self, listener)
        self._subscriptions.append(subscription)
        return subscription

    def remove_listener(self, listener: EventListener) -> None:
        """Unregister the earliest registration of ``listener``, if any."""
        for subscription in self._subscriptions:
            if subscription._listener == listener:
                subscription.dispose()
                return

    def clear(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.dispose()

    def emit(self, event: SyncEvent) -> None:
        # Snapshot so listeners may unsubscribe themselves during delivery.
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                subscription._listener(event)
            except Exception:
                logger.error("Sync event listener failed for %s", event.type.value, exc_info=True)

    def _unregister(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass
