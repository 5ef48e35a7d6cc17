"""Typed publish/subscribe registry for consultation events.

The orchestrator emits an event after every state change. Subscribers are
plain callables or coroutine functions; a failing subscriber is logged and
never affects the emitter or other subscribers.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Notification kinds emitted by the orchestrator."""

    SESSION_CREATED = "session_created"
    SESSION_INITIALIZED = "session_initialized"
    SESSION_ERROR = "session_error"
    SYMPTOMS_ADDED = "symptoms_added"
    DIAGNOSIS_SET = "diagnosis_set"
    PRESCRIPTION_GENERATED = "prescription_generated"
    SESSION_CLOSED = "session_closed"


class SessionEvent(BaseModel):
    """A single notification delivered to subscribers."""

    type: EventType
    session_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


EventCallback = Callable[[SessionEvent], None | Awaitable[None]]


class EventNotifier:
    """Mapping of event type to subscriber callbacks."""

    def __init__(self) -> None:
        self._listeners: dict[EventType, list[EventCallback]] = {t: [] for t in EventType}
        self._pending: set[asyncio.Task] = set()

    def on(self, event_type: EventType, callback: EventCallback) -> None:
        """Subscribe callback to event_type."""
        self._listeners[event_type].append(callback)

    def off(self, event_type: EventType, callback: EventCallback) -> None:
        """Unsubscribe callback from event_type. Unknown callbacks are ignored."""
        listeners = self._listeners[event_type]
        if callback in listeners:
            listeners.remove(callback)

    def subscribe_all(self, callback: EventCallback) -> None:
        for event_type in EventType:
            self.on(event_type, callback)

    def unsubscribe_all(self, callback: EventCallback) -> None:
        for event_type in EventType:
            self.off(event_type, callback)

    def listener_count(self, event_type: EventType) -> int:
        return len(self._listeners[event_type])

    def emit(
        self,
        event_type: EventType,
        session_id: str,
        payload: dict[str, Any] | None = None,
    ) -> SessionEvent:
        """Deliver an event to every subscriber of event_type.

        Coroutine subscribers are scheduled on the running loop and not
        awaited.

        Returns:
            The event that was delivered.
        """
        event = SessionEvent(type=event_type, session_id=session_id, payload=payload or {})
        logger.debug("Event %s for session %s", event_type.value, session_id)

        # Copy so callbacks may unsubscribe themselves
        for callback in list(self._listeners[event_type]):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    self._schedule(result, event)
            except Exception:
                logger.exception("Subscriber failed handling %s for session %s", event_type.value, session_id)
        return event

    def _schedule(self, awaitable: Awaitable[None], event: SessionEvent) -> None:
        async def run() -> None:
            try:
                await awaitable
            except Exception:
                logger.exception(
                    "Async subscriber failed handling %s for session %s",
                    event.type.value, event.session_id,
                )

        task = asyncio.get_running_loop().create_task(run())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
