"""Notifications published by CineforumService after a write commits.

An event is only emitted once the compare-and-swap that produced it has
succeeded, so listeners never hear about a change that was rolled back.
The moderator observer and any UI relay subscribe here; the engine and
the store know nothing about them.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """What changed in the session."""

    # Lifecycle
    SESSION_CREATED = "session_created"
    SESSION_CLOSED = "session_closed"
    PHASE_CHANGED = "phase_changed"

    # Film ballot
    VOTE_CAST = "vote_cast"
    VOTE_RETRACTED = "vote_retracted"

    # Viewing commitments and debate time
    COMMITMENT_TOGGLED = "commitment_toggled"
    SLOT_VOTE_TOGGLED = "slot_vote_toggled"
    FINAL_SLOT_RESOLVED = "final_slot_resolved"

    # Speaking floor
    HAND_RAISED = "hand_raised"
    HAND_LOWERED = "hand_lowered"
    TURN_GRANTED = "turn_granted"
    TURN_RELEASED = "turn_released"
    TURN_REVOKED = "turn_revoked"

    # Discussion log
    MESSAGE_APPENDED = "message_appended"


class SessionEvent(BaseModel):
    type: EventType
    session_id: str
    timestamp: float = Field(
        default_factory=time.time,
        description="Emission time, seconds since the epoch",
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Keyword arguments passed to emit(), e.g. member_id or phase",
    )


EventListener = Callable[[SessionEvent], Any]


class SessionEventEmitter:
    """Fans each session event out to its listeners, in registration order.

    A listener may be a plain callable or a coroutine function. A failing
    listener is logged and skipped; the remaining listeners still run and
    the mutation that emitted the event is unaffected.

    Args:
        keep_history: Record every emitted event, for tests and replay.
    """

    def __init__(self, keep_history: bool = False) -> None:
        self._listeners: list[EventListener] = []
        self._keep_history = keep_history
        self._history: list[SessionEvent] = []

    @property
    def history(self) -> list[SessionEvent]:
        return list(self._history)

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        # Equality, not identity: each attribute access builds a new bound method
        self._listeners = [ln for ln in self._listeners if ln != listener]

    async def emit(self, event_type: EventType, session_id: str, **data: Any) -> None:
        event = SessionEvent(type=event_type, session_id=session_id, data=data)
        if self._keep_history:
            self._history.append(event)
        for listener in list(self._listeners):
            await self._notify(listener, event)

    @staticmethod
    async def _notify(listener: EventListener, event: SessionEvent) -> None:
        try:
            outcome = listener(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception(
                "Listener %r failed on %s for session %s",
                listener, event.type, event.session_id,
            )
