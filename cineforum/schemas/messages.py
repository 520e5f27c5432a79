"""Message log schemas.

Defines the EventMessage stored in a session's append-only discussion log.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class MessageRole(StrEnum):
    """Who authored a log entry."""

    PARTICIPANT = "participant"
    MODERATOR = "moderator"


class EventMessage(BaseModel):
    """A single contribution to the live discussion.

    The timestamp is assigned by the store at append time and is never
    earlier than the previous entry's timestamp in the same log.
    """

    message_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique message identifier (UUID v4)",
    )
    session_id: str = Field(description="Session this message belongs to")
    author_id: str | None = Field(
        default=None, description="Member id, or None for moderator/system lines",
    )
    author_name: str = Field(default="", description="Display name of the author")
    role: MessageRole = Field(
        default=MessageRole.PARTICIPANT, description="Participant or moderator",
    )
    text: str = Field(description="Message body")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Append time, monotonically non-decreasing per log",
    )
    audio_ref: str | None = Field(
        default=None, description="Reference to a recorded voice payload",
    )
