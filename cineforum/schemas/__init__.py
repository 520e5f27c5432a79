"""Cineforum schema definitions.

All Pydantic v2 models used across the engine, the store and the oracles.
"""

from cineforum.schemas.config import ForumConfig, ModelConfig, SlotCategory
from cineforum.schemas.consensus import SlotDecision, SlotRequest, VoteTally
from cineforum.schemas.messages import EventMessage, MessageRole
from cineforum.schemas.oracle import ModelReply, TokenUsage
from cineforum.schemas.session import (
    Candidate,
    CineSession,
    CommitmentKind,
    FinalSlot,
    Member,
    Phase,
    SessionDraft,
    SessionQuery,
    SessionSummary,
)

__all__ = [
    "Candidate",
    "CineSession",
    "CommitmentKind",
    "EventMessage",
    "FinalSlot",
    "ForumConfig",
    "Member",
    "MessageRole",
    "ModelConfig",
    "ModelReply",
    "Phase",
    "SessionDraft",
    "SessionQuery",
    "SessionSummary",
    "SlotCategory",
    "SlotDecision",
    "SlotRequest",
    "TokenUsage",
    "VoteTally",
]
