"""Session schemas.

Defines the canonical CineSession record (the single versioned document
every core operation reads and writes), its Candidates and FinalSlot,
the Member reference, and the lightweight SessionSummary / SessionQuery
used for listing.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class Phase(StrEnum):
    """Phases of a cineforum session.

    VOTING: members vote on the candidate films.
    VIEWING: the winner is fixed; members commit and vote on a debate time.
    DISCUSSION: the live, turn-moderated debate.
    """

    VOTING = "voting"
    VIEWING = "viewing"
    DISCUSSION = "discussion"


class CommitmentKind(StrEnum):
    """What a member pledges to do with the winning film."""

    VIEW = "view"
    DEBATE = "debate"


class Member(BaseModel):
    """A club member, referenced by id. Owned outside the core."""

    member_id: str = Field(description="Unique member identifier")
    display_name: str = Field(default="", description="Name shown in the log")
    is_admin: bool = Field(
        default=False, description="Whether the member may run privileged operations",
    )


class Candidate(BaseModel):
    """A film on the ballot, supplied by the external recommender."""

    candidate_id: str = Field(description="Stable candidate identifier")
    title: str = Field(description="Film title")
    year: int | None = Field(default=None, description="Release year")
    reason: str = Field(
        default="", description="Short rationale for why the film fits the theme",
    )
    description: str = Field(default="", description="Synopsis")
    poster_url: str = Field(default="", description="Poster image URL")
    votes: list[str] = Field(
        default_factory=list,
        description="Member ids currently voting for this candidate (no duplicates)",
    )


class FinalSlot(BaseModel):
    """The applied consensus decision for the live debate time.

    Either a chosen slot label or a cancellation marker. Written once.
    """

    slot: str = Field(default="", description="Chosen slot key (empty when cancelled)")
    cancelled: bool = Field(
        default=False, description="Whether the oracle cancelled the debate",
    )
    message: str = Field(default="", description="Oracle explanation of the decision")
    resolved_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the decision was applied",
    )

    @property
    def label(self) -> str:
        return "cancelled" if self.cancelled else self.slot


class CineSession(BaseModel):
    """Full state of one activity cycle.

    Stored as a single document with an optimistic ``version`` counter;
    see cineforum.service for the compare-and-swap discipline.
    """

    session_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique session identifier (UUID)",
    )
    version: int = Field(default=0, ge=0, description="Optimistic concurrency counter")
    phase: Phase = Field(default=Phase.VOTING, description="Current phase")

    theme_title: str = Field(default="", description="Title of the cycle's theme")
    theme_description: str = Field(default="", description="Flyer text for the theme")
    reasoning: str = Field(
        default="", description="Recommender's explanation of why the theme was chosen",
    )
    backdrop_url: str = Field(default="", description="Backdrop image URL")
    episode_number: int = Field(
        default=1, ge=1, description="Sequence number of this cycle",
    )

    candidates: list[Candidate] = Field(
        default_factory=list, description="Ballot in creation order",
    )
    winner_id: str | None = Field(
        default=None, description="Winning candidate id, set on entering viewing",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the session was created",
    )
    voting_deadline: datetime | None = Field(
        default=None, description="Informational end of the voting phase",
    )
    viewing_deadline: datetime | None = Field(
        default=None, description="Informational end of the viewing phase",
    )
    closed_at: datetime | None = Field(
        default=None, description="When the session was closed (None while active)",
    )

    committed_viewers: list[str] = Field(
        default_factory=list, description="Members who pledged to watch the winner",
    )
    committed_debaters: list[str] = Field(
        default_factory=list, description="Members who pledged to attend the debate",
    )
    time_votes: dict[str, list[str]] = Field(
        default_factory=dict, description="Slot key → member ids available then",
    )
    final_slot: FinalSlot | None = Field(
        default=None, description="Applied consensus decision, written once",
    )

    current_speaker_id: str | None = Field(
        default=None, description="Member holding the floor (None when open)",
    )
    speaker_queue: list[str] = Field(
        default_factory=list, description="Raised hands in FIFO order",
    )

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    def candidate(self, candidate_id: str) -> Candidate | None:
        for c in self.candidates:
            if c.candidate_id == candidate_id:
                return c
        return None

    @property
    def winner(self) -> Candidate | None:
        """The recorded winner, or None before the voting phase ends."""
        if self.winner_id is None:
            return None
        return self.candidate(self.winner_id)


class SessionSummary(BaseModel):
    """Lightweight session summary for listing."""

    session_id: str = Field(description="Unique session identifier")
    theme_title: str = Field(default="", description="Theme title")
    phase: Phase = Field(description="Current phase")
    episode_number: int = Field(default=1, description="Cycle sequence number")
    created_at: datetime = Field(description="When the session was created")
    closed_at: datetime | None = Field(default=None, description="When it was closed")
    candidate_count: int = Field(default=0, description="Number of candidates")
    winner_title: str = Field(default="", description="Winning film, if decided")
    final_slot: str = Field(default="", description="Final slot label, if resolved")
    message_count: int = Field(default=0, description="Messages in the discussion log")


class SessionQuery(BaseModel):
    """Query parameters for listing sessions."""

    limit: int = Field(default=20, ge=1, le=100, description="Max sessions to return")
    offset: int = Field(default=0, ge=0, description="Offset for pagination")
    phase: Phase | None = Field(default=None, description="Filter by phase")
    active_only: bool = Field(default=False, description="Hide closed sessions")
    theme_filter: str | None = Field(
        default=None, description="Filter by theme title (substring match)",
    )
    since: str | None = Field(
        default=None, description="Filter sessions created after this ISO date",
    )


class SessionDraft(BaseModel):
    """Candidate supply handed over by the external recommender.

    Opaque to the core apart from the candidate ids and titles; any votes
    present in the input are discarded when the session is created.
    """

    theme_title: str = Field(default="Cineforum", description="Title of the theme")
    theme_description: str = Field(default="", description="Flyer text")
    reasoning: str = Field(default="", description="Why the recommender picked the theme")
    backdrop_url: str = Field(default="", description="Backdrop image URL")
    candidates: list[Candidate] = Field(
        min_length=1, description="Ballot in the recommender's order",
    )

    @field_validator("candidates")
    @classmethod
    def _unique_ids(cls, candidates: list[Candidate]) -> list[Candidate]:
        ids = [c.candidate_id for c in candidates]
        if len(ids) != len(set(ids)):
            raise ValueError("candidate ids must be unique")
        return candidates
