"""Consensus schemas.

Defines the ballot tally (VoteTally) and the request/response contract of
the external consensus oracle that picks the live debate slot
(SlotRequest, SlotDecision).
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class VoteTally(BaseModel):
    """Result of counting candidate votes.

    ``winner`` is always resolved by the index tie-break when the ballot
    has candidates; ``is_tie`` records whether the tie-break was needed.
    """

    counts: dict[str, int] = Field(
        default_factory=dict,
        description="Candidate id → number of votes received (creation order)",
    )
    winner: str | None = Field(
        default=None,
        description="Candidate with most votes; lowest index wins ties",
    )
    is_tie: bool = Field(
        default=False, description="Whether several candidates share the top count",
    )
    tied_options: list[str] = Field(
        default_factory=list,
        description="Candidates tied for first place, in creation order",
    )


class SlotRequest(BaseModel):
    """Input handed to the consensus oracle."""

    slot_counts: dict[str, int] = Field(
        default_factory=dict, description="Slot key → number of available debaters",
    )
    subject_title: str = Field(description="Title of the winning film")
    sequence_number: int = Field(ge=1, description="Episode number of the cycle")


class SlotDecision(BaseModel):
    """Oracle reply: either a chosen slot or a cancellation."""

    chosen_slot: str | None = Field(default=None, description="Chosen slot key")
    cancelled: bool = Field(default=False, description="Whether the debate is cancelled")
    message: str = Field(default="", description="Human-readable explanation")

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> SlotDecision:
        if self.cancelled and self.chosen_slot:
            raise ValueError("a decision cannot both choose a slot and cancel")
        if not self.cancelled and not self.chosen_slot:
            raise ValueError("a decision must choose a slot or cancel")
        return self
