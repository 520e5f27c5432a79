"""Time-slot ballot and application of the consensus decision."""

from __future__ import annotations

from cineforum.consensus.voting import count_slot_votes
from cineforum.errors import AlreadyResolved, InvalidPhase, NotCommitted, SlotAlreadyFinal
from cineforum.schemas.consensus import SlotDecision
from cineforum.schemas.session import CineSession, FinalSlot, Phase


def toggle_slot_vote(session: CineSession, member_id: str, slot_key: str) -> bool:
    """Flip the member's availability for ``slot_key``.

    Returns:
        True if the member now votes for the slot, False if the vote was removed.

    Raises:
        InvalidPhase: While the session is still voting.
        SlotAlreadyFinal: Once the final slot has been decided.
        NotCommitted: If the member has not pledged to debate.
    """
    if session.phase == Phase.VOTING:
        raise InvalidPhase("Time voting opens once the winner is known")
    if session.final_slot is not None:
        raise SlotAlreadyFinal(f"Debate time already set: {session.final_slot.label}")
    if member_id not in session.committed_debaters:
        raise NotCommitted("Only members committed to the debate vote on time")

    voters = session.time_votes.setdefault(slot_key, [])
    if member_id in voters:
        voters.remove(member_id)
        if not voters:
            del session.time_votes[slot_key]
        return False
    voters.append(member_id)
    return True


def slot_counts(session: CineSession) -> dict[str, int]:
    return count_slot_votes(session.time_votes)


def apply_decision(session: CineSession, decision: SlotDecision) -> FinalSlot:
    """Write the oracle's decision to ``final_slot``. Write-once.

    Raises:
        InvalidPhase: If there is no winner yet.
        AlreadyResolved: If a decision has already been applied.
    """
    if session.phase == Phase.VOTING:
        raise InvalidPhase("The debate time is decided after voting ends")
    if session.final_slot is not None:
        raise AlreadyResolved(f"Final slot already set: {session.final_slot.label}")

    final = FinalSlot(
        slot=decision.chosen_slot or "",
        cancelled=decision.cancelled,
        message=decision.message,
    )
    session.final_slot = final
    return final
