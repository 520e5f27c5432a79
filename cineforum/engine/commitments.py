"""Commitment tracker: who pledged to watch and who pledged to debate."""

from __future__ import annotations

from cineforum.errors import InvalidPhase
from cineforum.schemas.session import CineSession, CommitmentKind, Phase


def _members(session: CineSession, kind: CommitmentKind) -> list[str]:
    if kind == CommitmentKind.VIEW:
        return session.committed_viewers
    return session.committed_debaters


def toggle_commitment(
    session: CineSession, member_id: str, kind: CommitmentKind,
) -> bool:
    """Flip the member's commitment of the given kind.

    Withdrawing a debate pledge also drops the member's time-slot votes,
    unless the final slot is already decided (votes are frozen then).

    Returns:
        True if the member is now committed, False if the pledge was withdrawn.

    Raises:
        InvalidPhase: While the session is still voting (no winner yet).
    """
    if session.phase == Phase.VOTING:
        raise InvalidPhase("Commitments open once the winner is known")

    members = _members(session, kind)
    if member_id in members:
        members.remove(member_id)
        if kind == CommitmentKind.DEBATE and session.final_slot is None:
            for slot in list(session.time_votes):
                voters = session.time_votes[slot]
                if member_id in voters:
                    voters.remove(member_id)
                if not voters:
                    del session.time_votes[slot]
        return False

    members.append(member_id)
    return True


def is_committed(session: CineSession, member_id: str, kind: CommitmentKind) -> bool:
    return member_id in _members(session, kind)


def committed_members(session: CineSession, kind: CommitmentKind) -> list[str]:
    return list(_members(session, kind))


def commitment_counts(session: CineSession) -> dict[str, int]:
    return {
        CommitmentKind.VIEW.value: len(session.committed_viewers),
        CommitmentKind.DEBATE.value: len(session.committed_debaters),
    }
