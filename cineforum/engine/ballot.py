"""Candidate ballot: one vote per member across the whole candidate set."""

from __future__ import annotations

from cineforum.consensus.voting import select_winner, tally_votes
from cineforum.errors import InvalidPhase, UnknownCandidate
from cineforum.schemas.consensus import VoteTally
from cineforum.schemas.session import CineSession, Phase


def cast_vote(session: CineSession, member_id: str, candidate_id: str) -> None:
    """Move the member's single vote to ``candidate_id``.

    Raises:
        InvalidPhase: If the session is no longer voting.
        UnknownCandidate: If the candidate is not on the ballot.
    """
    if session.phase != Phase.VOTING:
        raise InvalidPhase(f"Votes are closed (phase: {session.phase})")
    target = session.candidate(candidate_id)
    if target is None:
        raise UnknownCandidate(f"No candidate {candidate_id!r} on this ballot")

    for c in session.candidates:
        if member_id in c.votes:
            c.votes.remove(member_id)
    target.votes.append(member_id)


def retract_vote(session: CineSession, member_id: str) -> bool:
    """Withdraw the member's vote. Returns whether a vote was removed."""
    if session.phase != Phase.VOTING:
        raise InvalidPhase(f"Votes are closed (phase: {session.phase})")
    removed = False
    for c in session.candidates:
        if member_id in c.votes:
            c.votes.remove(member_id)
            removed = True
    return removed


def vote_of(session: CineSession, member_id: str) -> str | None:
    for c in session.candidates:
        if member_id in c.votes:
            return c.candidate_id
    return None


def tally(session: CineSession) -> VoteTally:
    return tally_votes(session.candidates)


def winner(session: CineSession) -> str | None:
    """Candidate with the most votes; the earliest candidate wins ties."""
    return select_winner(session.candidates)
