"""Phase state machine.

The legal moves are a single lookup in TRANSITIONS: strictly forward
(voting → viewing → discussion) plus the emergency administrative revert
discussion → viewing.
"""

from __future__ import annotations

import logging

from cineforum.engine.ballot import winner
from cineforum.errors import IllegalTransition, InvalidPhase, UnknownCandidate
from cineforum.schemas.session import CineSession, Phase

logger = logging.getLogger(__name__)

TRANSITIONS: dict[Phase, frozenset[Phase]] = {
    Phase.VOTING: frozenset({Phase.VIEWING}),
    Phase.VIEWING: frozenset({Phase.DISCUSSION}),
    Phase.DISCUSSION: frozenset({Phase.VIEWING}),
}


def can_transition(current: Phase, target: Phase) -> bool:
    return target in TRANSITIONS[current]


def advance(
    session: CineSession,
    next_phase: Phase,
    winner_id: str | None = None,
) -> Phase:
    """Move the session to ``next_phase``.

    Entering viewing from voting records the winner: the explicit
    ``winner_id`` when given, otherwise the ballot winner computed on this
    same snapshot. Entering discussion opens a fresh floor.

    Returns:
        The phase the session was in before the move.

    Raises:
        IllegalTransition: If the edge is not in TRANSITIONS.
        UnknownCandidate: If an explicit winner is not on the ballot.
        InvalidPhase: If discussion would start without a winner.
    """
    previous = session.phase
    if not can_transition(previous, next_phase):
        raise IllegalTransition(f"Cannot move from {previous} to {next_phase}")

    if next_phase == Phase.VIEWING and previous == Phase.VOTING:
        chosen = winner_id if winner_id is not None else winner(session)
        if chosen is None or session.candidate(chosen) is None:
            raise UnknownCandidate(f"No candidate {chosen!r} on this ballot")
        session.winner_id = chosen
    elif next_phase == Phase.DISCUSSION:
        if session.winner_id is None:
            raise InvalidPhase("Discussion requires a winner")
        session.current_speaker_id = None
        session.speaker_queue = []

    session.phase = next_phase
    logger.debug("Session %s: %s -> %s", session.session_id, previous, next_phase)
    return previous


def revert(session: CineSession) -> Phase:
    """Emergency rollback from discussion to viewing; keeps votes and pledges."""
    if session.phase != Phase.DISCUSSION:
        raise IllegalTransition(f"Only discussion can be reverted (phase: {session.phase})")
    return advance(session, Phase.VIEWING)
