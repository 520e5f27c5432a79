"""Consensus resolver integration.

Owns the invocation contract of the external consensus oracle: builds the
request from a session snapshot, bounds the call with a timeout, and turns
every failure into a retryable ResolutionFailed. Applying the decision is
the caller's job (see CineforumService.resolve_final_slot), so no lock or
transaction is held while the oracle thinks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from cineforum.consensus.voting import count_slot_votes
from cineforum.errors import InvalidPhase, ResolutionFailed
from cineforum.schemas.consensus import SlotDecision, SlotRequest
from cineforum.schemas.session import CineSession

logger = logging.getLogger(__name__)


class ConsensusOracle(Protocol):
    """External decision service that picks or cancels the debate slot."""

    async def decide(self, request: SlotRequest) -> SlotDecision: ...


def build_slot_request(session: CineSession) -> SlotRequest:
    """Snapshot the inputs the oracle needs.

    Raises:
        InvalidPhase: If the session has no winner yet.
    """
    winner = session.winner
    if winner is None:
        raise InvalidPhase("The debate time is decided after voting ends")
    return SlotRequest(
        slot_counts=count_slot_votes(session.time_votes),
        subject_title=winner.title,
        sequence_number=session.episode_number,
    )


class SlotResolver:
    """Calls the consensus oracle for a session snapshot."""

    def __init__(self, oracle: ConsensusOracle, timeout: int = 60) -> None:
        self._oracle = oracle
        self._timeout = timeout

    async def decide(self, session: CineSession) -> SlotDecision:
        """Ask the oracle for a decision on ``session``'s time votes.

        Zero votes are passed through unchanged; whether that means
        cancelling is the oracle's call.

        Raises:
            InvalidPhase: If the session has no winner yet.
            ResolutionFailed: If the oracle errors, times out or replies
                with something that is not a valid decision.
        """
        request = build_slot_request(session)
        try:
            decision = await asyncio.wait_for(
                self._oracle.decide(request), timeout=self._timeout,
            )
        except TimeoutError as e:
            logger.warning(
                "Consensus oracle timed out after %ss for session %s",
                self._timeout, session.session_id,
            )
            raise ResolutionFailed(f"Consensus oracle timed out after {self._timeout}s") from e
        except Exception as e:
            logger.warning(
                "Consensus oracle failed for session %s: %s", session.session_id, e,
            )
            raise ResolutionFailed(f"Consensus oracle failed: {e}") from e

        if not isinstance(decision, SlotDecision):
            raise ResolutionFailed("Consensus oracle returned no decision")
        return decision
