"""Vote tallying and winner selection.

Provides the counting mechanics shared by the candidate ballot, the
admin winner preview and the time-slot ballot.
"""

from __future__ import annotations

import logging

from cineforum.schemas.consensus import VoteTally
from cineforum.schemas.session import Candidate

logger = logging.getLogger(__name__)


def tally_votes(candidates: list[Candidate]) -> VoteTally:
    """Count candidate votes and pick the winner.

    Ties (including the all-zero ballot) go to the candidate created
    first, so the result is deterministic for a fixed vote state.

    Args:
        candidates: The ballot, in creation order.

    Returns:
        VoteTally with counts in creation order, the winner and tie info.
    """
    counts = {c.candidate_id: len(c.votes) for c in candidates}

    if not counts:
        return VoteTally(counts={}, winner=None, is_tie=False, tied_options=[])

    max_count = max(counts.values())
    leaders = [k for k, n in counts.items() if n == max_count]

    return VoteTally(
        counts=counts,
        winner=leaders[0],
        is_tie=len(leaders) > 1,
        tied_options=leaders if len(leaders) > 1 else [],
    )


def select_winner(candidates: list[Candidate]) -> str | None:
    """Return the winning candidate id, or None for an empty ballot."""
    tally = tally_votes(candidates)
    if tally.is_tie:
        logger.debug(
            "Ballot tie between %s, lowest index wins: %s",
            tally.tied_options, tally.winner,
        )
    return tally.winner


def count_slot_votes(time_votes: dict[str, list[str]]) -> dict[str, int]:
    """Snapshot of voters per slot key, sorted by key."""
    return {slot: len(voters) for slot, voters in sorted(time_votes.items())}
