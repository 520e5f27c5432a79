"""Consensus for the cineforum.

Provides ballot tallying with a deterministic tie-break and the
integration contract of the external slot-consensus oracle.
"""

from cineforum.consensus.resolver import ConsensusOracle, SlotResolver, build_slot_request
from cineforum.consensus.voting import count_slot_votes, select_winner, tally_votes

__all__ = [
    "ConsensusOracle",
    "SlotResolver",
    "build_slot_request",
    "count_slot_votes",
    "select_winner",
    "tally_votes",
]
