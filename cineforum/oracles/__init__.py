"""LLM-backed oracles: slot consensus and the discussion host."""

from cineforum.oracles.consensus import LLMConsensusOracle, parse_slot_decision
from cineforum.oracles.host import HostOracle

__all__ = ["HostOracle", "LLMConsensusOracle", "parse_slot_decision"]
