"""Pure session operations.

Every function here takes a CineSession, validates the request completely
and only then mutates the session in place. Callers hand in a private copy
of the stored snapshot (see cineforum.service), so a raised error never
leaves a partial update behind.
"""

from cineforum.engine import ballot, commitments, floor, phases, slots

__all__ = ["ballot", "commitments", "floor", "phases", "slots"]
