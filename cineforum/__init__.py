"""Cineforum — session lifecycle and turn-coordination engine."""

__version__ = "0.1.0"
