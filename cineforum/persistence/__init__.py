"""Cineforum session persistence layer.

Provides SQLite-backed storage for the versioned session document and its
append-only message log, with JSON/Markdown export.
"""

from cineforum.persistence.database import close_db, init_db
from cineforum.persistence.export import export_json, export_markdown
from cineforum.persistence.session import SessionStore

__all__ = [
    "SessionStore",
    "close_db",
    "export_json",
    "export_markdown",
    "init_db",
]
