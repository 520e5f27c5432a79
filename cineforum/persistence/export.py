"""Session export formatters.

Provides JSON and Markdown export functions for a session and its log.
"""

from __future__ import annotations

import json

from cineforum.consensus.voting import count_slot_votes, tally_votes
from cineforum.schemas.messages import EventMessage, MessageRole
from cineforum.schemas.session import CineSession


def export_json(session: CineSession, messages: list[EventMessage]) -> str:
    """Export a session and its log as a formatted JSON string."""
    payload = {
        "session": session.model_dump(mode="json"),
        "messages": [m.model_dump(mode="json") for m in messages],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def export_markdown(session: CineSession, messages: list[EventMessage]) -> str:
    """Export a session as a human-readable Markdown report.

    Sections: metadata, ballot, commitments, time votes and final slot,
    and the discussion transcript.
    """
    lines: list[str] = []

    lines.append(f"# Cineforum #{session.episode_number}: {session.theme_title}")
    lines.append("")
    if session.theme_description:
        lines.append(f"> {session.theme_description}")
        lines.append("")

    # Metadata
    lines.append("## Metadata")
    lines.append("")
    lines.append(f"- **Session:** `{session.session_id}`")
    lines.append(f"- **Phase:** {session.phase.value}")
    lines.append(f"- **Created:** {session.created_at.isoformat()}")
    if session.voting_deadline:
        lines.append(f"- **Voting Deadline:** {session.voting_deadline.isoformat()}")
    if session.viewing_deadline:
        lines.append(f"- **Viewing Deadline:** {session.viewing_deadline.isoformat()}")
    if session.closed_at:
        lines.append(f"- **Closed:** {session.closed_at.isoformat()}")
    lines.append("")

    # Ballot
    if session.candidates:
        tally = tally_votes(session.candidates)
        lines.append("## Ballot")
        lines.append("")
        lines.append("| # | Film | Year | Votes |")
        lines.append("|---|------|------|-------|")
        for index, c in enumerate(session.candidates, start=1):
            mark = " (winner)" if c.candidate_id == session.winner_id else ""
            year = str(c.year) if c.year else ""
            lines.append(
                f"| {index} | {c.title}{mark} | {year} | {tally.counts[c.candidate_id]} |"
            )
        lines.append("")

    # Commitments
    if session.committed_viewers or session.committed_debaters:
        lines.append("## Commitments")
        lines.append("")
        lines.append(f"- **Viewers:** {len(session.committed_viewers)}")
        lines.append(f"- **Debaters:** {len(session.committed_debaters)}")
        lines.append("")

    # Time votes
    counts = count_slot_votes(session.time_votes)
    if counts or session.final_slot:
        lines.append("## Debate Time")
        lines.append("")
        for slot, n in counts.items():
            lines.append(f"- {slot}: {n}")
        if session.final_slot:
            if session.final_slot.cancelled:
                lines.append("- **Final:** cancelled")
            else:
                lines.append(f"- **Final:** {session.final_slot.slot}")
            if session.final_slot.message:
                lines.append("")
                lines.append(f"*{session.final_slot.message}*")
        lines.append("")

    # Transcript
    if messages:
        lines.append("## Discussion")
        lines.append("")
        for m in messages:
            who = m.author_name or m.author_id or "moderator"
            if m.role == MessageRole.MODERATOR:
                who = f"{who} (moderator)"
            audio = " [audio]" if m.audio_ref else ""
            lines.append(f"- `{m.timestamp.strftime('%H:%M:%S')}` **{who}**{audio}: {m.text}")
        lines.append("")

    lines.append("---")
    lines.append("*Generated by cineforum*")
    lines.append("")

    return "\n".join(lines)
