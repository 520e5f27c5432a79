"""cineforum CLI: Typer + Rich terminal interface.

Commands: session, vote, unvote, tally, commit, slots, slot-vote, resolve,
advance, revert, hand, floor, say, log.
Every command opens the session database, performs one service call and
closes it again. Rejected operations print their error code in red and
exit with status 1.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from cineforum import __version__
from cineforum.errors import CineforumError, SessionNotFound
from cineforum.keys import has_key, load_keys_env
from cineforum.providers.registry import load_forum_config, load_models, select_model
from cineforum.schemas.config import ForumConfig, ModelConfig
from cineforum.schemas.messages import MessageRole
from cineforum.schemas.session import CommitmentKind, Member, Phase, SessionDraft

# Load API keys from ~/.cineforum/keys.env and .env on startup
load_keys_env()

console = Console()

T = TypeVar("T")

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="cineforum",
    help="Run cineforum sessions: vote, commit, schedule and debate.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

session_app = typer.Typer(
    name="session",
    help="Create, inspect and archive sessions.",
    no_args_is_help=True,
)
app.add_typer(session_app, name="session")

hand_app = typer.Typer(
    name="hand",
    help="Raise or lower your hand during the discussion.",
    no_args_is_help=True,
)
app.add_typer(hand_app, name="hand")

floor_app = typer.Typer(
    name="floor",
    help="Grant, release or revoke the discussion floor.",
    no_args_is_help=True,
)
app.add_typer(floor_app, name="floor")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"cineforum {__version__}")
        raise typer.Exit()


# ── App Callback ────────────────────────────────────────────────


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug logging.",
    ),
) -> None:
    """cineforum: session lifecycle and turn coordination for film clubs."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)


# ── Helpers ──────────────────────────────────────────────────────


def _load_config() -> ForumConfig:
    """Load forum config, exit on error."""
    try:
        return load_forum_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _load_model(key: str) -> ModelConfig:
    """Pick a model from the registry, exit on error."""
    try:
        model = select_model(load_models(), key)
    except (FileNotFoundError, ValueError, KeyError, RuntimeError) as e:
        console.print(f"[red]Error loading models:[/red] {e}")
        raise typer.Exit(1) from None
    if not has_key(model):
        console.print(
            f"[yellow]Warning:[/yellow] {model.api_key_env} is not set; "
            f"{model.display_name} calls will fail.",
        )
    return model


def _build_resolver(config: ForumConfig):
    from cineforum.consensus.resolver import SlotResolver
    from cineforum.oracles.consensus import LLMConsensusOracle

    model = _load_model(config.consensus_model)
    return SlotResolver(
        LLMConsensusOracle(model, timeout=config.oracle_timeout),
        timeout=config.oracle_timeout,
    )


def _build_host(config: ForumConfig):
    from cineforum.oracles.host import HostOracle

    return HostOracle(_load_model(config.host_model), timeout=config.oracle_timeout)


def _actor(member_id: str, admin: bool = False, name: str = "") -> Member:
    return Member(member_id=member_id, display_name=name or member_id, is_admin=admin)


async def _session_id(service, session_id: str | None) -> str:
    """The given session id, or the active session when omitted."""
    if session_id:
        return session_id
    active = await service.active_session()
    if active is None:
        raise SessionNotFound("No active session")
    return active.session_id


def _run(
    work: Callable[..., Awaitable[T]],
    *,
    resolver: bool = False,
    host: bool = False,
) -> T:
    """Open the store, run ``work(service)`` and close the store again.

    CineforumErrors are reported with their code and exit status 1.
    """
    from cineforum.moderation import ModeratorObserver
    from cineforum.persistence.database import close_db, init_db
    from cineforum.persistence.session import SessionStore
    from cineforum.service import CineforumService

    config = _load_config()
    slot_resolver = _build_resolver(config) if resolver else None
    host_oracle = _build_host(config) if host else None

    async def _inner():
        db = await init_db(config.session_db_path)
        try:
            service = CineforumService(SessionStore(db), config, resolver=slot_resolver)
            observer = None
            if host_oracle is not None:
                observer = ModeratorObserver(service, host_oracle)
                observer.attach()
            result = await work(service)
            if observer is not None:
                await observer.drain()
            return result
        finally:
            await close_db(db)

    try:
        return asyncio.run(_inner())
    except CineforumError as e:
        console.print(f"[red]{e.code}:[/red] {e.message}")
        raise typer.Exit(1) from None


_SESSION_OPT = typer.Option(
    None, "--session", "-s", help="Session ID or prefix (default: the active session)",
)
_MEMBER_OPT = typer.Option(..., "--member", "-m", help="Acting member id")
_ADMIN_OPT = typer.Option(False, "--admin", help="Act as an administrator")


# ── cineforum session ────────────────────────────────────────────


@session_app.command("create")
def session_create(
    file: Path = typer.Argument(..., help="Candidate supply JSON file"),
    member: str = typer.Option("admin", "--member", "-m", help="Acting member id"),
    admin: bool = _ADMIN_OPT,
) -> None:
    """Open a new session (closes the active one)."""
    if not file.is_file():
        console.print(f"[red]File not found:[/red] {file}")
        raise typer.Exit(1)
    try:
        draft = SessionDraft.model_validate_json(file.read_text(encoding="utf-8"))
    except ValidationError as e:
        console.print(f"[red]Invalid candidate file:[/red] {e}")
        raise typer.Exit(1) from None

    async def _create(service):
        return await service.create_session(_actor(member, admin), draft)

    session = _run(_create)
    console.print(
        f"[green]Session created:[/green] {session.session_id} "
        f"(episode {session.episode_number}, {len(session.candidates)} candidates)",
    )


@session_app.command("show")
def session_show(
    session_id: str = typer.Argument(None, help="Session ID or prefix (default: active)"),
) -> None:
    """Show full session details."""

    async def _get(service):
        return await service.get_session(await _session_id(service, session_id))

    session = _run(_get)

    meta = Table(title=f"Session: {session.session_id}", show_header=False, show_lines=True)
    meta.add_column("Field", style="bold")
    meta.add_column("Value")
    meta.add_row("Theme", session.theme_title)
    meta.add_row("Episode", str(session.episode_number))
    meta.add_row("Phase", session.phase.value)
    meta.add_row("Created", session.created_at.isoformat())
    if session.voting_deadline:
        meta.add_row("Voting until", session.voting_deadline.isoformat())
    if session.viewing_deadline:
        meta.add_row("Viewing until", session.viewing_deadline.isoformat())
    if session.closed_at:
        meta.add_row("Closed", session.closed_at.isoformat())
    winner = session.winner
    meta.add_row("Winner", winner.title if winner else "-")
    meta.add_row("Viewers", str(len(session.committed_viewers)))
    meta.add_row("Debaters", str(len(session.committed_debaters)))
    meta.add_row("Final slot", session.final_slot.label if session.final_slot else "-")
    if session.phase == Phase.DISCUSSION:
        meta.add_row("Speaker", session.current_speaker_id or "-")
        meta.add_row("Queue", ", ".join(session.speaker_queue) or "-")
    console.print(meta)

    console.print()
    ballot = Table(title="Ballot")
    ballot.add_column("#", justify="right", style="dim")
    ballot.add_column("ID", style="cyan")
    ballot.add_column("Title")
    ballot.add_column("Year", justify="right")
    ballot.add_column("Votes", justify="right")
    for i, c in enumerate(session.candidates, 1):
        title = Text(c.title, style="bold green") if c.candidate_id == session.winner_id else c.title
        ballot.add_row(str(i), c.candidate_id, title, str(c.year or "-"), str(len(c.votes)))
    console.print(ballot)


@session_app.command("list")
def session_list(
    limit: int = typer.Option(20, "--limit", "-n", help="Max sessions to show"),
    active: bool = typer.Option(False, "--active", help="Hide closed sessions"),
    theme_filter: str = typer.Option(None, "--theme", help="Filter by theme title"),
    since: str = typer.Option(None, "--since", help="Filter sessions after date"),
) -> None:
    """Show recent sessions."""
    from cineforum.schemas.session import SessionQuery

    query = SessionQuery(
        limit=limit, active_only=active, theme_filter=theme_filter, since=since,
    )

    async def _list(service):
        return await service.store.list_sessions(query)

    summaries = _run(_list)

    if not summaries:
        console.print("[dim]No sessions found.[/dim]")
        return

    table = Table(title=f"Sessions ({len(summaries)} shown)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Ep", justify="right")
    table.add_column("Theme", max_width=40)
    table.add_column("Phase")
    table.add_column("Winner", max_width=30)
    table.add_column("Slot")
    table.add_column("Messages", justify="right")

    for s in summaries:
        phase = Text("CLOSED", style="dim") if s.closed_at else Text(s.phase.value, style="green")
        table.add_row(
            s.session_id[:8],
            str(s.episode_number),
            s.theme_title[:40],
            phase,
            s.winner_title or "-",
            s.final_slot or "-",
            str(s.message_count),
        )

    console.print(table)


@session_app.command("close")
def session_close(
    session_id: str = typer.Argument(None, help="Session ID or prefix (default: active)"),
    member: str = typer.Option("admin", "--member", "-m", help="Acting member id"),
    admin: bool = _ADMIN_OPT,
) -> None:
    """Archive a session."""

    async def _close(service):
        return await service.close_session(
            _actor(member, admin), await _session_id(service, session_id),
        )

    session = _run(_close)
    console.print(f"[green]Session closed:[/green] {session.session_id}")


@session_app.command("export")
def session_export(
    session_id: str = typer.Argument(None, help="Session ID or prefix (default: active)"),
    fmt: str = typer.Option(
        "markdown", "--format", "-f",
        help="Export format: json or markdown",
    ),
) -> None:
    """Export a session and its discussion log as JSON or Markdown."""
    from cineforum.persistence.export import export_json, export_markdown

    if fmt not in ("json", "markdown"):
        console.print(f"[red]Invalid format:[/red] '{fmt}'. Choose json or markdown.")
        raise typer.Exit(1)

    async def _get(service):
        session = await service.get_session(await _session_id(service, session_id))
        return session, await service.messages(session.session_id)

    session, messages = _run(_get)

    if fmt == "json":
        console.print(export_json(session, messages), markup=False)
    else:
        console.print(export_markdown(session, messages), markup=False)


@session_app.command("delete")
def session_delete(
    session_id: str = typer.Argument(..., help="Session ID or prefix (min 4 chars)"),
    yes: bool = typer.Option(
        False, "--yes", "-y",
        help="Skip confirmation prompt",
    ),
) -> None:
    """Delete a session and its log from history."""
    if not yes:
        confirm = typer.confirm(
            f"Delete session {session_id}? This cannot be undone."
        )
        if not confirm:
            console.print("[dim]Cancelled.[/dim]")
            return

    async def _delete(service):
        return await service.store.delete_session(session_id)

    if _run(_delete):
        console.print(f"[green]Session deleted:[/green] {session_id}")
    else:
        console.print(f"[red]Session not found:[/red] {session_id}")
        raise typer.Exit(1)


# ── Voting ───────────────────────────────────────────────────────


@app.command()
def vote(
    candidate_id: str = typer.Argument(..., help="Candidate to vote for"),
    member: str = _MEMBER_OPT,
    session_id: str = _SESSION_OPT,
) -> None:
    """Vote for a candidate (replaces your previous vote)."""

    async def _vote(service):
        await service.cast_vote(await _session_id(service, session_id), member, candidate_id)

    _run(_vote)
    console.print(f"[green]{member} voted for[/green] {candidate_id}")


@app.command()
def unvote(
    member: str = _MEMBER_OPT,
    session_id: str = _SESSION_OPT,
) -> None:
    """Withdraw your vote."""

    async def _unvote(service):
        return await service.retract_vote(await _session_id(service, session_id), member)

    if _run(_unvote):
        console.print(f"[green]Vote withdrawn for[/green] {member}")
    else:
        console.print(f"[dim]{member} had no vote.[/dim]")


@app.command()
def tally(
    session_id: str = _SESSION_OPT,
    preview: bool = typer.Option(
        False, "--preview", help="Also show who would win now (admin)",
    ),
    member: str = typer.Option("admin", "--member", "-m", help="Acting member id"),
    admin: bool = _ADMIN_OPT,
) -> None:
    """Show the vote count per candidate."""

    async def _tally(service):
        sid = await _session_id(service, session_id)
        session = await service.get_session(sid)
        result = await service.tally(sid)
        leader = await service.preview_winner(_actor(member, admin), sid) if preview else None
        return session, result, leader

    session, result, leader = _run(_tally)

    table = Table(title=f"Tally: {session.theme_title}")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Votes", justify="right")
    for c in session.candidates:
        table.add_row(c.candidate_id, c.title, str(result.counts.get(c.candidate_id, 0)))
    console.print(table)
    if result.is_tie:
        console.print(f"[yellow]Tie between:[/yellow] {', '.join(result.tied_options)}")
    if leader is not None:
        console.print(f"[bold]Would win now:[/bold] {leader.title}")


# ── Commitments and time slots ───────────────────────────────────


@app.command()
def commit(
    kind: CommitmentKind = typer.Argument(..., help="view or debate"),
    member: str = _MEMBER_OPT,
    session_id: str = _SESSION_OPT,
) -> None:
    """Toggle your pledge to view or to debate the winner."""

    async def _commit(service):
        return await service.toggle_commitment(
            await _session_id(service, session_id), member, kind,
        )

    if _run(_commit):
        console.print(f"[green]{member} committed to {kind.value}[/green]")
    else:
        console.print(f"[yellow]{member} withdrew from {kind.value}[/yellow]")


@app.command()
def slots(
    session_id: str = _SESSION_OPT,
) -> None:
    """Show the offered debate slots and the votes they have."""

    async def _counts(service):
        if session_id is None and await service.active_session() is None:
            return {}
        return await service.slot_counts(await _session_id(service, session_id))

    config = _load_config()
    counts = _run(_counts)

    table = Table(title="Debate slots")
    table.add_column("Slot", style="cyan")
    table.add_column("Votes", justify="right")
    offered = config.slot_catalogue()
    for key in offered:
        table.add_row(key, str(counts.get(key, 0)))
    for key, n in counts.items():
        if key not in offered:
            table.add_row(Text(key, style="dim"), str(n))
    console.print(table)


@app.command("slot-vote")
def slot_vote(
    slot_key: str = typer.Argument(..., help="Slot key, e.g. 'Fri Night 20:00'"),
    member: str = _MEMBER_OPT,
    session_id: str = _SESSION_OPT,
) -> None:
    """Toggle your availability for a debate slot."""

    async def _toggle(service):
        return await service.toggle_slot_vote(
            await _session_id(service, session_id), member, slot_key,
        )

    if _run(_toggle):
        console.print(f"[green]{member} is available:[/green] {slot_key}")
    else:
        console.print(f"[yellow]{member} removed:[/yellow] {slot_key}")


@app.command()
def resolve(
    session_id: str = _SESSION_OPT,
    preview: bool = typer.Option(
        False, "--preview", help="Ask the oracle without applying its decision",
    ),
    member: str = typer.Option("admin", "--member", "-m", help="Acting member id"),
    admin: bool = _ADMIN_OPT,
) -> None:
    """Let the consensus oracle decide the debate time."""
    actor = _actor(member, admin)

    async def _resolve(service):
        sid = await _session_id(service, session_id)
        if preview:
            return await service.preview_final_slot(actor, sid)
        return await service.resolve_final_slot(actor, sid)

    outcome = _run(_resolve, resolver=True)

    cancelled = outcome.cancelled
    slot = outcome.chosen_slot if preview else outcome.slot
    title = "Preview" if preview else "Final slot"
    body = "[red]Debate cancelled[/red]" if cancelled else f"[green]{slot}[/green]"
    if outcome.message:
        body += f"\n\n{outcome.message}"
    console.print(Panel(body, title=title))


# ── Phases ───────────────────────────────────────────────────────


@app.command()
def advance(
    phase: Phase = typer.Argument(..., help="Target phase: viewing or discussion"),
    winner_id: str = typer.Option(None, "--winner", help="Override the ballot winner"),
    session_id: str = _SESSION_OPT,
    member: str = typer.Option("admin", "--member", "-m", help="Acting member id"),
    admin: bool = _ADMIN_OPT,
    host: bool = typer.Option(False, "--host", help="Let the host welcome the room"),
) -> None:
    """Move the session to the next phase (voting -> viewing closes voting)."""

    async def _advance(service):
        return await service.advance(
            _actor(member, admin), await _session_id(service, session_id), phase, winner_id,
        )

    session = _run(_advance, host=host)
    winner = session.winner
    console.print(
        f"[green]Phase:[/green] {session.phase.value}"
        + (f" [dim](winner: {winner.title})[/dim]" if winner else ""),
    )


@app.command()
def revert(
    session_id: str = _SESSION_OPT,
    member: str = typer.Option("admin", "--member", "-m", help="Acting member id"),
    admin: bool = _ADMIN_OPT,
) -> None:
    """Roll the discussion back to viewing."""

    async def _revert(service):
        return await service.revert(_actor(member, admin), await _session_id(service, session_id))

    session = _run(_revert)
    console.print(f"[yellow]Phase:[/yellow] {session.phase.value}")


# ── cineforum hand / floor ───────────────────────────────────────


@hand_app.command("raise")
def hand_raise(
    member: str = _MEMBER_OPT,
    session_id: str = _SESSION_OPT,
) -> None:
    """Ask for the floor."""

    async def _raise(service):
        return await service.raise_hand(await _session_id(service, session_id), member)

    position = _run(_raise)
    console.print(f"[green]{member} raised their hand[/green] (position {position + 1})")


@hand_app.command("lower")
def hand_lower(
    member: str = _MEMBER_OPT,
    session_id: str = _SESSION_OPT,
) -> None:
    """Leave the speaker queue."""

    async def _lower(service):
        return await service.lower_hand(await _session_id(service, session_id), member)

    if _run(_lower):
        console.print(f"[green]{member} lowered their hand[/green]")
    else:
        console.print(f"[dim]{member} was not queued.[/dim]")


@floor_app.command("grant")
def floor_grant(
    target: str = typer.Argument(..., help="Member to give the floor to"),
    session_id: str = _SESSION_OPT,
    member: str = typer.Option("admin", "--member", "-m", help="Acting member id"),
    admin: bool = _ADMIN_OPT,
) -> None:
    """Give the open floor to a member."""

    async def _grant(service):
        await service.grant_turn(
            _actor(member, admin), await _session_id(service, session_id), target,
        )

    _run(_grant)
    console.print(f"[green]Floor granted to[/green] {target}")


@floor_app.command("release")
def floor_release(
    member: str = _MEMBER_OPT,
    session_id: str = _SESSION_OPT,
) -> None:
    """Hand the floor back."""

    async def _release(service):
        await service.release_turn(await _session_id(service, session_id), member)

    _run(_release)
    console.print(f"[green]{member} released the floor[/green]")


@floor_app.command("revoke")
def floor_revoke(
    session_id: str = _SESSION_OPT,
    member: str = typer.Option("admin", "--member", "-m", help="Acting member id"),
    admin: bool = _ADMIN_OPT,
) -> None:
    """Take the floor back from whoever holds it."""

    async def _revoke(service):
        return await service.revoke_turn(
            _actor(member, admin), await _session_id(service, session_id),
        )

    previous = _run(_revoke)
    if previous:
        console.print(f"[yellow]Floor revoked from[/yellow] {previous}")
    else:
        console.print("[dim]The floor was already open.[/dim]")


# ── Message log ──────────────────────────────────────────────────


@app.command()
def say(
    text: str = typer.Argument(..., help="Message text"),
    member: str = _MEMBER_OPT,
    name: str = typer.Option("", "--name", help="Display name"),
    session_id: str = _SESSION_OPT,
    host: bool = typer.Option(False, "--host", help="Let the host react"),
) -> None:
    """Post a message to the discussion log."""

    async def _say(service):
        return await service.post_message(
            await _session_id(service, session_id), text, author=_actor(member, name=name),
        )

    message = _run(_say, host=host)
    console.print(f"[dim]{message.timestamp.strftime('%H:%M:%S')}[/dim] message posted")


@app.command()
def log(
    session_id: str = _SESSION_OPT,
    limit: int = typer.Option(0, "--limit", "-n", help="Show only the last N messages"),
) -> None:
    """Show the discussion log."""

    async def _log(service):
        sid = await _session_id(service, session_id)
        if limit > 0:
            return await service.recent_messages(sid, limit)
        return await service.messages(sid)

    messages = _run(_log)

    if not messages:
        console.print("[dim]No messages yet.[/dim]")
        return

    for m in messages:
        style = "magenta" if m.role == MessageRole.MODERATOR else "cyan"
        line = Text()
        line.append(m.timestamp.strftime("%H:%M:%S "), style="dim")
        line.append(f"{m.author_name}: ", style=f"bold {style}")
        line.append(m.text)
        console.print(line)
