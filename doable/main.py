"""Doable CLI: inspect the team snapshot, run tools and replay chat transcripts."""

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any

import tomlkit
import typer
from rich import print as rprint
from rich.table import Table

from doable.logs import setup_logging
from doable.models import TeamContext, ToolResult
from doable.prompts import build_system_prompt
from doable.refresh import RefreshCategory
from doable.resolver import Ambiguous, NoAssignee, Resolved, reference_from, resolve, resolve_assignee
from doable.session import ChatSession, ToolCall
from doable.settings import CONFIG_PATH, _list_profiles, get_settings
from doable.store.base import TeamStore
from doable.store.http import HttpTeamStore
from doable.tools import tool_definitions

app = typer.Typer(help="doable: team task assistant core", no_args_is_help=True)

ProfileOpt = Annotated[
    str | None,
    typer.Option("--profile", "-p", help="Profile name from ~/.config/doable/config.toml"),
]

RESOLVE_KINDS = ("project", "state", "label", "member")

_verbose = False


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log debug output to stderr")] = False,
) -> None:
    global _verbose
    _verbose = verbose
    setup_logging("DEBUG" if verbose else "WARNING")


# ---------------------------------------------------------------------------
# Store factory
# ---------------------------------------------------------------------------


def get_store(profile: str | None = None) -> TeamStore:
    return HttpTeamStore(get_settings(profile=profile))


def get_session(profile: str | None = None) -> ChatSession:
    settings = get_settings(profile=profile)
    if not _verbose:
        setup_logging(settings.log_level)
    return ChatSession.from_settings(HttpTeamStore(settings), settings)


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _print_result(result: ToolResult) -> None:
    if result.success:
        if result.message:
            rprint(f"[green]✓[/green] {result.message}")
        if result.data:
            rprint(json.dumps(result.data, indent=2))
    else:
        rprint(f"[red]✗[/red] {result.error}")


def _context_tables(context: TeamContext) -> list[Table]:
    projects = Table(title="Projects")
    projects.add_column("Key", style="cyan")
    projects.add_column("Name")
    projects.add_column("Status")
    projects.add_column("Issues", justify="right")
    projects.add_column("ID", style="dim")
    for p in context.projects:
        projects.add_row(p.key, p.name, p.status.value, str(p.issue_count), p.id)

    states = Table(title="Workflow States")
    states.add_column("Name", style="cyan")
    states.add_column("Type")
    states.add_column("ID", style="dim")
    for s in context.workflow_states:
        states.add_row(s.name, s.type.value, s.id)

    labels = Table(title="Labels")
    labels.add_column("Name", style="cyan")
    labels.add_column("ID", style="dim")
    for label in context.labels:
        labels.add_row(label.name, label.id)

    members = Table(title="Members")
    members.add_column("Name", style="cyan")
    members.add_column("Email")
    members.add_column("Role")
    members.add_column("ID", style="dim")
    for m in context.members:
        members.add_row(m.user_name, m.email or "—", m.role, m.user_id)

    return [projects, states, labels, members]


def _load_transcript(path: Path) -> list[dict[str, Any]]:
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError) as exc:
        rprint(f"[red]Could not read transcript {path}: {exc}[/red]")
        raise typer.Exit(1)
    if not isinstance(data, list):
        rprint("[red]Transcript must be a JSON list of turns.[/red]")
        raise typer.Exit(1)
    return data


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("context")
def context_cmd(profile: ProfileOpt = None) -> None:
    """Show the team snapshot the assistant resolves names against."""
    store = get_store(profile)
    context = asyncio.run(store.get_team_context())
    for table in _context_tables(context):
        rprint(table)


@app.command("resolve")
def resolve_cmd(
    kind: Annotated[str, typer.Argument(help="project | state | label | member")],
    text: Annotated[str, typer.Argument(help="Name, key, id or fragment to resolve")],
    profile: ProfileOpt = None,
) -> None:
    """Resolve a free-text reference to an id."""
    if kind not in RESOLVE_KINDS:
        rprint(f"[red]Unknown kind '{kind}'. Valid: {', '.join(RESOLVE_KINDS)}[/red]")
        raise typer.Exit(1)

    store = get_store(profile)
    context = asyncio.run(store.get_team_context())
    match kind:
        case "project":
            outcome = resolve(reference_from(text), context.projects)
        case "state":
            outcome = resolve(reference_from(text), context.workflow_states)
        case "label":
            outcome = resolve(reference_from(text), context.labels)
        case _:
            outcome = resolve_assignee(text, context.members)

    if isinstance(outcome, NoAssignee):
        rprint("[green]✓[/green] (no assignee)")
    elif isinstance(outcome, Resolved):
        rprint(f"[green]✓[/green] [bold]{outcome.label}[/bold] {outcome.id}")
    elif isinstance(outcome, Ambiguous):
        rprint(f"[yellow]Ambiguous '{text}':[/yellow]")
        for candidate in outcome.candidates:
            rprint(f"  {candidate.label}  [dim]{candidate.id}[/dim]")
        raise typer.Exit(1)
    else:
        rprint(f"[red]No {kind} matches '{text}'[/red]")
        raise typer.Exit(1)


@app.command("tool")
def tool_cmd(
    name: Annotated[str, typer.Argument(help="Tool name, e.g. createIssue")],
    args: Annotated[str, typer.Option("--args", "-a", help="Tool arguments as a JSON object")] = "{}",
    profile: ProfileOpt = None,
) -> None:
    """Run one tool call the way the assistant would."""
    try:
        arguments = json.loads(args)
    except ValueError as exc:
        rprint(f"[red]--args is not valid JSON: {exc}[/red]")
        raise typer.Exit(1)
    if not isinstance(arguments, dict):
        rprint("[red]--args must be a JSON object[/red]")
        raise typer.Exit(1)

    session = get_session(profile)
    result = asyncio.run(session.executor.execute(name, arguments))
    _print_result(result)
    if not result.success:
        raise typer.Exit(1)


@app.command("tools")
def tools_cmd() -> None:
    """Print the tool definitions offered to the model as JSON."""
    typer.echo(json.dumps(tool_definitions(), indent=2))


@app.command("prompt")
def prompt_cmd(profile: ProfileOpt = None) -> None:
    """Print the system prompt for the current team."""
    store = get_store(profile)
    context = asyncio.run(store.get_team_context())
    typer.echo(build_system_prompt(context))


async def _replay(session: ChatSession, turns: list[dict[str, Any]]) -> list[list[str]]:
    signals: list[list[str]] = []
    current: list[str] = []
    for category in RefreshCategory:
        session.bus.subscribe(category, lambda c=category: current.append(c.value))

    for turn in turns:
        current.clear()
        calls = [ToolCall.model_validate(c) for c in turn.get("toolCalls", turn.get("tool_calls", []))]
        result = await session.run_turn(turn.get("user", ""), calls, turn.get("reply"))
        for call, outcome in zip(calls, result.results):
            rprint(f"[bold]{call.name}[/bold]")
            _print_result(outcome)
        # Let the settle and fallback timers fire before the next turn.
        await asyncio.sleep(session.observer.horizon + 0.05)
        signals.append(list(dict.fromkeys(current)))
    return signals


@app.command("replay")
def replay_cmd(
    transcript: Annotated[Path, typer.Argument(help="JSON list of {user, toolCalls, reply} turns")],
    profile: ProfileOpt = None,
) -> None:
    """Replay a transcript through a chat session and show the refresh signals of each turn."""
    turns = _load_transcript(transcript)
    session = get_session(profile)
    try:
        signals = asyncio.run(_replay(session, turns))
    finally:
        session.dispose()

    table = Table(title="Refresh signals")
    table.add_column("Turn", justify="right")
    table.add_column("User")
    table.add_column("Signals", style="cyan")
    for index, (turn, emitted) in enumerate(zip(turns, signals), start=1):
        table.add_row(str(index), turn.get("user", ""), ", ".join(emitted) or "—")
    rprint(table)


@app.command("set-default")
def set_default(
    profile: Annotated[str, typer.Argument(help="Profile name to set as default")],
) -> None:
    """Set the default profile in ~/.config/doable/config.toml."""
    if not CONFIG_PATH.exists():
        CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        doc = tomlkit.document()
        doc.add("default_profile", profile)
        CONFIG_PATH.write_text(tomlkit.dumps(doc))
        rprint(f'[green]✓[/green] Default profile set to "{profile}" in {CONFIG_PATH}')
        return

    doc = tomlkit.load(CONFIG_PATH.open())
    profiles = _list_profiles(doc)
    if profile not in profiles:
        rprint(f"[red]Profile '{profile}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}[/red]")
        raise typer.Exit(1)

    doc["default_profile"] = profile
    CONFIG_PATH.write_text(tomlkit.dumps(doc))
    rprint(f'[green]✓[/green] Default profile set to "{profile}" in {CONFIG_PATH}')


@app.command("config-show")
def config_show(profile: ProfileOpt = None) -> None:
    """Show resolved configuration (masks credentials)."""
    settings = get_settings(profile=profile)

    def mask(val: str | None) -> str:
        if val is None:
            return "[dim](not set)[/dim]"
        if len(val) <= 5:
            return "***"
        return f"...{val[-5:]}"

    table = Table(title="Doable Configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("default_profile", settings.default_profile or "[dim](not set)[/dim]")
    table.add_row("api_url", settings.api_url)
    table.add_row("api_token", mask(settings.api_token.get_secret_value() if settings.api_token else None))
    table.add_row("team_id", settings.team_id or "[dim](not set)[/dim]")
    table.add_row("timeout", str(settings.timeout))
    table.add_row("settle_delay", str(settings.settle_delay))
    table.add_row("fallback_delay", str(settings.fallback_delay))
    table.add_row("ready_delay", str(settings.ready_delay))
    table.add_row("cache_ttl", str(settings.cache_ttl))
    table.add_row("log_level", settings.log_level)

    rprint(table)
