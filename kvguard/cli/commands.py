"""CLI commands for kvguard."""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from kvguard import __logo__, __version__

app = typer.Typer(
    name="kvguard",
    help=f"{__logo__} kvguard - KV cache stability and tool result guard",
    no_args_is_help=True,
)

console = Console()

ConfigOption = typer.Option(None, "--config", "-c", help="Config file (default: ~/.kvguard/config.json)")
AgentOption = typer.Option(None, "--agent", "-a", help="Agent id")
ModelOption = typer.Option(None, "--model", "-m", help="Model key (provider/model)")


def _load(config_path: Path | None):
    from kvguard.config.loader import load_config

    return load_config(config_path)


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} kvguard v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """kvguard - KV cache stability and tool result guard."""
    pass


# ============================================================================
# Policy resolution
# ============================================================================


@app.command()
def stability(
    agent: str | None = AgentOption,
    model: str | None = ModelOption,
    chat_type: str | None = typer.Option(None, "--chat-type", help="direct, group or channel"),
    channel: str | None = typer.Option(None, "--channel", help="Channel name, e.g. telegram"),
    sender: str | None = typer.Option(None, "--sender", help="Sender platform id"),
    sender_e164: str | None = typer.Option(None, "--sender-e164", help="Sender phone (E.164)"),
    sender_username: str | None = typer.Option(None, "--sender-username", help="Sender username"),
    group: str | None = typer.Option(None, "--group", help="Group / guild id"),
    group_channel: str | None = typer.Option(None, "--group-channel", help="Channel within the group"),
    owner: bool | None = typer.Option(None, "--owner/--not-owner", help="Sender is the owner"),
    subagent: bool | None = typer.Option(None, "--subagent/--not-subagent", help="Turn runs in a subagent"),
    config: Path | None = ConfigOption,
):
    """Show which fields may leave the stable prompt region for a turn."""
    from kvguard.config.fields import PER_CHANNEL_FIELDS, PER_TURN_FIELDS, ordered_fields
    from kvguard.config.matching import RuntimeContext
    from kvguard.config.stability import resolve_kv_cache_stability

    cfg = _load(config)
    context = RuntimeContext(
        chat_type=chat_type,
        channel=channel,
        sender_id=sender,
        sender_e164=sender_e164,
        sender_username=sender_username,
        group_id=group,
        group_channel=group_channel,
        sender_is_owner=owner,
        is_subagent=subagent,
    )
    resolved = resolve_kv_cache_stability(cfg, agent, model, context)

    if not resolved.enabled:
        console.print("[dim]KV cache stability is disabled for this context[/dim]")
        return

    table = Table(title="KV Cache Stability")
    table.add_column("Group", style="cyan")
    table.add_column("Fields")
    table.add_row(
        "per-turn",
        ", ".join(ordered_fields(resolved.per_turn_fields, PER_TURN_FIELDS)) or "-",
    )
    table.add_row(
        "per-channel",
        ", ".join(ordered_fields(resolved.per_channel_fields, PER_CHANNEL_FIELDS)) or "-",
    )
    console.print(table)


@app.command()
def guard(
    agent: str | None = AgentOption,
    model: str | None = ModelOption,
    config: Path | None = ConfigOption,
):
    """Show the resolved tool result guard mode and compaction target."""
    from kvguard.config.guard import resolve_tool_result_guard

    resolved = resolve_tool_result_guard(_load(config), agent, model)
    target = (
        f"{resolved.compaction_target:.2f}"
        if resolved.compaction_target is not None
        else "[dim]trigger ratio[/dim]"
    )
    console.print(f"Mode:   {resolved.mode}")
    console.print(f"Target: {target}")


# ============================================================================
# Session log compaction
# ============================================================================


@app.command()
def plan(
    session_file: Path = typer.Argument(..., help="Session JSONL file"),
    window: int | None = typer.Option(None, "--window", "-w", min=1, help="Context window in tokens"),
    agent: str | None = AgentOption,
    model: str | None = ModelOption,
    config: Path | None = ConfigOption,
):
    """Plan which tool results to compact to get a session under budget."""
    from kvguard.agent.compaction import plan_compaction
    from kvguard.agent.guard import ToolResultGuard
    from kvguard.config.guard import resolve_tool_result_guard
    from kvguard.config.params import resolve_context_tokens
    from kvguard.session.log import SessionLog

    cfg = _load(config)
    window = window or resolve_context_tokens(cfg, agent)
    if not window:
        console.print("[red]Error: no context window (use --window or set contextTokens)[/red]")
        raise typer.Exit(1)

    if not session_file.exists():
        console.print(f"[red]Session file not found: {session_file}[/red]")
        raise typer.Exit(1)

    messages = SessionLog(session_file).messages()
    resolved = resolve_tool_result_guard(cfg, agent, model)
    used = ToolResultGuard(window).estimate_context_tokens(messages)
    result = plan_compaction(
        messages, used, window, compaction_target=resolved.compaction_target,
    )

    console.print(f"Usage:     {used} / {window} tokens ({used / window:.0%})")
    console.print(f"Target:    {result.target_tokens} tokens")
    console.print(f"Projected: {result.projected_tokens} tokens")

    if not result.tool_call_ids:
        console.print("[green]✓[/green] Nothing to compact")
        return

    table = Table(title="Tool results to compact (oldest first)")
    table.add_column("#", style="dim")
    table.add_column("Tool call id", style="cyan")
    for i, call_id in enumerate(result.tool_call_ids, start=1):
        table.add_row(str(i), call_id)
    console.print(table)

    if not result.reached_target:
        console.print("[yellow]Warning: target not reached even after compacting all tool results[/yellow]")


@app.command()
def compact(
    session_file: Path = typer.Argument(..., help="Session JSONL file"),
    tool_call_ids: list[str] = typer.Argument(..., help="Tool call ids to compact"),
    placeholder: str | None = typer.Option(None, "--placeholder", help="Replacement text"),
):
    """Replace tool results in a session file with the compaction placeholder."""
    from kvguard.agent.compaction import TOOL_RESULT_COMPACTION_PLACEHOLDER
    from kvguard.session.persistence import persist_tool_result_compaction

    warnings: list[str] = []
    result = persist_tool_result_compaction(
        session_file,
        tool_call_ids,
        placeholder=placeholder or TOOL_RESULT_COMPACTION_PLACEHOLDER,
        warn=warnings.append,
    )

    for w in warnings:
        console.print(f"[red]{w}[/red]")

    if result.persisted:
        console.print(f"[green]✓[/green] Compacted {result.updated_count} tool result(s)")
    elif not warnings:
        console.print("[yellow]Nothing to compact (already compacted or not found)[/yellow]")
    else:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
