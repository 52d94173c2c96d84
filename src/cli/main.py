"""CLI commands for the resolution coach."""

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cli.config import load_config_model
from cli.logging_config import setup_logging
from cli.utils import get_components
from coach.models import new_id
from coach.nudges import should_nudge
from coach.store import StoreError
from llm import LLMError

console = Console()

EXIT_COMMANDS = {"exit", "quit", ":q"}


@click.group()
@click.version_option(version="1.0.0")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("-c", "--config", "config_path", type=click.Path(path_type=Path), help="Path to config.yaml")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None):
    """Resolution Coach - conversational goal tracking."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    try:
        logging_config = load_config_model(config_path).logging
        level = "DEBUG" if verbose else logging_config.level
        setup_logging(json_mode=logging_config.json_output, level=level)
    except ValueError:
        # reported with context by the command itself
        setup_logging(level="DEBUG" if verbose else "INFO")


@cli.command()
@click.option("-m", "--message", help="Send one message and exit")
@click.option("--conversation-id", help="Resume an existing conversation")
@click.pass_context
def chat(ctx: click.Context, message: str | None, conversation_id: str | None):
    """Talk to the coach. Type 'exit' to leave."""
    c = get_components(ctx.obj["config_path"])
    conversation_id = conversation_id or new_id()

    def turn(text: str) -> bool:
        try:
            with console.status("Thinking..."):
                reply = c["chat"].handle_message(text, conversation_id)
        except (LLMError, StoreError) as e:
            console.print(f"[red]Error:[/] {e}")
            return False
        console.print()
        console.print(Markdown(reply.response))
        if reply.tools_used:
            console.print(f"[dim]tools: {', '.join(reply.tools_used)}[/]")
        console.print()
        return True

    if message:
        if not turn(message):
            sys.exit(1)
        return

    console.print(f"[dim]Conversation {conversation_id}[/]")
    while True:
        try:
            text = console.input("[bold cyan]you>[/] ").strip()
        except (EOFError, KeyboardInterrupt):
            console.print()
            break
        if not text:
            continue
        if text.lower() in EXIT_COMMANDS:
            break
        turn(text)


@cli.command("list")
@click.option(
    "-s", "--status", default="active", type=click.Choice(["active", "completed", "all"]), help="Filter by status"
)
@click.pass_context
def list_cmd(ctx: click.Context, status: str):
    """List resolutions."""
    c = get_components(ctx.obj["config_path"], skip_chat=True)
    try:
        resolutions = c["repository"].load_resolutions().by_status(status)
    except StoreError as e:
        console.print(f"[red]Store error:[/] {e}")
        sys.exit(1)

    if not resolutions:
        console.print(f"[yellow]No {status} resolutions.[/]")
        return

    table = Table(title=f"Resolutions ({status})")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Criteria")
    table.add_column("Status")
    table.add_column("Updates", justify="right")
    table.add_column("Last nudge")

    for r in sorted(resolutions, key=lambda r: r.created_at):
        last = r.update_settings.last_nudge_at
        table.add_row(
            r.id[:8],
            r.title,
            r.measurable_criteria,
            f"[green]{r.status}[/]" if r.is_active else str(r.status),
            str(len(r.updates)),
            last.strftime("%Y-%m-%d") if last else "-",
        )
    console.print(table)


@cli.command("nudge-status")
@click.option("--session-count", default=0, help="Nudges already delivered this session")
@click.pass_context
def nudge_status(ctx: click.Context, session_count: int):
    """Show whether the coach would nudge right now, and about what."""
    c = get_components(ctx.obj["config_path"], skip_chat=True)
    config = c["config"]
    try:
        preferences = c["repository"].load_preferences()
        resolutions = c["repository"].load_resolutions()
    except StoreError as e:
        console.print(f"[red]Store error:[/] {e}")
        sys.exit(1)

    decision = should_nudge(
        preferences,
        resolutions.values(),
        session_nudge_count=session_count,
        max_per_session=config.nudges.max_per_session,
        threshold_days=config.nudges.threshold_days(),
    )
    if not decision.should_nudge:
        console.print(f"[yellow]No nudge:[/] {decision.reason}")
        return

    console.print(f"[green]Would nudge[/] about [bold]{decision.resolution_title}[/] ({decision.type})")
    console.print(f"  reason: {decision.reason}")


@cli.command()
@click.pass_context
def prefs(ctx: click.Context):
    """Show update preferences."""
    c = get_components(ctx.obj["config_path"], skip_chat=True)
    try:
        p = c["repository"].load_preferences()
    except StoreError as e:
        console.print(f"[red]Store error:[/] {e}")
        sys.exit(1)

    table = Table(title="Update preferences", show_header=False)
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("Updates enabled", str(p.updates_enabled))
    table.add_row("In-conversation", f"{p.in_conversation.enabled} ({p.in_conversation.frequency})")
    table.add_row("SMS", f"{p.sms.enabled} (phone {'set' if p.sms.phone_number else 'not set'})")
    quiet = p.sms.quiet_hours
    table.add_row("Quiet hours", f"{quiet.start}-{quiet.end} {quiet.timezone}" if quiet.enabled else "off")
    table.add_row("Check-in days", ", ".join(str(d) for d in p.default_cadence.check_in_days))
    console.print(table)


if __name__ == "__main__":
    cli()
