"""Main CLI application using Typer."""
import asyncio

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from ..errors import ChatSyncError, SendError
from ..llm.resolver import all_mappings
from ..session.models import ConnectionStatus, MessageStatus
from ..settings.credentials import mask_secret
from .providers import get_context

# Create Typer app
app = typer.Typer(
    name="chatsync",
    help="Chat sessions with offline caching and sync against a remote chat API",
    no_args_is_help=True,
    add_completion=True,
)
keys_app = typer.Typer(help="Manage your provider API keys", no_args_is_help=True)
app.add_typer(keys_app, name="keys")

# Console for rich output
console = Console()

STATUS_STYLES = {
    MessageStatus.SENDING: "yellow",
    MessageStatus.SENT: "green",
    MessageStatus.ERROR: "red",
}

VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable debug logging")


def _fail(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(code=1)


@app.command()
def send(
    message: str = typer.Argument(..., help="Message to send"),
    session: str | None = typer.Option(
        None,
        "--session",
        "-s",
        help="Session to send to (default: start a new session)"
    ),
    model: str | None = typer.Option(None, "--model", "-m", help="Model, e.g. chatgpt-4o or claude-3-5-sonnet"),
    personality: str | None = typer.Option(
        None,
        "--personality",
        "-p",
        help="sistematica, objetiva, natural, criativa or imaginativa"
    ),
    temperature: float | None = typer.Option(None, "--temperature", "-t", help="Overrides the personality"),
    max_tokens: int | None = typer.Option(None, "--max-tokens", help="Maximum tokens to generate"),
    tool: str | None = typer.Option(None, "--tool", help="Tool selection"),
    verbose: bool = VerboseOption,
):
    """Send a message and print the assistant reply."""
    async def _send():
        ctx = get_context(console, verbose)
        try:
            await ctx.reconciler.probe()
            if session and await ctx.sessions.switch_session(session) is None:
                _fail(f"Session {session} not found")

            settings = {
                "model": model,
                "personality": personality,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "tool": tool,
            }
            result = await ctx.pipeline.send(
                message,
                session_id=session,
                settings={k: v for k, v in settings.items() if v is not None},
            )

            reply = result.assistant_message
            usage = reply.usage
            subtitle = f"{usage.model} ({usage.provider})" if usage else None
            console.print(Panel(Markdown(reply.content), title="Assistant", subtitle=subtitle, border_style="cyan"))

            details = [f"session {result.session_id}"]
            if usage and usage.total_tokens:
                details.append(f"{usage.total_tokens} tokens")
            if usage and usage.processing_time_ms:
                details.append(f"{usage.processing_time_ms:.0f} ms")
            if not result.persisted:
                details.append("queued for sync")
            console.print(f"[dim]{' · '.join(details)}[/dim]")

        except SendError as e:
            failed = e.user_message.id if e.user_message is not None else "?"
            console.print(f"[red]Error: {e.message}[/red]")
            console.print(f"[dim]Message {failed} kept with status 'error'; retry with: chatsync resend[/dim]")
            raise typer.Exit(code=1)
        except ChatSyncError as e:
            _fail(e.message)
        finally:
            await ctx.close()

    asyncio.run(_send())


@app.command()
def resend(
    session_id: str = typer.Argument(..., help="Session containing the message"),
    message_id: str = typer.Argument(..., help="User message to send again"),
    verbose: bool = VerboseOption,
):
    """Send an earlier user message again under a new id."""
    async def _resend():
        ctx = get_context(console, verbose)
        try:
            await ctx.reconciler.probe()
            if await ctx.sessions.switch_session(session_id) is None:
                _fail(f"Session {session_id} not found")
            result = await ctx.pipeline.resend(session_id, message_id)
            console.print(Panel(Markdown(result.assistant_message.content), title="Assistant", border_style="cyan"))
        except ChatSyncError as e:
            _fail(e.message)
        finally:
            await ctx.close()

    asyncio.run(_resend())


@app.command()
def sessions(
    page: int = typer.Option(1, "--page", help="Page number"),
    size: int = typer.Option(20, "--size", help="Sessions per page"),
    verbose: bool = VerboseOption,
):
    """List sessions, including ones not yet synced."""
    async def _sessions():
        ctx = get_context(console, verbose)
        try:
            await ctx.reconciler.probe()
            listed = await ctx.sessions.load_sessions(page=page, size=size)

            if not listed:
                console.print("[yellow]No sessions found[/yellow]")
                return

            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("ID", style="dim")
            table.add_column("Title", style="cyan")
            table.add_column("Updated", width=19)
            table.add_column("State", width=8)

            for item in listed:
                state = "offline" if ctx.correlation.is_pending(item.id) else "synced"
                table.add_row(
                    item.id,
                    item.title or "",
                    item.updated_at.strftime("%Y-%m-%d %H:%M:%S"),
                    f"[yellow]{state}[/yellow]" if state == "offline" else state,
                )

            console.print(table)

        except ChatSyncError as e:
            _fail(e.message)
        finally:
            await ctx.close()

    asyncio.run(_sessions())


@app.command()
def history(
    session_id: str = typer.Argument(..., help="Session to show"),
    verbose: bool = VerboseOption,
):
    """Show the messages of a session."""
    async def _history():
        ctx = get_context(console, verbose)
        try:
            await ctx.reconciler.probe()
            loaded = await ctx.sessions.switch_session(session_id)
            if loaded is None:
                _fail(f"Session {session_id} not found")

            console.print(f"[bold]{loaded.title or session_id}[/bold]\n")
            for item in loaded.messages:
                style = STATUS_STYLES.get(item.status, "white")
                header = f"{item.role.value} · {item.timestamp:%Y-%m-%d %H:%M} · [{style}]{item.status.value}[/{style}]"
                console.print(f"[dim]{item.id}[/dim]  {header}")
                console.print(item.content)
                console.print()

        except ChatSyncError as e:
            _fail(e.message)
        finally:
            await ctx.close()

    asyncio.run(_history())


@app.command()
def rename(
    session_id: str = typer.Argument(..., help="Session to rename"),
    title: str = typer.Argument(..., help="New title"),
    verbose: bool = VerboseOption,
):
    """Rename a session."""
    async def _rename():
        ctx = get_context(console, verbose)
        try:
            await ctx.reconciler.probe()
            if await ctx.sessions.switch_session(session_id) is None:
                _fail(f"Session {session_id} not found")
            renamed = await ctx.sessions.rename_session(session_id, title)
            console.print(f"[green]Renamed to '{renamed.title}'[/green]")
        except ChatSyncError as e:
            _fail(e.message)
        finally:
            await ctx.close()

    asyncio.run(_rename())


@app.command()
def delete(
    session_id: str = typer.Argument(..., help="Session to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    verbose: bool = VerboseOption,
):
    """Delete a session remotely and from the offline cache."""
    if not yes and not typer.confirm(f"Delete session {session_id}?"):
        console.print("[dim]Aborted.[/dim]")
        return

    async def _delete():
        ctx = get_context(console, verbose)
        try:
            await ctx.reconciler.probe()
            await ctx.sessions.delete_session(session_id)
            console.print("[green]Session deleted[/green]")
        except ChatSyncError as e:
            _fail(e.message)
        finally:
            await ctx.close()

    asyncio.run(_delete())


@app.command()
def sync(verbose: bool = VerboseOption):
    """Push offline sessions and messages, then refresh from the API."""
    async def _sync():
        ctx = get_context(console, verbose)
        try:
            if not await ctx.api.ping():
                console.print("[yellow]API unreachable, nothing synced[/yellow]")
                raise typer.Exit(code=1)

            ctx.store.set_connection_status(ConnectionStatus.CONNECTED)
            report = await ctx.reconciler.sync_now()

            table = Table(show_header=False, box=None)
            table.add_column("Metric", style="bold cyan", width=18)
            table.add_column("Value")
            table.add_row("Sessions pushed", str(report.sessions_synced))
            table.add_row("Messages pushed", str(report.messages_synced))
            table.add_row("Failures", str(len(report.failures)))
            console.print(table)

            for line in report.failures:
                console.print(f"[red]  {line}[/red]")
            if ctx.reconciler.inbound_task.last_error is not None:
                console.print(f"[red]Refresh failed: {ctx.reconciler.inbound_task.last_error}[/red]")

        finally:
            await ctx.close()

    asyncio.run(_sync())


@keys_app.command("list")
def keys_list(verbose: bool = VerboseOption):
    """Show which providers have a key of yours (masked)."""
    async def _list():
        ctx = get_context(console, verbose)
        try:
            keys = await ctx.credential_store.refresh(ctx.api)
            if not keys:
                console.print("[yellow]No personal keys stored; system keys will be used[/yellow]")
                return

            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("Provider", style="cyan")
            table.add_column("Key")
            for provider, value in sorted(keys.items()):
                table.add_row(provider, mask_secret(value))
            console.print(table)

        except ChatSyncError as e:
            _fail(e.message)
        finally:
            await ctx.close()

    asyncio.run(_list())


@keys_app.command("set")
def keys_set(
    provider: str = typer.Argument(..., help="Provider, e.g. openai or anthropic"),
    value: str | None = typer.Argument(None, help="Key value (prompted if omitted)"),
    verbose: bool = VerboseOption,
):
    """Store a personal API key for a provider."""
    secret = value or typer.prompt(f"{provider} API key", hide_input=True)

    async def _set():
        ctx = get_context(console, verbose)
        try:
            await ctx.credential_store.set_key(ctx.api, provider, secret)
            console.print(f"[green]Stored key for {provider} ({mask_secret(secret)})[/green]")
        except ChatSyncError as e:
            _fail(e.message)
        finally:
            await ctx.close()

    asyncio.run(_set())


@app.command()
def stats(verbose: bool = VerboseOption):
    """Show usage statistics from recent sends."""
    async def _stats():
        ctx = get_context(console, verbose)
        try:
            summary = ctx.config_log.summary()
            if not summary.total_sends:
                console.print("[yellow]No sends recorded yet[/yellow]")
                return

            table = Table(show_header=False, box=None)
            table.add_column("Metric", style="bold cyan", width=18)
            table.add_column("Value")

            def _counts(counts: dict[str, int]) -> str:
                return ", ".join(f"{k}: {v}" for k, v in counts.items()) or "None"

            table.add_row("Total Sends", str(summary.total_sends))
            table.add_row("Success Rate", f"{summary.success_rate:.0%}")
            table.add_row("Models", _counts(summary.most_used_models))
            table.add_row("Tools", _counts(summary.most_used_tools))
            table.add_row("Personalities", _counts(summary.most_used_personalities))
            table.add_row("Temperatures", _counts(summary.temperature_distribution))
            table.add_row("Errors", _counts(summary.errors_by_type))

            console.print(table)
        finally:
            await ctx.close()

    asyncio.run(_stats())


@app.command()
def models():
    """List known models and the provider serving each."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Model", style="cyan")
    table.add_column("Remote ID")
    table.add_column("Provider", style="yellow")
    for mapping in all_mappings():
        table.add_row(mapping.client, mapping.remote, mapping.provider)
    console.print(table)


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
