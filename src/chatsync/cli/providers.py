"""Context and logging factories for the CLI.

Centralizes creation of the ChatContext from environment variables.
Hides configuration details from command implementations.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

from ..config import ChatSyncConfig
from ..context import ChatContext

# Default console for output
_console = Console()


def configure_logging(level: str = "WARNING", console: Console | None = None) -> None:
    """Route library logging through Rich.

    Args:
        level: Root log level name
        console: Console that log records are written to
    """
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console or _console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_config(verbose: bool = False) -> ChatSyncConfig:
    """Load configuration from the environment (and ``.env``).

    Environment variables:
        CHATSYNC_API_URL: Remote API base URL
        CHATSYNC_API_TOKEN: Bearer token
        CHATSYNC_STORE / CHATSYNC_STORE_PATH: Offline store backend and file
        CHATSYNC_COMPLETION_BACKEND: remote (default) or openai
        CHATSYNC_LOG_LEVEL: Log level (default: WARNING)
    """
    config = ChatSyncConfig.from_env()
    if verbose:
        config = config.model_copy(update={"log_level": "DEBUG"})
    return config


def get_context(console: Console | None = None, verbose: bool = False) -> ChatContext:
    """Create a ChatContext from environment variables.

    Args:
        console: Optional Rich console for output
        verbose: Force DEBUG logging

    Returns:
        Wired ChatContext (caller must close it)
    """
    con = console or _console
    config = get_config(verbose)
    configure_logging(config.log_level, con)
    if not config.api_token:
        con.print("[yellow]Warning: CHATSYNC_API_TOKEN not set, requests are unauthenticated[/yellow]")
    return ChatContext.from_config(config)
