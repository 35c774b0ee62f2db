"""Main entry point for the callguard application.

Sets up the Typer CLI application, performs dependency injection
(Composition Root: one gateway per upstream), defines CLI commands, and
delegates execution to the CommandHandler.
"""

import asyncio
import logging
from typing import Annotated, Any, Coroutine, Dict, Optional

import typer

from callguard.core.command_handler import CommandHandler
from callguard.infrastructure.ai.claude_client import ClaudeClient
from callguard.infrastructure.cli.display import ConsoleDisplay
from callguard.infrastructure.config.settings import (
    DEFAULT_CLAUDE_API_URL, DEFAULT_CLAUDE_API_VERSION, DEFAULT_CLAUDE_MODEL, DEFAULT_MONDAY_API_URL,
    get_claude_api_key, get_config, get_monday_api_token, load_configuration, load_resilience_settings,
)
from callguard.infrastructure.graphql.monday_client import MondayClient
from callguard.infrastructure.monitoring.logger_setup import DEFAULT_LOG_FORMAT, level_from_name, setup_logging
from callguard.infrastructure.resilience.api_retry import ApiRetryService
from callguard.infrastructure.resilience.error_classifier import classify_graphql_outcome, classify_outcome
from callguard.infrastructure.transport.http_transport import AiohttpTransport

logger = logging.getLogger(__name__)


# --- Dependency Injection Container (Manual) ---

def create_dependencies() -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root: each upstream gets its own
    ApiRetryService, and therefore its own breaker, rate window and queue.
    """
    load_configuration()
    setup_logging(
        log_level=level_from_name(get_config('logging.level', 'WARNING')),
        log_format=get_config('logging.format', DEFAULT_LOG_FORMAT),
        log_file=get_config('logging.file'),
    )
    logger.info("Initializing application dependencies...")

    dependencies: Dict[str, Any] = {}
    dependencies['ui'] = ConsoleDisplay()
    transport = AiohttpTransport()
    dependencies['transport'] = transport

    claude_settings = load_resilience_settings('claude')
    monday_settings = load_resilience_settings('monday')
    gateways = {
        'claude': ApiRetryService.from_settings('claude', transport, claude_settings, classify_outcome),
        'monday': ApiRetryService.from_settings('monday', transport, monday_settings, classify_graphql_outcome),
    }
    dependencies['gateways'] = gateways

    claude_api_key = get_claude_api_key()
    if claude_api_key:
        dependencies['claude_client'] = ClaudeClient(
            gateway=gateways['claude'],
            api_key=claude_api_key,
            api_url=get_config('claude.api_url', DEFAULT_CLAUDE_API_URL),
            api_version=get_config('claude.api_version', DEFAULT_CLAUDE_API_VERSION),
            model=get_config('claude.model', DEFAULT_CLAUDE_MODEL),
            default_timeout=claude_settings.request_timeout_s,
        )
    else:
        logger.warning("Claude API key not found, Claude client disabled.")
        dependencies['claude_client'] = None

    monday_api_token = get_monday_api_token()
    if monday_api_token:
        dependencies['monday_client'] = MondayClient(
            gateway=gateways['monday'],
            api_token=monday_api_token,
            api_url=get_config('monday.api_url', DEFAULT_MONDAY_API_URL),
            default_timeout=monday_settings.request_timeout_s,
        )
    else:
        logger.warning("monday.com API token not found, monday client disabled.")
        dependencies['monday_client'] = None

    dependencies['command_handler'] = CommandHandler(
        gateways=gateways,
        ui=dependencies['ui'],
        claude_client=dependencies['claude_client'],
        monday_client=dependencies['monday_client'],
    )
    logger.info("All dependencies initialized successfully.")
    return dependencies


_dependencies: Optional[Dict[str, Any]] = None


def get_dependencies() -> Dict[str, Any]:
    """Returns the wired-up dependencies, creating them on first use."""
    global _dependencies
    if _dependencies is None:
        _dependencies = create_dependencies()
    return _dependencies


# --- Typer App Definition ---
app = typer.Typer(
    name="callguard",
    help="callguard: rate-limited, circuit-broken, retrying gateway for Claude and monday.com calls.",
    add_completion=False,
)


# --- Helper for Running Async Commands ---
def run_async(coro: Coroutine[Any, Any, bool]) -> bool:
    """Runs a handler coroutine, then releases transport resources."""
    handler: CommandHandler = get_dependencies()['command_handler']

    async def _run() -> bool:
        try:
            return await coro
        finally:
            await handler.close()

    return asyncio.run(_run())


# --- CLI Commands ---

@app.command()
def send(
    prompt: Annotated[str, typer.Argument(help="The prompt to send to Claude.")],
    system: Annotated[Optional[str], typer.Option("--system", "-s", help="System prompt.")] = None,
    max_tokens: Annotated[Optional[int], typer.Option("--max-tokens", help="Maximum tokens in the response.")] = None,
    timeout: Annotated[Optional[float], typer.Option("--timeout", help="Request timeout in seconds.")] = None,
):
    """Send a prompt to Claude through the resilience gateway."""
    handler: CommandHandler = get_dependencies()['command_handler']
    if not run_async(handler.handle_send(prompt, system_text=system, max_tokens=max_tokens, timeout=timeout)):
        raise typer.Exit(code=1)


@app.command()
def graphql(
    query: Annotated[str, typer.Argument(help="GraphQL query or mutation.")],
    variables: Annotated[Optional[str], typer.Option("--variables", "-v", help="Variables as a JSON object.")] = None,
):
    """Execute a GraphQL operation against monday.com."""
    handler: CommandHandler = get_dependencies()['command_handler']
    if not run_async(handler.handle_graphql(query, variables)):
        raise typer.Exit(code=1)


@app.command()
def status():
    """Show circuit breaker, rate window and queue state of this process for each upstream.

    Gateways live only as long as one CLI run, so a fresh run reports a
    closed breaker and empty windows.
    """
    handler: CommandHandler = get_dependencies()['command_handler']
    handler.handle_status()


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
