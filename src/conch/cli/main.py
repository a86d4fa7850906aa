"""CLI entry point for Conch."""

from __future__ import annotations

import asyncio
import getpass
import logging
import socket
import sys

import click
from rich.console import Console

from conch.cli.output import RichConfirmationGateway, RichRenderer
from conch.core.config import load_settings, settings_provider
from conch.core.loop import AgentLoop
from conch.core.prompts import describe_server
from conch.core.session import ConversationSession
from conch.errors import ConfigurationError, TransportError
from conch.executors.local import LocalCommandExecutor
from conch.permissions.approval import AutoApproveGateway, ConfirmationGateway
from conch.providers.openai import OpenAICompatibleClient
from conch.tools.registry import ToolRegistry
from conch.types.config import SettingsProvider


@click.command()
@click.argument("prompt", nargs=-1, required=True)
@click.option("--model", "-m", default=None, help="Model name")
@click.option("--base-url", default=None, help="OpenAI-compatible base URL")
@click.option("--api-key", default=None, help="API key (default: CONCH_API_KEY / OPENAI_API_KEY)")
@click.option("--max-iterations", type=int, default=None, help="Maximum tool rounds per turn")
@click.option("--host-label", default=None, help="Host name shown to the model")
@click.option("--cwd", default=None, help="Working directory for commands")
@click.option("--yes", "-y", is_flag=True, help="Approve every tool call without asking")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
def cli(
    prompt: tuple[str, ...],
    model: str | None,
    base_url: str | None,
    api_key: str | None,
    max_iterations: int | None,
    host_label: str | None,
    cwd: str | None,
    yes: bool,
    verbose: bool,
) -> None:
    """Conch -- talk to a server in plain language.

    \b
    Usage:
      conch "how much disk space is left?"
      conch --yes "restart nginx"
      conch --model deepseek-chat --base-url https://api.deepseek.com/v1 "show top processes"
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    prompt_text = " ".join(prompt).strip()
    if not prompt_text:
        click.echo("Error: empty prompt", err=True)
        sys.exit(1)

    overrides = {
        "model": model,
        "base_url": base_url,
        "api_key": api_key,
        "max_iterations": max_iterations,
    }
    try:
        settings = load_settings(cwd, **overrides)
    except ConfigurationError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    gateway: ConfirmationGateway = AutoApproveGateway() if yes else RichConfirmationGateway()
    server_context = describe_server(host_label or socket.gethostname(), getpass.getuser())

    try:
        asyncio.run(_run_turn(
            prompt_text,
            settings=settings_provider(cwd, **overrides),
            max_iterations=settings.max_iterations,
            server_context=server_context,
            cwd=cwd,
            gateway=gateway,
        ))
    except (ConfigurationError, TransportError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


async def _run_turn(
    prompt: str,
    *,
    settings: SettingsProvider,
    max_iterations: int,
    server_context: str,
    cwd: str | None,
    gateway: ConfirmationGateway,
    console: Console | None = None,
) -> None:
    """Run one turn against the local machine and render it."""
    registry = ToolRegistry.with_defaults()
    client = OpenAICompatibleClient(settings, registry)
    loop = AgentLoop(
        client,
        registry,
        LocalCommandExecutor(cwd=cwd),
        session=ConversationSession(server_context=server_context),
        max_iterations=max_iterations,
    )
    renderer = RichRenderer(console=console)
    await loop.execute(prompt, [], server_context, observer=renderer, gateway=gateway)


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
