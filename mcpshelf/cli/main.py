"""
MCPShelf CLI - manage MCP providers and browse their tools.

Run `mcpshelf --help` for commands, or `mcpshelf shell` for an interactive
session that keeps discovered tools cached between commands.
"""

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from mcpshelf import __version__
from mcpshelf.core.coordinator import Outcome, ProviderCoordinator
from mcpshelf.registry.providers import ProviderNotFoundError
from mcpshelf.registry.schema import Provider, RequestHeader
from mcpshelf.validation.config import Config, ConfigError

console = Console()

TRANSPORT_CHOICE = click.Choice(["sse", "http"], case_sensitive=False)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _parse_headers(values: Tuple[str, ...]) -> List[RequestHeader]:
    """Turn ``KEY=VALUE`` option values into header pairs."""
    headers: List[RequestHeader] = []
    for raw in values:
        key, sep, value = raw.partition("=")
        if not sep:
            raise click.BadParameter(f"expected KEY=VALUE, got {raw!r}", param_hint="--header")
        headers.append(RequestHeader(key=key.strip(), value=value.strip()))
    return headers


def _report(outcome: Outcome) -> None:
    """Print an outcome; exit non-zero on failure."""
    if outcome.success:
        console.print(f"[green]{escape(outcome.message)}[/green]")
    else:
        console.print(f"[red]{escape(outcome.message)}[/red]")
        sys.exit(1)


def _print_providers(providers: List[Provider]) -> None:
    if not providers:
        console.print("[dim]No MCP servers registered. Add one with:[/dim]")
        console.print('[dim]  mcpshelf add "Docs" https://example.com/mcp --transport http[/dim]')
        return

    table = Table(title=f"MCP servers ({len(providers)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("Transport")
    table.add_column("URL", overflow="fold")
    table.add_column("Headers", justify="right")
    for provider in providers:
        table.add_row(
            provider.id,
            provider.name,
            provider.transport_kind.value,
            provider.url,
            str(len(provider.headers)),
        )
    console.print(table)


def _print_tools(outcome: Outcome) -> None:
    if not outcome.success:
        console.print(f"[red]{escape(outcome.message)}[/red]")
        return

    suffix = " [dim](cached)[/dim]" if outcome.cached else ""
    console.print(f"[bold]Available tools ({len(outcome.tools)}):[/bold]{suffix}")
    for tool in outcome.tools:
        console.print(f"  [cyan]{escape(tool.name)}[/cyan] — {escape(tool.description)}")


# ── Interactive shell ─────────────────────────────────────────────────────


class ShelfREPL:
    """
    Interactive loop over a single coordinator.

    Unlike one-shot commands, the shell keeps the tool cache alive, so
    expanding the same server twice within the cache window only hits the
    network once.
    """

    def __init__(self, coordinator: ProviderCoordinator):
        self.coordinator = coordinator
        self.running = True

    def _print_help(self):
        console.print("[bold]Commands:[/bold]")
        console.print("  /list              List registered MCP servers")
        console.print("  /tools <id>        Show a server's tools (cached for the session)")
        console.print("  /refresh <id>      Re-fetch a server's tools")
        console.print("  /remove <id>       Delete a server")
        console.print("  /stats             Show tool cache statistics")
        console.print("  /help              Show this help")
        console.print("  /exit              Quit")

    def _handle_command(self, cmd: str) -> bool:
        """Handle a slash command. Returns True if should continue."""
        parts = cmd.split(maxsplit=1)
        command = parts[0].lower()
        args = parts[1].strip() if len(parts) > 1 else ""

        if command in ("/exit", "/quit", "/q"):
            self.running = False
            return False

        elif command in ("/help", "/?"):
            self._print_help()

        elif command == "/list":
            _print_providers(self.coordinator.list())

        elif command in ("/tools", "/refresh", "/remove"):
            if not args:
                console.print(f"[yellow]Usage: {command} <id>[/yellow]")
            elif command == "/tools":
                _print_tools(self.coordinator.expand(args))
            elif command == "/refresh":
                _print_tools(self.coordinator.refresh(args))
            else:
                outcome = self.coordinator.remove(args)
                console.print(f"[green]{escape(outcome.message)}[/green]")

        elif command == "/stats":
            stats = self.coordinator.cache.stats()
            console.print(
                f"[dim]{stats['entries']} cached, {stats['hits']} hits, "
                f"{stats['misses']} misses, ttl {stats['ttl_seconds']}s[/dim]"
            )

        else:
            console.print(f"[yellow]Unknown command: {command}[/yellow]")
            console.print("[dim]Type /help for available commands[/dim]")

        return True

    def run(self):
        """Run the interactive REPL."""
        console.print(f"[bold blue]MCPShelf[/bold blue] [cyan]v{__version__}[/cyan]")
        console.print("  [dim]Type /help for commands. Ctrl+D or /exit to quit.[/dim]")

        while self.running:
            try:
                console.print("[bold green]> [/bold green]", end="")
                user_input = input().strip()
            except (EOFError, KeyboardInterrupt):
                break

            if not user_input:
                continue
            if not user_input.startswith("/"):
                user_input = "/" + user_input
            if not self._handle_command(user_input):
                break


# ── Commands ──────────────────────────────────────────────────────────────


@click.group()
@click.version_option(__version__, "--version", "-v", message="MCPShelf v%(version)s")
@click.option("--verbose", is_flag=True, help="Log transport and registry activity")
@click.option(
    "--store-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding the saved server list",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, store_dir: Optional[Path]) -> None:
    """
    MCPShelf - registry and tool browser for remote MCP servers.

    \b
    Examples:
        mcpshelf add "Docs" https://ex.com/mcp --transport http
        mcpshelf list
        mcpshelf tools <id>
        mcpshelf shell
    """
    _configure_logging(verbose)
    try:
        config = Config.load()
        if store_dir is not None:
            config.set_store_directory(store_dir)
        ctx.obj = ProviderCoordinator.from_config(config)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command("list")
@click.pass_obj
def list_cmd(coordinator: ProviderCoordinator) -> None:
    """List registered MCP servers."""
    _print_providers(coordinator.list())


@cli.command()
@click.argument("name")
@click.argument("url")
@click.option("--transport", "-t", type=TRANSPORT_CHOICE, default="sse", show_default=True)
@click.option("--header", "-H", "headers", multiple=True, help="KEY=VALUE, repeatable")
@click.pass_obj
def add(coordinator: ProviderCoordinator, name: str, url: str, transport: str, headers: Tuple[str, ...]) -> None:
    """Register a new MCP server."""
    outcome = coordinator.register(name, url, transport, _parse_headers(headers))
    _report(outcome)
    console.print(f"[dim]id: {outcome.provider.id}[/dim]")


@cli.command()
@click.argument("provider_id")
@click.option("--name")
@click.option("--url")
@click.option("--transport", "-t", type=TRANSPORT_CHOICE)
@click.option("--header", "-H", "headers", multiple=True, help="KEY=VALUE, replaces existing headers")
@click.option("--clear-headers", is_flag=True, help="Remove all headers")
@click.pass_obj
def edit(
    coordinator: ProviderCoordinator,
    provider_id: str,
    name: Optional[str],
    url: Optional[str],
    transport: Optional[str],
    headers: Tuple[str, ...],
    clear_headers: bool,
) -> None:
    """Change an MCP server. Options left out keep their current value."""
    try:
        current = coordinator.registry.get(provider_id)
    except ProviderNotFoundError as e:
        console.print(f"[red]Failed to update MCP server: {e}[/red]")
        sys.exit(1)

    if clear_headers:
        new_headers: List[RequestHeader] = []
    elif headers:
        new_headers = _parse_headers(headers)
    else:
        new_headers = current.headers

    _report(coordinator.update(
        provider_id,
        name if name is not None else current.name,
        url if url is not None else current.url,
        transport or current.transport_kind,
        new_headers,
    ))


@cli.command()
@click.argument("provider_id")
@click.pass_obj
def remove(coordinator: ProviderCoordinator, provider_id: str) -> None:
    """Delete an MCP server."""
    _report(coordinator.remove(provider_id))


@cli.command()
@click.argument("provider_id")
@click.option("--refresh", is_flag=True, help="Ignore cached tools")
@click.pass_obj
def tools(coordinator: ProviderCoordinator, provider_id: str, refresh: bool) -> None:
    """Show the tools an MCP server exposes."""
    outcome = coordinator.refresh(provider_id) if refresh else coordinator.expand(provider_id)
    _print_tools(outcome)
    if not outcome.success:
        sys.exit(1)


@cli.command()
@click.pass_obj
def export(coordinator: ProviderCoordinator) -> None:
    """Print the servers as the JSON ``mcpServers`` list sent with chat requests."""
    click.echo(json.dumps(coordinator.chat_payload(), indent=2))


@cli.command()
def init() -> None:
    """Write a default global config.yaml."""
    path = Config.create_default_global()
    console.print(f"[green]Config:[/green] {path}")


@cli.command()
@click.pass_obj
def shell(coordinator: ProviderCoordinator) -> None:
    """Start an interactive session."""
    ShelfREPL(coordinator).run()


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
