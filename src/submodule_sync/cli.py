import argparse
import sys
from dataclasses import replace
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import server
from .audit import setup_logging
from .config import Config, ConfigError
from .constants import APP_NAME, CONFIG_FILE, LOG_FILE
from .registry import SubmoduleRegistry

console = Console()
err_console = Console(stderr=True)


def load_config(path: Path | None) -> Config:
    """Loads and validates the configuration, exiting with a message on failure.

    Args:
        path (Path | None): Explicit config file, or None for the default lookup.

    Returns:
        Config: A configuration the listener can run with.

    Raises:
        SystemExit: If the configuration is unusable.
    """
    try:
        config = Config.load(path)
        config.validate()
        SubmoduleRegistry(config.submodules)
    except ConfigError as e:
        err_console.print(f"[bold red]Config Error:[/bold red] {e}")
        sys.exit(1)
    return config


def show_bindings(config: Config) -> None:
    """Prints the monitored submodules as a table."""
    table = Table(title=f"Monitored submodules ({config.github.owner})")
    table.add_column("Submodule", style="cyan")
    table.add_column("Watched branch")
    table.add_column("Parent", style="magenta")
    table.add_column("Parent branch")
    table.add_column("Mount path", style="green")

    for b in config.submodules:
        table.add_row(b.repo, b.branch, b.parent_repo, b.parent_branch, b.path)

    console.print(table)
    console.print(
        f"Webhook endpoint: [bold]{config.server.host}:{config.server.port}"
        f"{config.server.path}[/bold]"
    )


def run_server(config: Config) -> None:
    setup_logging(config)
    console.print(
        f"[bold green]{APP_NAME}[/bold green] watching "
        f"{len(config.submodules)} submodule(s). Logging to {LOG_FILE}"
    )
    server.serve(config)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Submodule Sync CLI."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Keep parent repositories' submodule pointers in sync "
        "with pushes to the submodules.",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Start the webhook listener")
    serve_parser.add_argument(
        "--config", type=Path, help=f"Config file (default: {CONFIG_FILE})"
    )
    serve_parser.add_argument("--port", type=int, help="Override [server].port")
    serve_parser.add_argument(
        "--debug", action="store_true", help="Log raw API responses"
    )

    check_parser = subparsers.add_parser(
        "check", help="Validate the config and list monitored submodules"
    )
    check_parser.add_argument(
        "--config", type=Path, help=f"Config file (default: {CONFIG_FILE})"
    )

    subparsers.add_parser("help", help="Show this help message")

    args = parser.parse_args(argv)

    if args.command == "serve":
        config = load_config(args.config)
        if args.port is not None:
            config = replace(config, server=replace(config.server, port=args.port))
        if args.debug:
            config = replace(config, debug=True)
        run_server(config)
        return
    elif args.command == "check":
        config = load_config(args.config)
        show_bindings(config)
        console.print("[bold green]✔ Configuration is valid.[/bold green]")
        return

    parser.print_help()


if __name__ == "__main__":
    main()
