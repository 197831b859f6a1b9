"""CLI entry point for the RCON client."""

from __future__ import annotations

import argparse
import logging
import sys

from prompt_toolkit import prompt

from srcrcon.client import RconClient
from srcrcon.config import AppConfig, ConfigError, ServerConfig, load_config
from srcrcon.errors import RconError
from srcrcon.repl import run_repl


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="srcrcon",
        description="Source RCON client",
    )
    parser.add_argument(
        "server",
        nargs="?",
        help="Server name (from config) or host:port (e.g., 10.0.0.5:27015)",
    )
    parser.add_argument(
        "-p",
        "--password",
        help="RCON password (default: from config, else prompted)",
    )
    parser.add_argument(
        "-c",
        "--command",
        help="Execute a single command and exit (non-interactive mode)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Socket timeout in seconds (default: from config, else 10)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Log protocol activity to stderr",
    )
    return parser


def select_server(config: AppConfig) -> tuple[str, ServerConfig]:
    """Prompt the user to select from configured servers.

    Returns (key, ServerConfig).
    """
    servers = list(config.servers.items())
    if not servers:
        print("No servers configured.", file=sys.stderr)
        sys.exit(1)

    print("Available servers:")
    for i, (_key, srv) in enumerate(servers, 1):
        print(f"  {i}. {srv.name} ({srv.address})")

    while True:
        try:
            choice = input(f"\nSelect server [1-{len(servers)}]: ").strip()
            idx = int(choice) - 1
            if 0 <= idx < len(servers):
                return servers[idx]
        except EOFError:
            sys.exit(1)
        except ValueError:
            pass
        print(f"Please enter a number between 1 and {len(servers)}")


def resolve_server(
    server_arg: str | None, config: AppConfig
) -> tuple[str, ServerConfig]:
    """Resolve the target server from CLI arg or interactive selection.

    Returns (display_name, ServerConfig).
    """
    if server_arg is not None:
        if server_arg in config.servers:
            return server_arg, config.servers[server_arg]

        return server_arg, ServerConfig.from_address(server_arg)

    if config.default_server and config.default_server in config.servers:
        key = config.default_server
        return key, config.servers[key]

    return select_server(config)


def resolve_password(password_arg: str | None, server: ServerConfig) -> str:
    """Take the password from the -p flag or the config entry, else ask for it."""
    if password_arg is not None:
        return password_arg
    if server.password is not None:
        return server.password

    try:
        return prompt(f"RCON password for {server.address}: ", is_password=True)
    except (EOFError, KeyboardInterrupt):
        print(file=sys.stderr)
        sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        )

    try:
        config = load_config()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    display_name, server = resolve_server(args.server, config)
    password = resolve_password(args.password, server)
    timeout = args.timeout if args.timeout is not None else config.timeout

    client = RconClient(password, server.host, server.port, timeout=timeout)
    try:
        accepted = client.authenticate()
    except RconError as e:
        print(f"Connection failed: {e}", file=sys.stderr)
        sys.exit(1)
    if not accepted:
        print("Authentication failed: incorrect RCON password", file=sys.stderr)
        sys.exit(1)

    with client:
        if args.command:
            try:
                response = client.send_command(args.command)
            except RconError as e:
                print(f"Error: {e}", file=sys.stderr)
                sys.exit(1)
            if response:
                print(response.rstrip("\n"))
            return

        print(f"Connected to {display_name} ({server.address})")
        print("Ctrl+D or 'exit' to quit.\n")
        run_repl(client)
