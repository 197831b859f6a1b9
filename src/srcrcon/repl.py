"""Interactive REPL using prompt_toolkit."""

from __future__ import annotations

import logging
import sys
import time
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.key_binding import KeyBindings

if TYPE_CHECKING:
    from prompt_toolkit.key_binding.key_processor import KeyPressEvent

    from srcrcon.client import RconClient

from srcrcon.config import HISTORY_FILE, ensure_config_dir
from srcrcon.errors import RconError

log = logging.getLogger(__name__)

MAX_RECONNECT_ATTEMPTS = 3


def _create_key_bindings() -> KeyBindings:
    """Create custom key bindings for the REPL.

    Ctrl+C and Ctrl+D abandon the current line if it has text, and exit the
    shell if it is empty.
    """
    kb = KeyBindings()

    def _abandon_or_exit(event: KeyPressEvent, exception: type[BaseException]) -> None:
        buffer = event.app.current_buffer
        if buffer.text:
            print()
            buffer.reset()
            event.app.renderer.reset()
        else:
            event.app.exit(exception=exception)

    @kb.add("c-c")
    def _(event: KeyPressEvent) -> None:
        _abandon_or_exit(event, KeyboardInterrupt)

    @kb.add("c-d")
    def _(event: KeyPressEvent) -> None:
        _abandon_or_exit(event, EOFError)

    return kb


def run_repl(client: RconClient) -> None:
    """Run the interactive REPL loop.

    Args:
        client: An RconClient; it logs in again by itself after a lost
            connection.
    """
    ensure_config_dir()

    session: PromptSession[str] = PromptSession(
        history=FileHistory(str(HISTORY_FILE)),
        auto_suggest=AutoSuggestFromHistory(),
        key_bindings=_create_key_bindings(),
    )

    while True:
        try:
            text = session.prompt(HTML("<ansigreen>rcon</ansigreen>> ")).strip()
        except (EOFError, KeyboardInterrupt):
            print("\nGoodbye.")
            break

        if not text:
            continue

        if text in ("exit", "quit"):
            print("Goodbye.")
            break

        if text == "reconnect":
            reconnect(client)
            continue

        execute_command(client, text)


def execute_command(client: RconClient, text: str) -> None:
    """Run one command and print its output, reporting failures."""
    try:
        response = client.send_command(text)
    except RconError as e:
        log.debug("Command %r failed", text, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        if not client.is_authenticated:
            print(
                "Disconnected. The next command will reconnect, "
                "or use 'reconnect' now.",
                file=sys.stderr,
            )
        return

    if response:
        print(response.rstrip("\n"))


def reconnect(client: RconClient, *, sleep=time.sleep) -> bool:
    """Attempt to log in again with exponential backoff.

    Returns True if reconnection succeeded. A rejected password stops the
    attempts immediately.
    """
    for attempt in range(MAX_RECONNECT_ATTEMPTS):
        if attempt:
            delay = 2**attempt
            print(
                f"Reconnecting in {delay}s "
                f"(attempt {attempt + 1}/{MAX_RECONNECT_ATTEMPTS})..."
            )
            sleep(delay)
        try:
            accepted = client.authenticate()
        except RconError:
            log.debug("Reconnect attempt %d failed", attempt + 1, exc_info=True)
            continue

        if accepted:
            print("Reconnected successfully.")
            return True
        print("Reconnect failed: password rejected.", file=sys.stderr)
        return False

    print(
        "Failed to reconnect. Use 'reconnect' to try again, or 'exit' to quit.",
        file=sys.stderr,
    )
    return False
