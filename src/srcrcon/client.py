"""High-level Source RCON client."""

from __future__ import annotations

from typing import TYPE_CHECKING

from srcrcon.dispatcher import CommandDispatcher
from srcrcon.session import DEFAULT_PORT, Session, SessionState

if TYPE_CHECKING:
    from types import TracebackType

    from srcrcon.protocol import Packet


class RconClient:
    """Connects to a Source RCON server, logs in and runs commands.

    The connection is opened lazily: ``send_command`` logs in on demand,
    and logs in again once if the connection was lost in between.
    """

    def __init__(
        self,
        password: str,
        host: str,
        port: int = DEFAULT_PORT,
        *,
        timeout: float | None = 10.0,
    ) -> None:
        self.session = Session(host, port, password, timeout=timeout)
        self._dispatcher = CommandDispatcher(self.session)

    def __enter__(self) -> RconClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def host(self) -> str:
        return self.session.host

    @property
    def port(self) -> int:
        return self.session.port

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def is_authenticated(self) -> bool:
        """Whether the connection is live and the last login succeeded."""
        return self.session.is_authenticated

    def authenticate(self, password: str | None = None) -> bool:
        """Reconnect and log in, optionally with a new password.

        Returns False if the server rejects the password.
        """
        return self.session.authenticate(password)

    def send_command(self, command: str) -> str:
        """Run a command and return its complete output."""
        return self._dispatcher.send_command(command)

    def send_raw(self, request_id: int, packet_type: int, body: str | bytes) -> Packet:
        """Send a packet as given and return the next packet received."""
        return self._dispatcher.send_raw(request_id, packet_type, body)

    def close(self) -> None:
        """Close the connection."""
        self.session.close()
