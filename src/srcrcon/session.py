"""Connection ownership and the authentication state machine."""

from __future__ import annotations

import enum
import itertools
import logging
import threading
from typing import TYPE_CHECKING

from srcrcon.errors import ConnectionError, ProtocolError  # noqa: A004
from srcrcon.protocol import Packet, RequestType, ResponseType
from srcrcon.transport import FramedTransport

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

log = logging.getLogger(__name__)

DEFAULT_PORT = 27015
AUTH_REQUEST_ID = 0
AUTH_FAILED_ID = -1


class SessionState(enum.Enum):
    """Where a session stands with its server."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"


class Session:
    """An RCON client's logical connection to one server.

    The session exclusively owns its transport. Every authentication
    closes the current transport and opens a new one, so a login is never
    attempted over a connection that may still hold stale responses.
    Callers that share a session between threads hold ``lock`` for the
    duration of an exchange.
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        password: str = "",
        *,
        timeout: float | None = 10.0,
        transport_factory: Callable[..., FramedTransport] = FramedTransport,
    ) -> None:
        self.host = host
        self.port = port
        self.password = password
        self.timeout = timeout
        self.lock = threading.RLock()
        self._transport_factory = transport_factory
        self._transport: FramedTransport | None = None
        self._authenticated = False
        self._request_ids = itertools.count(AUTH_REQUEST_ID + 1)

    def __enter__(self) -> Session:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def state(self) -> SessionState:
        """The current state, derived from the transport and the last login."""
        if self._transport is None or not self._transport.connected:
            return SessionState.DISCONNECTED
        if self._authenticated:
            return SessionState.AUTHENTICATED
        return SessionState.CONNECTED

    @property
    def is_authenticated(self) -> bool:
        """True only while the transport is live and the last login succeeded."""
        return self.state is SessionState.AUTHENTICATED

    @property
    def transport(self) -> FramedTransport:
        """The live transport. Raises ConnectionError when there is none."""
        if self._transport is None or not self._transport.connected:
            msg = "Not connected"
            raise ConnectionError(msg)
        return self._transport

    def next_request_id(self) -> int:
        """Allocate the next command request id."""
        return next(self._request_ids)

    def authenticate(self, password: str | None = None) -> bool:
        """Open a fresh connection and log in.

        Returns False if the server rejects the password. Raises
        ConnectionError (or another RconError) if the server cannot be
        reached or the exchange breaks down; the session is left
        disconnected in both failure cases.
        """
        with self.lock:
            if password is not None:
                self.password = password
            self.close()
            self._request_ids = itertools.count(AUTH_REQUEST_ID + 1)

            transport = self._transport_factory(
                self.host, self.port, timeout=self.timeout
            )
            transport.open()
            self._transport = transport

            try:
                transport.write_packet(
                    Packet(
                        request_id=AUTH_REQUEST_ID,
                        packet_type=RequestType.AUTH,
                        body=self.password.encode("utf-8"),
                    )
                )
                response = self._read_auth_response(transport)
            except BaseException:
                self.close()
                raise

            if response.request_id != AUTH_REQUEST_ID:
                if response.request_id != AUTH_FAILED_ID:
                    log.debug(
                        "Unexpected auth response id %d", response.request_id
                    )
                log.debug("Authentication rejected by %s:%d", self.host, self.port)
                self.close()
                return False

            self._authenticated = True
            log.debug("Authenticated with %s:%d", self.host, self.port)
            return True

    def close(self) -> None:
        """Drop the connection and forget the login."""
        with self.lock:
            self._authenticated = False
            if self._transport is not None:
                self._transport.close()
                self._transport = None

    @staticmethod
    def _read_auth_response(transport: FramedTransport) -> Packet:
        """Read until the AUTH_RESPONSE packet arrives.

        Source servers send an empty RESPONSE_VALUE ahead of the
        AUTH_RESPONSE; it carries no verdict and is skipped.
        """
        while True:
            response = transport.read_packet()
            if response.packet_type == ResponseType.AUTH_RESPONSE:
                return response
            if response.packet_type != ResponseType.RESPONSE_VALUE:
                msg = f"Unexpected packet type {response.packet_type} during login"
                raise ProtocolError(msg)
            log.debug(
                "Skipping packet type %d (id %d) while waiting for auth response",
                response.packet_type,
                response.request_id,
            )
