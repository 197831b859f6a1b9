"""Command execution and multi-packet response reassembly."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from srcrcon.errors import (
    AuthenticationError,
    ConnectionError,  # noqa: A004
    EncodingError,
    FramingError,
    ProtocolError,
)
from srcrcon.protocol import Packet, RequestType, ResponseType

if TYPE_CHECKING:
    from srcrcon.session import Session

log = logging.getLogger(__name__)


class CommandDispatcher:
    """Runs commands over a session, one exchange at a time."""

    def __init__(self, session: Session, *, drain: bool = True) -> None:
        self.session = session
        self.drain = drain

    def send_command(self, command: str) -> str:
        """Send a command and return the full response text.

        Logs in first if the session is not authenticated; a rejected
        password raises AuthenticationError.

        Uses a terminator probe for multi-packet responses: after the real
        command, an empty command with the next request id is sent. The
        server answers in order, so once the probe's response arrives every
        packet of the real response has been read.
        """
        body = _encode_body(command)

        with self.session.lock:
            logged_in = False
            if not self.session.is_authenticated:
                log.debug("Session not authenticated, logging in before command")
                self._login()
                logged_in = True

            transport = self.session.transport
            if self.drain:
                try:
                    transport.drain_pending()
                except ConnectionError:
                    # Nothing has been sent on this connection yet.
                    if logged_in:
                        raise
                    log.debug("Connection found dead before command, logging in")
                    self._login()
                    transport = self.session.transport
                    transport.drain_pending()

            request_id = self.session.next_request_id()
            probe_id = self.session.next_request_id()
            transport.write_packet(
                Packet(
                    request_id=request_id,
                    packet_type=RequestType.EXECCOMMAND,
                    body=body,
                )
            )
            transport.write_packet(
                Packet(
                    request_id=probe_id,
                    packet_type=RequestType.EXECCOMMAND,
                    body=b"",
                )
            )

            fragments = self._collect(request_id, probe_id)

        log.debug(
            "Command %d returned %d packet(s)", request_id, len(fragments)
        )
        return b"".join(fragments).decode("utf-8", errors="replace")

    def send_raw(self, request_id: int, packet_type: int, body: str | bytes) -> Packet:
        """Send one packet as given and return the next packet received.

        No login is attempted and no correlation is checked.
        """
        packet = Packet(
            request_id=request_id,
            packet_type=packet_type,
            body=_encode_body(body),
        )
        with self.session.lock:
            transport = self.session.transport
            transport.write_packet(packet)
            return transport.read_packet()

    def _login(self) -> None:
        if not self.session.authenticate():
            msg = "Authentication failed: incorrect RCON password"
            raise AuthenticationError(msg)

    def _collect(self, request_id: int, probe_id: int) -> list[bytes]:
        """Read RESPONSE_VALUE packets for request_id until the probe answers."""
        transport = self.session.transport
        fragments: list[bytes] = []
        while True:
            try:
                response = transport.read_packet()
            except ConnectionError as e:
                self.session.close()
                msg = f"Connection closed before response to request {request_id}"
                raise ProtocolError(msg) from e
            except FramingError:
                self.session.close()
                raise

            if response.packet_type != ResponseType.RESPONSE_VALUE:
                self.session.close()
                msg = (
                    f"Unexpected packet type {response.packet_type} "
                    f"in response to request {request_id}"
                )
                raise ProtocolError(msg)
            if response.request_id == probe_id:
                return fragments
            if response.request_id != request_id:
                self.session.close()
                msg = (
                    f"Response id {response.request_id} does not match "
                    f"request {request_id}"
                )
                raise ProtocolError(msg)
            fragments.append(response.body)


def _encode_body(body: str | bytes) -> bytes:
    """Turn a command body into bytes, rejecting embedded nulls up front."""
    data = body.encode("utf-8") if isinstance(body, str) else bytes(body)
    if b"\x00" in data:
        msg = "Packet body must not contain null bytes"
        raise EncodingError(msg)
    return data
