"""Framed byte transport over a blocking TCP socket."""

from __future__ import annotations

import contextlib
import logging
import socket
from typing import TYPE_CHECKING

from srcrcon.errors import ConnectionError, FramingError, TimeoutError  # noqa: A004
from srcrcon.protocol import SIZE_FIELD, Packet, parse_frame, read_size

if TYPE_CHECKING:
    from types import TracebackType

log = logging.getLogger(__name__)

_RECV_CHUNK = 4096


class FramedTransport:
    """Reads and writes exact byte counts on one TCP connection.

    Every read blocks on the socket (bounded by ``timeout``) instead of
    polling for available bytes. Any failure closes the socket, so a
    transport that raised is never reused.
    """

    def __init__(self, host: str, port: int, timeout: float | None = 10.0) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self._sock: socket.socket | None = None

    def __enter__(self) -> FramedTransport:
        if self._sock is None:
            self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def connected(self) -> bool:
        """Whether the transport has an open socket."""
        return self._sock is not None

    def open(self) -> None:
        """Establish the TCP connection."""
        if self._sock is not None:
            msg = f"Already connected to {self.host}:{self.port}"
            raise ConnectionError(msg)

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.settimeout(self.timeout)
            sock.connect((self.host, self.port))
        except OSError as e:
            with contextlib.suppress(OSError):
                sock.close()
            msg = f"Failed to connect to {self.host}:{self.port}: {e}"
            raise ConnectionError(msg) from e

        self._sock = sock
        log.debug("Connected to %s:%d", self.host, self.port)

    def close(self) -> None:
        """Close the TCP connection. Safe to call more than once."""
        if self._sock is not None:
            with contextlib.suppress(OSError):
                self._sock.close()
            self._sock = None
            log.debug("Closed connection to %s:%d", self.host, self.port)

    def write_all(self, data: bytes) -> None:
        """Send the whole buffer, looping over short writes."""
        sock = self._require_socket()
        try:
            sock.sendall(data)
        except socket.timeout as e:
            self.close()
            msg = f"Timed out sending to {self.host}:{self.port}"
            raise TimeoutError(msg) from e
        except OSError as e:
            self.close()
            msg = f"Failed to send data: {e}"
            raise ConnectionError(msg) from e

    def read_exact(self, num_bytes: int) -> bytes:
        """Read exactly num_bytes from the socket, handling partial reads."""
        sock = self._require_socket()

        data = bytearray()
        while len(data) < num_bytes:
            try:
                chunk = sock.recv(min(num_bytes - len(data), _RECV_CHUNK))
            except socket.timeout as e:
                self.close()
                msg = (
                    f"No data from {self.host}:{self.port} "
                    f"within {self.timeout} seconds"
                )
                raise TimeoutError(msg) from e
            except OSError as e:
                self.close()
                msg = f"Connection lost: {e}"
                raise ConnectionError(msg) from e

            if not chunk:
                self.close()
                msg = "Connection closed by server"
                raise ConnectionError(msg)

            data.extend(chunk)

        return bytes(data)

    def write_packet(self, packet: Packet) -> None:
        """Encode and send one packet."""
        self.write_all(packet.encode())

    def read_packet(self) -> Packet:
        """Receive a single packet from the socket.

        A closure between frames is a ConnectionError; a bad size or a
        closure inside a frame is a FramingError.
        """
        header = self.read_exact(SIZE_FIELD)
        try:
            size = read_size(header)
        except FramingError:
            self.close()
            raise

        try:
            frame = self.read_exact(size)
        except ConnectionError as e:
            msg = f"Stream ended inside a {size}-byte frame"
            raise FramingError(msg) from e
        return parse_frame(frame)

    def drain_pending(self) -> int:
        """Discard bytes already buffered from the peer without blocking.

        Returns the number of bytes thrown away.
        """
        sock = self._require_socket()
        discarded = 0
        sock.setblocking(False)
        try:
            while True:
                try:
                    chunk = sock.recv(_RECV_CHUNK)
                except (BlockingIOError, InterruptedError):
                    break
                except OSError as e:
                    self.close()
                    msg = f"Connection lost: {e}"
                    raise ConnectionError(msg) from e

                if not chunk:
                    self.close()
                    msg = "Connection closed by server"
                    raise ConnectionError(msg)
                discarded += len(chunk)
        finally:
            if self._sock is not None:
                self._sock.settimeout(self.timeout)

        if discarded:
            log.debug("Discarded %d unsolicited bytes", discarded)
        return discarded

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            msg = "Not connected"
            raise ConnectionError(msg)
        return self._sock
