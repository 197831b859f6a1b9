"""Shared fixtures: an in-memory RCON server behind a fake socket."""

from __future__ import annotations

import socket
import struct

import pytest

from srcrcon.protocol import Packet, RequestType, ResponseType, parse_frame


class FakeSocket:
    """Socket double wired to a FakeServer.

    Bytes written with sendall are parsed into packets and answered by the
    server; recv hands the replies back, optionally in scripted chunk sizes.
    """

    def __init__(self, server: FakeServer) -> None:
        self.server = server
        self.address: tuple[str, int] | None = None
        self.timeout: float | None = None
        self.blocking = True
        self.closed = False
        self.chunk_sizes: list[int] = list(server.chunk_sizes)
        self.recv_calls = 0
        self._inbuf = bytearray()
        self._outbuf = bytearray()

    def settimeout(self, timeout: float | None) -> None:
        self.timeout = timeout
        self.blocking = True

    def setblocking(self, flag: bool) -> None:
        self.blocking = flag

    def connect(self, address: tuple[str, int]) -> None:
        if self.server.refuse:
            raise ConnectionRefusedError(111, "Connection refused")
        self.address = address

    def feed(self, data: bytes) -> None:
        """Queue bytes as if the server had pushed them unprompted."""
        self._inbuf.extend(data)

    def sendall(self, data: bytes) -> None:
        if self.closed:
            raise OSError(9, "Bad file descriptor")
        if self.server.fail_send:
            raise BrokenPipeError(32, "Broken pipe")
        self._outbuf.extend(data)
        while len(self._outbuf) >= 4:
            (size,) = struct.unpack_from("<i", self._outbuf, 0)
            if len(self._outbuf) < 4 + size:
                break
            packet = parse_frame(bytes(self._outbuf[4 : 4 + size]))
            del self._outbuf[: 4 + size]
            self.server.received.append(packet)
            for reply in self.server.handle(packet):
                self._inbuf.extend(reply.encode() if isinstance(reply, Packet) else reply)

    def recv(self, num_bytes: int) -> bytes:
        if self.closed:
            raise OSError(9, "Bad file descriptor")
        self.recv_calls += 1
        if not self._inbuf:
            if not self.blocking:
                raise BlockingIOError(11, "Resource temporarily unavailable")
            if self.server.stall:
                raise socket.timeout("timed out")
            return b""
        if self.chunk_sizes:
            num_bytes = min(num_bytes, self.chunk_sizes.pop(0))
        chunk = bytes(self._inbuf[:num_bytes])
        del self._inbuf[:num_bytes]
        return chunk

    def close(self) -> None:
        self.closed = True


class FakeServer:
    """Scripted Source RCON server.

    Answers AUTH like a Source dedicated server (an empty RESPONSE_VALUE
    followed by the AUTH_RESPONSE) and EXECCOMMAND from ``responses``,
    one RESPONSE_VALUE per listed body. Unknown commands get one empty
    response. ``handler`` replaces this behavior entirely.
    """

    def __init__(self, password: str = "secret") -> None:
        self.password = password
        self.responses: dict[str, list[str]] = {}
        self.handler = None
        self.auth_prelude = True
        self.refuse = False
        self.fail_send = False
        self.stall = False
        self.chunk_sizes: list[int] = []
        self.received: list[Packet] = []
        self.sockets: list[FakeSocket] = []

    def socket(self, *_args, **_kwargs) -> FakeSocket:
        sock = FakeSocket(self)
        self.sockets.append(sock)
        return sock

    @property
    def last_socket(self) -> FakeSocket:
        return self.sockets[-1]

    def commands(self) -> list[str]:
        """Bodies of every EXECCOMMAND received, probes included."""
        return [
            p.text for p in self.received if p.packet_type == RequestType.EXECCOMMAND
        ]

    def handle(self, packet: Packet) -> list[Packet | bytes]:
        if self.handler is not None:
            return self.handler(packet)

        if packet.packet_type == RequestType.AUTH:
            if packet.text != self.password:
                return [Packet(-1, ResponseType.AUTH_RESPONSE)]
            replies: list[Packet | bytes] = []
            if self.auth_prelude:
                replies.append(Packet(packet.request_id, ResponseType.RESPONSE_VALUE))
            replies.append(Packet(packet.request_id, ResponseType.AUTH_RESPONSE))
            return replies

        bodies = self.responses.get(packet.text, [""])
        return [
            Packet(packet.request_id, ResponseType.RESPONSE_VALUE, body.encode("utf-8"))
            for body in bodies
        ]


@pytest.fixture
def server(monkeypatch):
    """A FakeServer that every socket opened by the transport connects to."""
    fake = FakeServer()
    monkeypatch.setattr("srcrcon.transport.socket.socket", fake.socket)
    return fake
