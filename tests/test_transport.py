"""Tests for the framed socket transport."""

import struct
from unittest.mock import MagicMock, patch

import pytest

from srcrcon.errors import ConnectionError, FramingError, TimeoutError
from srcrcon.protocol import Packet, ResponseType, encode_packet
from srcrcon.transport import FramedTransport


def _connected(server, **kwargs) -> FramedTransport:
    transport = FramedTransport("localhost", 27015, **kwargs)
    transport.open()
    return transport


class TestOpenClose:
    def test_open_success(self, server):
        transport = _connected(server)

        assert transport.connected
        assert server.last_socket.address == ("localhost", 27015)
        assert server.last_socket.timeout == 10.0

    def test_open_failure_closes_socket(self, server):
        server.refuse = True
        transport = FramedTransport("localhost", 27015)

        with pytest.raises(ConnectionError, match="Connection refused"):
            transport.open()

        assert not transport.connected
        assert server.last_socket.closed

    def test_open_twice(self, server):
        transport = _connected(server)
        with pytest.raises(ConnectionError, match="Already connected"):
            transport.open()

    def test_close_is_idempotent(self, server):
        transport = _connected(server)
        transport.close()
        transport.close()

        assert not transport.connected
        assert server.last_socket.closed

    def test_context_manager(self, server):
        with FramedTransport("localhost", 27015, timeout=3.0) as transport:
            assert transport.connected
            assert server.last_socket.timeout == 3.0
        assert not transport.connected

    def test_not_connected(self):
        transport = FramedTransport("localhost", 27015)
        with pytest.raises(ConnectionError, match="Not connected"):
            transport.read_exact(4)

    def test_uses_real_socket_module(self):
        with patch("srcrcon.transport.socket.socket") as mock_socket_cls:
            mock_sock = MagicMock()
            mock_socket_cls.return_value = mock_sock

            transport = FramedTransport("10.0.0.5", 27016, timeout=None)
            transport.open()

            mock_sock.settimeout.assert_called_once_with(None)
            mock_sock.connect.assert_called_once_with(("10.0.0.5", 27016))


class TestReadExact:
    def test_partial_reads(self, server):
        server.chunk_sizes = [4, 6, 4]
        transport = _connected(server)
        sock = server.last_socket
        sock.feed(Packet(5, ResponseType.RESPONSE_VALUE).encode())

        packet = transport.read_packet()

        assert packet == Packet(5, ResponseType.RESPONSE_VALUE, b"")
        assert sock.recv_calls == 3

    def test_closed_by_server(self, server):
        transport = _connected(server)

        with pytest.raises(ConnectionError, match="Connection closed by server"):
            transport.read_exact(4)
        assert not transport.connected

    def test_timeout(self, server):
        server.stall = True
        transport = _connected(server, timeout=0.5)

        with pytest.raises(TimeoutError, match="0.5 seconds"):
            transport.read_exact(4)
        assert not transport.connected

    def test_socket_error(self, server):
        transport = _connected(server)
        server.last_socket.recv = MagicMock(side_effect=ConnectionResetError("reset"))

        with pytest.raises(ConnectionError, match="Connection lost"):
            transport.read_exact(4)
        assert not transport.connected


class TestReadPacket:
    def test_two_packets_in_one_burst(self, server):
        transport = _connected(server)
        server.last_socket.feed(
            encode_packet(1, ResponseType.RESPONSE_VALUE, "one")
            + encode_packet(1, ResponseType.RESPONSE_VALUE, "two")
        )

        assert transport.read_packet().text == "one"
        assert transport.read_packet().text == "two"

    def test_bad_size_closes(self, server):
        transport = _connected(server)
        server.last_socket.feed(b"\x03\x00\x00\x00garbage")

        with pytest.raises(FramingError):
            transport.read_packet()
        assert not transport.connected

    def test_oversized_frame_rejected_before_reading(self, server):
        transport = _connected(server)
        sock = server.last_socket
        sock.feed(struct.pack("<i", 2**31 - 1) + b"\x00" * 64)

        with pytest.raises(FramingError, match="exceeds the maximum"):
            transport.read_packet()
        assert sock.recv_calls == 1
        assert not transport.connected

    def test_recv_size_is_bounded(self, server):
        transport = _connected(server)
        sock = server.last_socket
        sizes = []
        original_recv = sock.recv

        def recording_recv(num_bytes):
            sizes.append(num_bytes)
            return original_recv(num_bytes)

        sock.recv = recording_recv
        sock.feed(encode_packet(1, ResponseType.RESPONSE_VALUE, "x" * 20000))

        assert len(transport.read_packet().body) == 20000
        assert max(sizes) <= 4096

    def test_closed_inside_frame(self, server):
        transport = _connected(server)
        server.last_socket.feed(encode_packet(1, ResponseType.RESPONSE_VALUE, "abc")[:-3])

        with pytest.raises(FramingError, match="inside a 13-byte frame"):
            transport.read_packet()
        assert not transport.connected


class TestWrite:
    def test_write_packet(self, server):
        transport = _connected(server)
        transport.write_packet(Packet(3, 2, b"status"))

        assert server.received == [Packet(3, 2, b"status")]

    def test_write_failure(self, server):
        transport = _connected(server)
        server.fail_send = True

        with pytest.raises(ConnectionError, match="Failed to send"):
            transport.write_all(b"\x0a\x00\x00\x00")
        assert not transport.connected


class TestDrainPending:
    def test_discards_buffered_bytes(self, server):
        transport = _connected(server, timeout=5.0)
        sock = server.last_socket
        sock.feed(encode_packet(0, ResponseType.RESPONSE_VALUE, "unsolicited"))

        discarded = transport.drain_pending()

        assert discarded == 14 + len("unsolicited")
        assert sock.blocking
        assert sock.timeout == 5.0
        assert transport.connected

    def test_nothing_pending(self, server):
        transport = _connected(server)
        assert transport.drain_pending() == 0
        assert transport.connected

    def test_peer_closed(self, server):
        transport = _connected(server)
        sock = server.last_socket
        sock.recv = MagicMock(return_value=b"")

        with pytest.raises(ConnectionError, match="closed by server"):
            transport.drain_pending()
        assert not transport.connected
