"""Source RCON wire protocol encoding and decoding."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

from srcrcon.errors import EncodingError, FramingError

if TYPE_CHECKING:
    from collections.abc import Callable


class RequestType(IntEnum):
    """Packet types sent by the client."""

    EXECCOMMAND = 2
    AUTH = 3


class ResponseType(IntEnum):
    """Packet types sent by the server.

    AUTH_RESPONSE shares its value with RequestType.EXECCOMMAND, so the two
    are kept in separate enums and told apart by direction only.
    """

    RESPONSE_VALUE = 0
    AUTH_RESPONSE = 2


# 4 bytes for the size prefix
SIZE_FIELD = 4
# id + type + the two terminating nulls
MIN_PACKET_SIZE = 10
# Source servers split bodies at 4096 bytes; the rest is headroom for other
# servers speaking the protocol. Larger declared sizes are treated as corrupt.
MAX_PACKET_SIZE = 65536

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_TERMINATOR = b"\x00\x00"


@dataclass(frozen=True)
class Packet:
    """A single RCON packet.

    Wire format: [size:i32][request_id:i32][type:i32][body\\0\\0]
    Size covers everything after itself (request_id + type + body + 2 nulls).
    """

    request_id: int
    packet_type: int
    body: bytes = b""

    @property
    def size(self) -> int:
        """The value of the size field this packet carries on the wire."""
        return MIN_PACKET_SIZE + len(self.body)

    @property
    def text(self) -> str:
        """The body decoded as UTF-8."""
        return self.body.decode("utf-8", errors="replace")

    def encode(self) -> bytes:
        """Encode the packet into bytes for transmission."""
        return encode_packet(self.request_id, self.packet_type, self.body)


def encode_packet(request_id: int, packet_type: int, body: str | bytes) -> bytes:
    """Encode one packet, size prefix included.

    Raises EncodingError if the body contains a null byte or a header field
    does not fit in a signed 32-bit integer.
    """
    body_bytes = body.encode("utf-8") if isinstance(body, str) else bytes(body)
    if b"\x00" in body_bytes:
        msg = "Packet body must not contain null bytes"
        raise EncodingError(msg)
    for name, value in (("request_id", request_id), ("packet_type", packet_type)):
        if not _INT32_MIN <= value <= _INT32_MAX:
            msg = f"{name} {value} does not fit in a signed 32-bit integer"
            raise EncodingError(msg)

    payload = body_bytes + _TERMINATOR
    return struct.pack(
        f"<iii{len(payload)}s",
        MIN_PACKET_SIZE + len(body_bytes),
        request_id,
        packet_type,
        payload,
    )


def read_size(header: bytes) -> int:
    """Parse and validate the 4-byte size prefix of a frame."""
    if len(header) != SIZE_FIELD:
        msg = f"Truncated size field: got {len(header)} of {SIZE_FIELD} bytes"
        raise FramingError(msg)
    (size,) = struct.unpack("<i", header)
    if size < MIN_PACKET_SIZE:
        msg = f"Declared packet size {size} is below the minimum of {MIN_PACKET_SIZE}"
        raise FramingError(msg)
    if size > MAX_PACKET_SIZE:
        msg = f"Declared packet size {size} exceeds the maximum of {MAX_PACKET_SIZE}"
        raise FramingError(msg)
    return size


def parse_frame(frame: bytes) -> Packet:
    """Decode a packet from a complete frame (excluding the size prefix).

    The caller is responsible for reading exactly the declared number of
    bytes before passing them here; the two trailing nulls are dropped.
    """
    if len(frame) < MIN_PACKET_SIZE:
        msg = f"Frame of {len(frame)} bytes is shorter than {MIN_PACKET_SIZE}"
        raise FramingError(msg)
    request_id, packet_type = struct.unpack_from("<ii", frame, 0)
    return Packet(
        request_id=request_id,
        packet_type=packet_type,
        body=bytes(frame[8:-2]),
    )


def decode_packet(read: Callable[[int], bytes]) -> Packet:
    """Read exactly one framed packet from ``read``.

    ``read(n)`` must return up to ``n`` bytes, fewer only once the stream
    has ended. The whole declared frame is consumed before it is parsed.
    """
    size = read_size(_read_fully(read, SIZE_FIELD))
    frame = _read_fully(read, size)
    if len(frame) < size:
        msg = f"Stream ended after {len(frame)} of {size} frame bytes"
        raise FramingError(msg)
    return parse_frame(frame)


def _read_fully(read: Callable[[int], bytes], num_bytes: int) -> bytes:
    """Call read until num_bytes are collected or it returns nothing."""
    data = bytearray()
    while len(data) < num_bytes:
        chunk = read(num_bytes - len(data))
        if not chunk:
            break
        data.extend(chunk)
    return bytes(data)
