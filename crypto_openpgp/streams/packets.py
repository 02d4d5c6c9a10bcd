"""
OpenPGP packet framing.

Header and length encoding/decoding for old- and new-format packets,
partial body lengths and a streaming reader that exposes each packet
body as a file-like object.
"""

import io
from collections.abc import Iterator
from dataclasses import dataclass
from typing import BinaryIO

from crypto_openpgp.exceptions import MalformedInputError

_MAX_PARTIAL_EXPONENT = 30


def encode_length(length: int) -> bytes:
    """Encode a new-format definite body length."""
    if length < 192:
        return bytes([length])
    if length < 8384:
        length -= 192
        return bytes([(length >> 8) + 192, length & 0xFF])
    return b"\xff" + length.to_bytes(4, "big")


def encode_partial_length(chunk_size: int) -> bytes:
    """Encode a partial body length octet; ``chunk_size`` must be a power of two."""
    exponent = chunk_size.bit_length() - 1
    if chunk_size != 1 << exponent or exponent > _MAX_PARTIAL_EXPONENT:
        msg = f"Partial body length must be a power of two up to 2^30, got {chunk_size}"
        raise ValueError(msg)
    return bytes([0xE0 | exponent])


def encode_header(tag: int, length: int) -> bytes:
    """Encode a new-format packet header with a definite length."""
    return bytes([0xC0 | tag]) + encode_length(length)


def encode_packet(tag: int, body: bytes) -> bytes:
    return encode_header(tag, len(body)) + body


def read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read exactly ``size`` bytes, tolerating short reads from raw streams."""
    data = b""
    while len(data) < size:
        chunk = stream.read(size - len(data))
        if not chunk:
            msg = f"Unexpected end of input: expected {size} bytes, got {len(data)}"
            raise MalformedInputError(msg)
        data += chunk
    return data


def _parse_new_format_length(stream: BinaryIO) -> tuple[int, bool]:
    first_byte = read_exact(stream, 1)[0]

    if first_byte < 192:
        return first_byte, False

    if first_byte < 224:
        second_byte = read_exact(stream, 1)[0]
        return ((first_byte - 192) << 8) + second_byte + 192, False

    if first_byte == 255:
        return int.from_bytes(read_exact(stream, 4), "big"), False

    return 1 << (first_byte & 0x1F), True


def _parse_old_format_length(stream: BinaryIO, length_type: int) -> int | None:
    if length_type == 0:
        return read_exact(stream, 1)[0]
    if length_type == 1:
        return int.from_bytes(read_exact(stream, 2), "big")
    if length_type == 2:
        return int.from_bytes(read_exact(stream, 4), "big")
    return None


class PacketBodyReader(io.RawIOBase):
    """
    Reads one packet body from an underlying stream.

    Handles definite lengths, new-format partial body chunks and old-format
    indeterminate length (body runs to end of input).
    """

    def __init__(self, stream: BinaryIO, length: int | None, partial: bool) -> None:
        super().__init__()
        self._stream = stream
        self._remaining = length
        self._partial = partial
        self._eof = False

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: bytearray | memoryview) -> int:
        view = memoryview(buffer).cast("B")
        while not self._eof:
            if self._remaining is None:
                data = self._stream.read(len(view))
                if not data:
                    self._eof = True
                    return 0
                view[: len(data)] = data
                return len(data)

            if self._remaining == 0:
                if not self._partial:
                    self._eof = True
                    return 0
                self._remaining, self._partial = _parse_new_format_length(self._stream)
                continue

            data = self._stream.read(min(len(view), self._remaining))
            if not data:
                msg = "Unexpected end of input inside packet body"
                raise MalformedInputError(msg)
            self._remaining -= len(data)
            view[: len(data)] = data
            return len(data)
        return 0

    def drain(self) -> None:
        """Skip the rest of the body."""
        while self.read(65536):
            pass


@dataclass(frozen=True)
class Packet:
    """A packet header with its (unread) body."""

    tag: int
    body: PacketBodyReader

    def read_body(self) -> bytes:
        return self.body.read()


class PacketReader:
    """
    Iterates packets from a binary stream.

    Each packet body must be consumed or drained before the next packet is
    requested; ``next_packet`` drains the previous body itself.
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._current: Packet | None = None

    def next_packet(self) -> Packet | None:
        """
        Return the next packet, or None at a clean end of input.

        Raises:
            MalformedInputError: If the header is invalid or truncated.
        """
        if self._current is not None:
            self._current.body.drain()
            self._current = None

        first = self._stream.read(1)
        if not first:
            return None

        first_byte = first[0]
        if (first_byte & 0x80) == 0:
            msg = f"Invalid packet header: 0x{first_byte:02x}"
            raise MalformedInputError(msg)

        if first_byte & 0x40:
            tag = first_byte & 0x3F
            length, partial = _parse_new_format_length(self._stream)
            body = PacketBodyReader(self._stream, length, partial)
        else:
            tag = (first_byte & 0x3C) >> 2
            length_or_none = _parse_old_format_length(self._stream, first_byte & 0x03)
            body = PacketBodyReader(self._stream, length_or_none, False)

        if tag == 0:
            msg = "Packet tag must not be 0"
            raise MalformedInputError(msg)

        self._current = Packet(tag=tag, body=body)
        return self._current

    def __iter__(self) -> Iterator[Packet]:
        while (packet := self.next_packet()) is not None:
            yield packet


def iter_packets(data: bytes) -> Iterator[tuple[int, bytes]]:
    """Yield (tag, body) for every packet in an in-memory buffer."""
    for packet in PacketReader(io.BytesIO(data)):
        yield packet.tag, packet.read_body()
