"""
ASCII armor (RFC 4880 section 6).

Radix-64 lines of 64 characters framed by BEGIN/END lines, with a CRC-24
checksum line before the END line.
"""

import base64
import binascii
import io
from enum import StrEnum
from typing import BinaryIO

from crypto_openpgp.exceptions import MalformedInputError

CRC24_INIT = 0xB704CE
CRC24_POLY = 0x1864CFB

_LINE_BYTES = 48  # 64 base64 characters
_READ_SIZE = 8192


def _crc24_table() -> tuple[int, ...]:
    table = []
    for index in range(256):
        crc = index << 16
        for _ in range(8):
            crc <<= 1
            if crc & 0x1000000:
                crc ^= CRC24_POLY
        table.append(crc & 0xFFFFFF)
    return tuple(table)


_CRC24_TABLE = _crc24_table()


def crc24(data: bytes, crc: int = CRC24_INIT) -> int:
    """Update a CRC-24 with ``data``."""
    table = _CRC24_TABLE
    for byte in data:
        crc = ((crc << 8) & 0xFFFFFF) ^ table[((crc >> 16) ^ byte) & 0xFF]
    return crc


class ArmorLabel(StrEnum):
    MESSAGE = "PGP MESSAGE"
    PUBLIC_KEY_BLOCK = "PGP PUBLIC KEY BLOCK"
    PRIVATE_KEY_BLOCK = "PGP PRIVATE KEY BLOCK"


class ArmorEncoder:
    """Incremental armor encoder: feed binary data, collect armored text."""

    def __init__(self, label: ArmorLabel) -> None:
        self._label = label
        self._pending = b""
        self._crc = CRC24_INIT
        self._started = False

    def update(self, data: bytes) -> bytes:
        out = self._header()
        self._crc = crc24(data, self._crc)
        self._pending += data
        usable = len(self._pending) - len(self._pending) % _LINE_BYTES
        if usable:
            out += self._encode_lines(self._pending[:usable])
            self._pending = self._pending[usable:]
        return out

    def finalize(self) -> bytes:
        out = self._header()
        if self._pending:
            out += self._encode_lines(self._pending)
            self._pending = b""
        checksum = base64.b64encode(self._crc.to_bytes(3, "big"))
        return out + b"=" + checksum + b"\n-----END " + self._label.encode() + b"-----\n"

    def _header(self) -> bytes:
        if self._started:
            return b""
        self._started = True
        return b"-----BEGIN " + self._label.encode() + b"-----\n\n"

    @staticmethod
    def _encode_lines(data: bytes) -> bytes:
        return b"".join(
            base64.b64encode(data[i : i + _LINE_BYTES]) + b"\n"
            for i in range(0, len(data), _LINE_BYTES)
        )


class ArmorReader(io.RawIOBase):
    """
    Decodes one armored block from a binary stream.

    Text before the BEGIN line is skipped, as are armor headers. The CRC-24
    checksum, when present, is verified once the END line is reached.
    """

    def __init__(self, stream: BinaryIO) -> None:
        super().__init__()
        self._stream = stream
        self._buffer = b""
        self._decoded = b""
        self._base64 = b""
        self._crc = CRC24_INIT
        self._state = "begin"
        self.label: str | None = None

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: bytearray | memoryview) -> int:
        view = memoryview(buffer).cast("B")
        while not self._decoded and self._state != "done":
            self._advance()
        size = min(len(view), len(self._decoded))
        view[:size] = self._decoded[:size]
        self._decoded = self._decoded[size:]
        return size

    def _readline(self) -> bytes | None:
        while b"\n" not in self._buffer:
            chunk = self._stream.read(_READ_SIZE)
            if not chunk:
                if not self._buffer:
                    return None
                line, self._buffer = self._buffer, b""
                return line.strip()
            self._buffer += chunk
        line, _, self._buffer = self._buffer.partition(b"\n")
        return line.strip()

    def _advance(self) -> None:
        line = self._readline()
        if line is None:
            msg = f"Unexpected end of armored input (state={self._state})"
            raise MalformedInputError(msg)

        match self._state:
            case "begin":
                if line.startswith(b"-----BEGIN ") and line.endswith(b"-----"):
                    self.label = line[11:-5].decode("ascii", "replace")
                    self._state = "headers"
            case "headers":
                if not line:
                    self._state = "body"
                elif b":" not in line:
                    # Tolerate a missing blank line after the BEGIN line
                    self._state = "body"
                    self._body_line(line)
            case "body":
                self._body_line(line)

    def _body_line(self, line: bytes) -> None:
        if line.startswith(b"-----END "):
            self._flush(final=True)
            self._state = "done"
        elif line.startswith(b"=") and len(line) == 5:
            self._flush(final=True)
            self._check_crc(line[1:])
        elif line:
            self._base64 += line
            self._flush(final=False)

    def _flush(self, *, final: bool) -> None:
        usable = len(self._base64) if final else len(self._base64) - len(self._base64) % 4
        if not usable:
            return
        try:
            data = base64.b64decode(self._base64[:usable], validate=True)
        except binascii.Error as e:
            msg = "Invalid base64 in armored input"
            raise MalformedInputError(msg) from e
        self._base64 = self._base64[usable:]
        self._crc = crc24(data, self._crc)
        self._decoded += data

    def _check_crc(self, encoded: bytes) -> None:
        try:
            expected = int.from_bytes(base64.b64decode(encoded, validate=True), "big")
        except binascii.Error as e:
            msg = "Invalid armor checksum line"
            raise MalformedInputError(msg) from e
        if expected != self._crc:
            msg = f"Armor checksum mismatch: expected {expected:06x}, computed {self._crc:06x}"
            raise MalformedInputError(msg)


def dearmor(data: bytes) -> bytes:
    """Decode a complete armored buffer."""
    return ArmorReader(io.BytesIO(data)).read()
