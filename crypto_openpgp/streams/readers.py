"""
Readable pipeline layers.

The decrypting and decompressing readers expose the inner packet stream of
an encrypted message; PlaintextReader exposes the literal payload and runs
all deferred checks (MDC, signatures, inner corruption) when closed.
"""

import bz2
import io
import zlib
from collections.abc import Iterable, Mapping
from typing import Any, BinaryIO

import structlog
from pgpy import PGPKey, PGPSignature
from pgpy.constants import CompressionAlgorithm, HashAlgorithm, PacketTag
from pgpy.packet.packets import OnePassSignatureV3

from crypto_openpgp.crypto.signatures import new_hash, parse_signature, verify_document
from crypto_openpgp.exceptions import (
    CryptoError,
    IntegrityError,
    MalformedInputError,
    SignatureError,
    UnsupportedAlgorithmError,
)
from crypto_openpgp.models.crypto import SEIPD_VERSION, SessionKey
from crypto_openpgp.models.tags import Requirement
from crypto_openpgp.streams.cfb import (
    MDC_HEADER,
    MDC_PACKET_SIZE,
    OpenPGPCFBDecryptor,
    new_mdc_hash,
)
from crypto_openpgp.streams.packets import PacketBodyReader, PacketReader, encode_packet

logger = structlog.get_logger(__name__)

_READ_SIZE = 65536


class _ReaderBase(io.RawIOBase):
    """Buffer plumbing shared by the readers: subclasses refill ``_pending``."""

    def __init__(self) -> None:
        super().__init__()
        self._pending = b""
        self._eof = False

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: bytearray | memoryview) -> int:
        view = memoryview(buffer).cast("B")
        while not self._pending and not self._eof:
            self._fill()
        size = min(len(view), len(self._pending))
        view[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    def _fill(self) -> None:
        raise NotImplementedError

    def drain(self) -> None:
        while self.read(_READ_SIZE):
            pass


class PrefixedReader(io.RawIOBase):
    """Replays bytes already consumed (for format sniffing) before the stream."""

    def __init__(self, prefix: bytes, stream: BinaryIO) -> None:
        super().__init__()
        self._prefix = prefix
        self._stream = stream

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: bytearray | memoryview) -> int:
        view = memoryview(buffer).cast("B")
        if self._prefix:
            size = min(len(view), len(self._prefix))
            view[:size] = self._prefix[:size]
            self._prefix = self._prefix[size:]
            return size
        data = self._stream.read(len(view))
        if not data:
            return 0
        view[: len(data)] = data
        return len(data)


class DecryptingReader(_ReaderBase):
    """
    Decrypts an SEIPD or SED packet body.

    For SEIPD the last 22 plaintext octets are held back as the MDC packet
    candidate; ``mdc_valid`` is set once the body is exhausted. Reading never
    raises on an MDC mismatch: the result is checked at close by
    PlaintextReader.

    Raises:
        AuthenticationError: From the constructor, if the quick check fails.
    """

    def __init__(
        self, body: PacketBodyReader, session_key: SessionKey, *, integrity: bool
    ) -> None:
        super().__init__()
        self._body = body
        self.integrity_protected = integrity
        self.mdc_valid: bool | None = None
        self._holdback = b""

        if integrity:
            version = body.read(1)
            if version != bytes([SEIPD_VERSION]):
                msg = f"Unsupported encrypted data version: {version.hex()}"
                raise MalformedInputError(msg)
        self._decryptor = OpenPGPCFBDecryptor(
            session_key.algorithm,
            session_key.key_data,
            resync=not integrity,
        )
        self._mdc: Any = None
        # Decrypt the prefix right away so a wrong key fails here
        while self._decryptor.prefix is None and not self._eof:
            self._fill()

    def _fill(self) -> None:
        chunk = self._body.read(_READ_SIZE)
        if chunk:
            plain = self._decryptor.update(chunk)
        else:
            self._eof = True
            plain = self._decryptor.finalize()

        if self._mdc is None and self._decryptor.prefix is not None and self.integrity_protected:
            self._mdc = new_mdc_hash(self._decryptor.prefix)

        if not self.integrity_protected:
            self._pending += plain
            return

        data = self._holdback + plain
        if self._eof:
            self._pending += data[:-MDC_PACKET_SIZE]
            self._mdc.update(data[:-MDC_PACKET_SIZE])
            self._check_mdc(data[-MDC_PACKET_SIZE:])
        else:
            cut = max(0, len(data) - MDC_PACKET_SIZE)
            self._pending += data[:cut]
            if self._mdc is not None:
                self._mdc.update(data[:cut])
            self._holdback = data[cut:]

    def _check_mdc(self, packet: bytes) -> None:
        if len(packet) != MDC_PACKET_SIZE or packet[:2] != MDC_HEADER:
            self.mdc_valid = False
            return
        self._mdc.update(MDC_HEADER)
        self.mdc_valid = self._mdc.digest() == packet[2:]


class DecompressingReader(_ReaderBase):
    """
    Inflates a compressed data packet body.

    Undecodable data raises IntegrityError: the stream sits inside the
    encrypted envelope, so corruption there means tampering.
    """

    def __init__(self, body: BinaryIO, algorithm: CompressionAlgorithm) -> None:
        super().__init__()
        self._body = body
        match algorithm:
            case CompressionAlgorithm.Uncompressed:
                self._decompressor: Any = None
            case CompressionAlgorithm.ZIP:
                self._decompressor = zlib.decompressobj(wbits=-15)
            case CompressionAlgorithm.ZLIB:
                self._decompressor = zlib.decompressobj()
            case CompressionAlgorithm.BZ2:
                self._decompressor = bz2.BZ2Decompressor()

    def _fill(self) -> None:
        chunk = self._body.read(_READ_SIZE)
        if self._decompressor is None:
            self._eof = not chunk
            self._pending += chunk
            return
        if not chunk:
            self._eof = True
            if not self._decompressor.eof:
                msg = "Compressed data is truncated"
                raise IntegrityError(msg)
            return
        try:
            self._pending += self._decompressor.decompress(chunk)
        except (zlib.error, OSError, EOFError) as e:
            msg = f"Compressed data is corrupt: {e}"
            raise IntegrityError(msg) from e


def decompressor_for(body: PacketBodyReader) -> DecompressingReader:
    """Open a compressed data packet body (first octet names the algorithm)."""
    algorithm_octet = body.read(1)
    try:
        algorithm = CompressionAlgorithm(algorithm_octet[0])
    except (IndexError, ValueError):
        msg = f"Unknown compression algorithm: {algorithm_octet.hex()}"
        raise UnsupportedAlgorithmError(msg, algorithm=algorithm_octet) from None
    return DecompressingReader(body, algorithm)


class _SignatureCheck:
    """Hash state for one signature expected over the literal payload."""

    def __init__(self, hash_algorithm: HashAlgorithm, key_id: str) -> None:
        self.key_id = key_id
        self.context = new_hash(hash_algorithm)


class PlaintextReader(_ReaderBase):
    """
    The literal payload of a decrypted message.

    Attributes:
        filename: Literal data file name.
        date: Literal data modification date (seconds since the epoch).
        integrity_protected: Whether the message carried an MDC.
        signatures: Signatures found after the payload (set on close).
    """

    def __init__(
        self,
        literal: PacketBodyReader,
        *,
        filename: str,
        date: int,
        packets: PacketReader,
        decryptor: DecryptingReader,
        one_pass: Iterable[OnePassSignatureV3] = (),
        leading_signatures: Iterable[PGPSignature] = (),
        senders: Mapping[str, PGPKey] | None = None,
        required: Iterable[Requirement] = (),
    ) -> None:
        super().__init__()
        self.filename = filename
        self.date = date
        self.integrity_protected = decryptor.integrity_protected
        self.signatures: tuple[PGPSignature, ...] = ()
        self._literal = literal
        self._packets = packets
        self._decryptor = decryptor
        self._senders = dict(senders or {})
        self._required = frozenset(required)
        self._leading = tuple(leading_signatures)
        self._checks: list[_SignatureCheck] = []
        self._corruption: Exception | None = None

        for packet in one_pass:
            self._add_check(packet.halg, packet.signer)
        for signature in self._leading:
            self._add_check(signature.hash_algorithm, signature.signer or "")

    def _add_check(self, hash_algorithm: HashAlgorithm, key_id: str) -> None:
        try:
            self._checks.append(_SignatureCheck(hash_algorithm, key_id))
        except UnsupportedAlgorithmError:
            logger.warning("Cannot hash for signature", key_id=key_id, hash=str(hash_algorithm))

    def _fill(self) -> None:
        if self._corruption is not None:
            self._eof = True
            return
        try:
            chunk = self._literal.read(_READ_SIZE)
        except CryptoError as e:
            # Reported by close()
            self._corruption = e
            chunk = b""
        if not chunk:
            self._eof = True
            return
        for check in self._checks:
            check.context.update(chunk)
        self._pending += chunk

    def close(self) -> None:
        """
        Drain the message and run the deferred checks.

        Raises:
            IntegrityError: On an MDC mismatch, inner corruption, or a missing
                MDC when integrity is required.
            SignatureError: On a bad signature from a known sender, or when a
                signature requirement is not met.
        """
        if self.closed:
            return
        try:
            self._finish()
        finally:
            super().close()

    def __del__(self) -> None:
        # Never verify from a finalizer
        pass

    def _finish(self) -> None:
        self.drain()
        trailing = self._read_trailing()
        if self._corruption is None:
            try:
                self._decryptor.drain()
            except CryptoError as e:
                self._corruption = e

        if self._corruption is not None:
            msg = f"Encrypted message is corrupt: {self._corruption}"
            raise IntegrityError(msg) from self._corruption
        self._check_integrity()
        self.signatures = self._leading + trailing
        self._check_signatures(trailing)

    def _read_trailing(self) -> tuple[PGPSignature, ...]:
        signatures = []
        if self._corruption is not None:
            return ()
        try:
            for packet in self._packets:
                if packet.tag == PacketTag.Signature:
                    encoded = encode_packet(packet.tag, packet.read_body())
                    signatures.append(parse_signature(encoded))
        except CryptoError as e:
            self._corruption = e
        return tuple(signatures)

    def _check_integrity(self) -> None:
        if self._decryptor.mdc_valid is False:
            msg = "Modification detection code mismatch"
            raise IntegrityError(msg)
        if not self.integrity_protected:
            if Requirement.INTEGRITY in self._required:
                msg = "Message is not integrity protected"
                raise IntegrityError(msg)
            logger.warning("Message has no modification detection code")

    def _check_signatures(self, trailing: tuple[PGPSignature, ...]) -> None:
        # One-pass signatures pair with trailing ones in reverse order
        expected = len(self._checks) - len(self._leading)
        if len(trailing) != expected:
            msg = f"Expected {expected} trailing signatures, found {len(trailing)}"
            raise SignatureError(msg)
        pairs = list(zip(self._leading, self._checks[expected:], strict=True))
        pairs += list(zip(reversed(trailing), self._checks[:expected], strict=True))

        if not pairs and self._required & {Requirement.SIGNED, Requirement.VERIFIED}:
            msg = "Message is not signed"
            raise SignatureError(msg)

        for signature, check in pairs:
            key_id = signature.signer or check.key_id
            key = self._senders.get(key_id)
            if key is None:
                if Requirement.VERIFIED in self._required:
                    msg = "Signature from an unknown key"
                    raise SignatureError(msg, key_id=key_id)
                logger.warning("Cannot verify signature from unknown key", key_id=key_id)
                continue
            if not verify_document(key, signature, check.context):
                msg = "Bad signature"
                raise SignatureError(msg, key_id=key_id)
            logger.debug("Verified message signature", key_id=key_id)
