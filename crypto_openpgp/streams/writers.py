"""
Writable pipeline layers.

Every layer wraps the layer beneath it. Closing a layer finishes it (writes
its trailer), then closes the wrapped layer; the outermost layer never
closes the caller's sink. A layer that failed, or that is left through an
exception in a ``with`` block, is abandoned: the chain is closed without
writing any trailer, leaving deliberately truncated output.
"""

import bz2
import io
import zlib
from collections.abc import Callable
from types import TracebackType
from typing import Any, BinaryIO

import structlog
from pgpy.constants import CompressionAlgorithm, PacketTag

from crypto_openpgp.crypto.signatures import DocumentSigner
from crypto_openpgp.models.crypto import SEIPD_VERSION, SessionKey
from crypto_openpgp.streams.armor import ArmorEncoder, ArmorLabel
from crypto_openpgp.streams.cfb import MDC_HEADER, OpenPGPCFBEncryptor, new_mdc_hash
from crypto_openpgp.streams.packets import encode_length, encode_partial_length

logger = structlog.get_logger(__name__)

_BINARY_FORMAT = b"b"


def write_all(stream: BinaryIO, data: bytes) -> None:
    view = memoryview(data)
    while view:
        written = stream.write(view)
        view = view[len(view) if written is None else written :]


class LayerWriter(io.RawIOBase):
    """
    Base class for a pipeline layer.

    Subclasses implement ``_write`` and ``_finish``; ``_emit`` forwards bytes
    to the wrapped layer.
    """

    def __init__(self, wrapped: BinaryIO, *, owns_wrapped: bool = True) -> None:
        super().__init__()
        self._wrapped = wrapped
        self._owns_wrapped = owns_wrapped
        self._failed = False

    def writable(self) -> bool:
        return True

    def write(self, data: Any) -> int:
        if self.closed:
            raise ValueError("write to closed pipeline layer")
        data = bytes(data)
        try:
            self._write(data)
        except Exception:
            self._failed = True
            raise
        return len(data)

    def _write(self, data: bytes) -> None:
        self._emit(data)

    def _finish(self) -> None:
        """Write this layer's trailer."""

    def _emit(self, data: bytes) -> None:
        if data:
            write_all(self._wrapped, data)

    def abandon(self) -> None:
        """Close the chain without writing any trailer."""
        self._failed = True
        self.close()

    def close(self) -> None:
        """Finish this layer, then close the wrapped layer. Runs once."""
        if self.closed:
            return
        finished = False
        try:
            if not self._failed:
                self._finish()
                finished = True
        except Exception:
            self._failed = True
            raise
        finally:
            super().close()
            self._close_wrapped(abandon=not finished)

    def _close_wrapped(self, *, abandon: bool) -> None:
        if not self._owns_wrapped:
            return
        if abandon and isinstance(self._wrapped, LayerWriter):
            self._wrapped.abandon()
        else:
            self._wrapped.close()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.abandon()
        else:
            self.close()

    def __del__(self) -> None:
        # Garbage collection never finishes a pipeline
        self._failed = True


class ArmorWriter(LayerWriter):
    def __init__(
        self,
        wrapped: BinaryIO,
        label: ArmorLabel = ArmorLabel.MESSAGE,
        *,
        owns_wrapped: bool = True,
    ) -> None:
        super().__init__(wrapped, owns_wrapped=owns_wrapped)
        self._encoder = ArmorEncoder(label)

    def _write(self, data: bytes) -> None:
        self._emit(self._encoder.update(data))

    def _finish(self) -> None:
        self._emit(self._encoder.finalize())


class PartialBodyWriter(LayerWriter):
    """
    Frames a packet body of unknown length.

    Full buffers go out as partial body chunks of ``chunk_size`` octets; the
    remainder is written with a definite length on close, so short bodies
    become ordinary definite-length packets.
    """

    def __init__(
        self,
        wrapped: BinaryIO,
        tag: PacketTag,
        chunk_size: int,
        *,
        owns_wrapped: bool = True,
    ) -> None:
        super().__init__(wrapped, owns_wrapped=owns_wrapped)
        self._tag_octet = bytes([0xC0 | tag])
        self._chunk_size = chunk_size
        self._chunk_header = encode_partial_length(chunk_size)
        self._buffer = bytearray()

    def _write(self, data: bytes) -> None:
        self._buffer += data
        while len(self._buffer) > self._chunk_size:
            chunk = bytes(self._buffer[: self._chunk_size])
            del self._buffer[: self._chunk_size]
            self._emit(self._take_tag() + self._chunk_header + chunk)

    def _finish(self) -> None:
        remainder = bytes(self._buffer)
        self._buffer.clear()
        self._emit(self._take_tag() + encode_length(len(remainder)) + remainder)

    def _take_tag(self) -> bytes:
        tag, self._tag_octet = self._tag_octet, b""
        return tag


class EncryptionWriter(LayerWriter):
    """
    Encrypts into an SEIPD packet (with MDC) or a legacy SED packet.

    ``wrapped`` must be a PartialBodyWriter for the matching tag.
    """

    def __init__(
        self,
        wrapped: BinaryIO,
        session_key: SessionKey,
        *,
        integrity: bool,
        random: Callable[[int], bytes],
        owns_wrapped: bool = True,
    ) -> None:
        super().__init__(wrapped, owns_wrapped=owns_wrapped)
        self._integrity = integrity
        self._cipher = OpenPGPCFBEncryptor(
            session_key.algorithm,
            session_key.key_data,
            random,
            resync=not integrity,
        )
        self._mdc = new_mdc_hash(self._cipher.prefix) if integrity else None
        header = bytes([SEIPD_VERSION]) if integrity else b""
        self._emit(header + self._cipher.header)

    def _write(self, data: bytes) -> None:
        if self._mdc is not None:
            self._mdc.update(data)
        self._emit(self._cipher.update(data))

    def _finish(self) -> None:
        trailer = b""
        if self._mdc is not None:
            self._mdc.update(MDC_HEADER)
            trailer = self._cipher.update(MDC_HEADER + self._mdc.digest())
        self._emit(trailer + self._cipher.finalize())


class CompressionWriter(LayerWriter):
    """Compresses into a compressed data packet body (``wrapped`` frames tag 8)."""

    def __init__(
        self,
        wrapped: BinaryIO,
        algorithm: CompressionAlgorithm,
        *,
        owns_wrapped: bool = True,
    ) -> None:
        super().__init__(wrapped, owns_wrapped=owns_wrapped)
        match algorithm:
            case CompressionAlgorithm.ZIP:
                self._compressor: Any = zlib.compressobj(wbits=-15)
            case CompressionAlgorithm.ZLIB:
                self._compressor = zlib.compressobj()
            case CompressionAlgorithm.BZ2:
                self._compressor = bz2.BZ2Compressor()
            case _:
                self._compressor = None
        self._emit(bytes([algorithm]))

    def _write(self, data: bytes) -> None:
        if self._compressor is None:
            self._emit(data)
        else:
            self._emit(self._compressor.compress(data))

    def _finish(self) -> None:
        if self._compressor is not None:
            self._emit(self._compressor.flush())


class SignatureWriter(LayerWriter):
    """
    Wraps the literal packet with one-pass signatures and trailing signatures.

    One-pass signature packets are written on construction; the signature
    packets follow, in reverse order, once the literal packet is complete.
    Plaintext reaches the signers through ``update``.
    """

    def __init__(
        self,
        wrapped: BinaryIO,
        signers: list[DocumentSigner],
        *,
        owns_wrapped: bool = True,
    ) -> None:
        super().__init__(wrapped, owns_wrapped=owns_wrapped)
        self._signers = signers
        last = len(signers) - 1
        self._emit(
            b"".join(signer.one_pass(index == last) for index, signer in enumerate(signers))
        )

    def update(self, data: bytes) -> None:
        for signer in self._signers:
            signer.update(data)

    def _finish(self) -> None:
        for signer in reversed(self._signers):
            self._emit(signer.finish())
            logger.debug("Wrote message signature", key_id=signer.key_id)

    def close(self) -> None:
        try:
            super().close()
        finally:
            # Abandoned pipelines still lock the signing keys again
            for signer in self._signers:
                signer.close()


class LiteralDataWriter(LayerWriter):
    """
    Innermost layer: the literal data packet payload.

    ``wrapped`` frames tag 11; ``observer`` sees every plaintext chunk.
    """

    def __init__(
        self,
        wrapped: BinaryIO,
        *,
        filename: str = "",
        date: int = 0,
        observer: Callable[[bytes], None] | None = None,
        owns_wrapped: bool = True,
    ) -> None:
        super().__init__(wrapped, owns_wrapped=owns_wrapped)
        encoded_name = filename.encode("utf-8")[:255]
        self._observer = observer
        self._emit(
            _BINARY_FORMAT + bytes([len(encoded_name)]) + encoded_name + date.to_bytes(4, "big")
        )

    def _write(self, data: bytes) -> None:
        if self._observer is not None:
            self._observer(data)
        self._emit(data)
