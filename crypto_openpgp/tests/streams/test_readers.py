import bz2
import io
import os
import zlib

import pytest
from pgpy.constants import CompressionAlgorithm, PacketTag, SymmetricKeyAlgorithm

from crypto_openpgp.exceptions import (
    AuthenticationError,
    IntegrityError,
    UnsupportedAlgorithmError,
)
from crypto_openpgp.models.crypto import SessionKey
from crypto_openpgp.streams.packets import PacketReader, encode_packet
from crypto_openpgp.streams.readers import (
    DecompressingReader,
    DecryptingReader,
    PrefixedReader,
    decompressor_for,
)
from crypto_openpgp.streams.writers import EncryptionWriter, PartialBodyWriter
from crypto_openpgp.tests.constants import PLAINTEXT

SESSION_KEY = SessionKey(algorithm=SymmetricKeyAlgorithm.AES128, key_data=bytes(range(16)))
OTHER_KEY = SessionKey(algorithm=SymmetricKeyAlgorithm.AES128, key_data=bytes(range(1, 17)))


def _encrypted(integrity: bool, plaintext: bytes = PLAINTEXT) -> bytes:
    tag = (
        PacketTag.SymmetricallyEncryptedIntegrityProtectedData
        if integrity
        else PacketTag.SymmetricallyEncryptedData
    )
    sink = io.BytesIO()
    framing = PartialBodyWriter(sink, tag, 512, owns_wrapped=False)
    with EncryptionWriter(framing, SESSION_KEY, integrity=integrity, random=os.urandom) as writer:
        writer.write(plaintext)
    return sink.getvalue()


def _decrypting_reader(data: bytes, key: SessionKey, integrity: bool) -> DecryptingReader:
    packet = PacketReader(io.BytesIO(data)).next_packet()
    assert packet is not None
    return DecryptingReader(packet.body, key, integrity=integrity)


def test_prefixed_reader_replays_prefix_first() -> None:
    source = io.BytesIO(b"cdef")

    reader = PrefixedReader(b"ab", source)

    assert reader.read(1) == b"a"
    assert reader.read() == b"bcdef"


@pytest.mark.parametrize("integrity", [True, False], ids=["seipd", "sed"])
def test_decrypting_reader_recovers_plaintext(integrity: bool) -> None:
    reader = _decrypting_reader(_encrypted(integrity), SESSION_KEY, integrity)

    assert reader.read() == PLAINTEXT
    assert reader.mdc_valid is (True if integrity else None)
    assert reader.integrity_protected is integrity


def test_decrypting_reader_flags_modified_mdc() -> None:
    data = bytearray(_encrypted(integrity=True))
    data[-5] ^= 0x01

    reader = _decrypting_reader(bytes(data), SESSION_KEY, integrity=True)
    reader.drain()

    assert reader.mdc_valid is False


def test_decrypting_reader_rejects_wrong_key_early() -> None:
    with pytest.raises(AuthenticationError, match="prefix"):
        _decrypting_reader(_encrypted(integrity=True), OTHER_KEY, integrity=True)


def test_decrypting_reader_handles_empty_plaintext() -> None:
    reader = _decrypting_reader(_encrypted(True, b""), SESSION_KEY, integrity=True)

    assert reader.read() == b""
    assert reader.mdc_valid is True


@pytest.mark.parametrize(
    ("algorithm", "compressed"),
    [
        (CompressionAlgorithm.Uncompressed, PLAINTEXT),
        (CompressionAlgorithm.ZLIB, zlib.compress(PLAINTEXT)),
        (CompressionAlgorithm.BZ2, bz2.compress(PLAINTEXT)),
    ],
    ids=["uncompressed", "zlib", "bzip2"],
)
def test_decompressing_reader_inflates(algorithm: CompressionAlgorithm, compressed: bytes) -> None:
    reader = DecompressingReader(io.BytesIO(compressed), algorithm)

    assert reader.read() == PLAINTEXT


def test_decompressing_reader_reports_corruption_as_integrity_error() -> None:
    reader = DecompressingReader(io.BytesIO(b"\x00garbage" * 8), CompressionAlgorithm.ZLIB)

    with pytest.raises(IntegrityError, match="corrupt"):
        reader.read()


def test_decompressing_reader_reports_truncation() -> None:
    truncated = zlib.compress(PLAINTEXT)[:-6]
    reader = DecompressingReader(io.BytesIO(truncated), CompressionAlgorithm.ZLIB)

    with pytest.raises(IntegrityError, match="truncated"):
        reader.read()


def test_decompressor_for_reads_algorithm_octet() -> None:
    data = encode_packet(PacketTag.CompressedData, b"\x02" + zlib.compress(PLAINTEXT))
    packet = PacketReader(io.BytesIO(data)).next_packet()
    assert packet is not None

    assert decompressor_for(packet.body).read() == PLAINTEXT


def test_decompressor_for_rejects_unknown_algorithm() -> None:
    data = encode_packet(PacketTag.CompressedData, b"\x63")
    packet = PacketReader(io.BytesIO(data)).next_packet()
    assert packet is not None

    with pytest.raises(UnsupportedAlgorithmError):
        decompressor_for(packet.body)
