import io
import zlib
from collections.abc import Callable

import pytest
from pgpy.constants import CompressionAlgorithm, HashAlgorithm, PacketTag, PubKeyAlgorithm

from crypto_openpgp.crypto.keys import new_key, public_clone
from crypto_openpgp.crypto.signatures import (
    DocumentSigner,
    new_hash,
    parse_one_pass,
    parse_signature,
    verify_document,
)
from crypto_openpgp.streams.armor import ArmorLabel, dearmor
from crypto_openpgp.streams.packets import PacketReader, encode_packet, iter_packets
from crypto_openpgp.streams.writers import (
    ArmorWriter,
    CompressionWriter,
    LiteralDataWriter,
    PartialBodyWriter,
    SignatureWriter,
)
from crypto_openpgp.tests.constants import CREATED, PLAINTEXT


def test_short_body_becomes_definite_length_packet() -> None:
    sink = io.BytesIO()

    with PartialBodyWriter(sink, PacketTag.LiteralData, 512, owns_wrapped=False) as writer:
        writer.write(b"hello")

    assert sink.getvalue() == encode_packet(PacketTag.LiteralData, b"hello")
    assert not sink.closed


def test_long_body_uses_partial_chunks() -> None:
    sink = io.BytesIO()
    body = bytes(range(256)) * 5

    with PartialBodyWriter(sink, PacketTag.LiteralData, 512, owns_wrapped=False) as writer:
        for offset in range(0, len(body), 100):
            writer.write(body[offset : offset + 100])

    data = sink.getvalue()
    assert data[:2] == bytes([0xC0 | PacketTag.LiteralData, 0xE9])
    assert data[2 + 512] == 0xE9
    assert list(iter_packets(data)) == [(PacketTag.LiteralData, body)]


def test_body_of_exactly_one_chunk_ends_with_definite_length() -> None:
    sink = io.BytesIO()

    with PartialBodyWriter(sink, PacketTag.LiteralData, 512, owns_wrapped=False) as writer:
        writer.write(bytes(512))

    assert sink.getvalue() == encode_packet(PacketTag.LiteralData, bytes(512))


def test_close_finishes_every_layer_but_not_the_sink() -> None:
    sink = io.BytesIO()
    framing = PartialBodyWriter(sink, PacketTag.LiteralData, 512, owns_wrapped=False)
    literal = LiteralDataWriter(framing, filename="notes.txt", date=CREATED)

    literal.write(b"payload")
    literal.close()

    assert literal.closed
    assert framing.closed
    assert not sink.closed
    [(tag, body)] = iter_packets(sink.getvalue())
    assert tag == PacketTag.LiteralData
    assert body == b"b\x09notes.txt" + CREATED.to_bytes(4, "big") + b"payload"


def test_close_is_idempotent() -> None:
    sink = io.BytesIO()
    writer = PartialBodyWriter(sink, PacketTag.LiteralData, 512, owns_wrapped=False)
    writer.write(b"data")

    writer.close()
    writer.close()

    assert sink.getvalue() == encode_packet(PacketTag.LiteralData, b"data")


def test_exception_in_with_block_abandons_chain() -> None:
    sink = io.BytesIO()
    armored = ArmorWriter(sink, owns_wrapped=False)
    framing = PartialBodyWriter(armored, PacketTag.LiteralData, 512)

    with pytest.raises(RuntimeError, match="boom"), framing:
        framing.write(b"data")
        raise RuntimeError("boom")

    assert framing.closed
    assert armored.closed
    assert not sink.closed
    assert b"-----END" not in sink.getvalue()


def test_write_after_close_raises() -> None:
    writer = PartialBodyWriter(io.BytesIO(), PacketTag.LiteralData, 512, owns_wrapped=False)
    writer.close()

    with pytest.raises(ValueError, match="closed"):
        writer.write(b"late")


def test_garbage_collection_does_not_finish_layer() -> None:
    sink = io.BytesIO()
    writer = PartialBodyWriter(sink, PacketTag.LiteralData, 512, owns_wrapped=False)
    writer.write(b"data")

    writer.__del__()
    writer.close()

    assert sink.getvalue() == b""


def test_armor_writer_wraps_output() -> None:
    sink = io.BytesIO()

    with ArmorWriter(sink, ArmorLabel.MESSAGE, owns_wrapped=False) as writer:
        writer.write(PLAINTEXT[:100])
        writer.write(PLAINTEXT[100:])

    text = sink.getvalue()
    assert text.startswith(b"-----BEGIN PGP MESSAGE-----\n")
    assert text.endswith(b"-----END PGP MESSAGE-----\n")
    assert dearmor(text) == PLAINTEXT


@pytest.mark.parametrize(
    ("algorithm", "decompress"),
    [
        (CompressionAlgorithm.ZLIB, zlib.decompress),
        (CompressionAlgorithm.ZIP, lambda data: zlib.decompress(data, wbits=-15)),
    ],
    ids=["zlib", "zip"],
)
def test_compression_writer_emits_algorithm_then_stream(
    algorithm: CompressionAlgorithm, decompress: Callable[[bytes], bytes]
) -> None:
    sink = io.BytesIO()

    with CompressionWriter(sink, algorithm, owns_wrapped=False) as writer:
        writer.write(PLAINTEXT)

    data = sink.getvalue()
    assert data[0] == algorithm
    assert decompress(data[1:]) == PLAINTEXT
    assert len(data) < len(PLAINTEXT)


def test_signature_writer_brackets_literal_packet() -> None:
    key = new_key(PubKeyAlgorithm.RSAEncryptOrSign, 1024, CREATED)
    sink = io.BytesIO()
    signer = SignatureWriter(sink, [DocumentSigner(key, None, CREATED)], owns_wrapped=False)
    framing = PartialBodyWriter(signer, PacketTag.LiteralData, 512)
    literal = LiteralDataWriter(framing, date=CREATED, observer=signer.update)

    with literal:
        literal.write(PLAINTEXT)

    packets = list(PacketReader(io.BytesIO(sink.getvalue())))
    tags = [packet.tag for packet in packets]
    assert tags == [PacketTag.OnePassSignature, PacketTag.LiteralData, PacketTag.Signature]

    one_pass, _, trailing = (
        encode_packet(tag, body) for tag, body in iter_packets(sink.getvalue())
    )
    assert parse_one_pass(one_pass).nested
    signature = parse_signature(trailing)
    context = new_hash(HashAlgorithm.SHA256)
    context.update(PLAINTEXT)
    assert signature.signer == key.fingerprint.keyid
    assert verify_document(public_clone(key), signature, context)
