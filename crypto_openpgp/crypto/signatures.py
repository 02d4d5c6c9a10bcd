"""
Binary document signatures over streamed data.

pgpy signs and verifies whole subjects it holds in memory; the pipelines
feed the literal payload through a hash context instead, and hand pgpy the
finished digest (``Prehashed``).
"""

from contextlib import ExitStack
from typing import Any

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed
from pgpy import PGPKey, PGPSignature
from pgpy.constants import HashAlgorithm, SignatureType
from pgpy.packet import Packet
from pgpy.packet.packets import OnePassSignatureV3, SignatureV4

from crypto_openpgp.crypto.keys import SIGNATURE_HASH, key_id, unlocked
from crypto_openpgp.crypto.secure_bytes import SecureBytes
from crypto_openpgp.exceptions import MalformedInputError, UnsupportedAlgorithmError


def _prehashed(hash_algorithm: HashAlgorithm) -> Prehashed:
    return Prehashed(getattr(hashes, hash_algorithm.name)())


def new_hash(hash_algorithm: HashAlgorithm) -> Any:
    """
    Start a hash context for ``hash_algorithm``.

    Raises:
        UnsupportedAlgorithmError: If the algorithm is unknown or unavailable.
    """
    try:
        return hash_algorithm.hasher
    except (AttributeError, ValueError) as e:
        msg = f"Hash algorithm not available: {hash_algorithm!r}"
        raise UnsupportedAlgorithmError(msg, algorithm=hash_algorithm) from e


def _parse(packet: bytes, expected: type) -> Any:
    try:
        parsed = Packet(bytearray(packet))
    except Exception as e:
        msg = f"Failed to parse packet: {e}"
        raise MalformedInputError(msg) from e
    if not isinstance(parsed, expected):
        msg = f"Unsupported packet version: {type(parsed).__name__}"
        raise MalformedInputError(msg)
    return parsed


def parse_signature(packet: bytes) -> PGPSignature:
    """Parse a complete signature packet (header included)."""
    return PGPSignature() | _parse(packet, SignatureV4)


def parse_one_pass(packet: bytes) -> OnePassSignatureV3:
    """Parse a complete one-pass signature packet (header included)."""
    return _parse(packet, OnePassSignatureV3)


def verify_document(key: PGPKey, signature: PGPSignature, context: Any) -> bool:
    """
    Check a document signature against the hash of the signed data.

    ``context`` is a hash of the payload only; it is copied, never finalized.
    """
    if signature.type != SignatureType.BinaryDocument:
        return False
    context = context.copy()
    context.update(signature.hashdata(b""))
    digest = context.digest()
    if bytes(signature._signature.hash2) != digest[:2]:
        return False
    return bool(key._key.verify(digest, signature.__sig__, _prehashed(signature.hash_algorithm)))


class DocumentSigner:
    """
    Hashes literal data as it streams and produces a binary document signature.

    The signing key stays unlocked until ``finish`` (or ``close``) is called.
    """

    def __init__(
        self,
        key: PGPKey,
        secret: SecureBytes | None,
        created: int,
        hash_algorithm: HashAlgorithm = SIGNATURE_HASH,
    ) -> None:
        self._stack = ExitStack()
        self.key = self._stack.enter_context(unlocked(key, secret))
        self.key_id = key_id(key)
        self._signature = PGPSignature.new(
            SignatureType.BinaryDocument,
            key.key_algorithm,
            hash_algorithm,
            self.key_id,
            created=created,
        )
        self._signature._signature.subpackets.addnew(
            "IssuerFingerprint", hashed=True, _version=4, _issuer_fpr=key.fingerprint
        )
        self._context = new_hash(hash_algorithm)

    def one_pass(self, nested: bool) -> bytes:
        """The one-pass signature packet announcing this signature."""
        packet = self._signature.make_onepass()
        packet.nested = nested
        return bytes(packet)

    def update(self, data: bytes) -> None:
        self._context.update(data)

    def finish(self) -> bytes:
        """Sign the data hashed so far; returns the signature packet."""
        signature = self._signature._signature
        self._context.update(self._signature.hashdata(b""))
        digest = self._context.digest()
        signature.hash2 = bytearray(digest[:2])
        hash_algorithm = self._signature.hash_algorithm
        try:
            signature.signature.from_signer(
                self.key._key.sign(digest, _prehashed(hash_algorithm))
            )
            signature.update_hlen()
        finally:
            self.close()
        return bytes(self._signature)

    def close(self) -> None:
        self._stack.close()
