"""
Decryption pipeline construction.

Walks the inverse of the encryption layers: de-armor (detected from the
first octet), locate and decrypt the encrypted data, decompress, and expose
the literal payload. Integrity and signature checks run when the returned
handle is closed.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any, BinaryIO

import structlog
from pgpy import PGPKey, PGPSignature
from pgpy.constants import PacketTag
from pgpy.packet.packets import OnePassSignatureV3

from crypto_openpgp.crypto.keys import clone, key_id, unlocked
from crypto_openpgp.crypto.secure_bytes import Password, SecureBytes
from crypto_openpgp.crypto.session_key import (
    is_wildcard,
    parse_pkesk,
    pkesk_session_key,
    skesk_session_key,
)
from crypto_openpgp.crypto.signatures import parse_one_pass, parse_signature
from crypto_openpgp.exceptions import (
    CapabilityError,
    CryptoError,
    IntegrityError,
    MalformedInputError,
    UnsupportedAlgorithmError,
)
from crypto_openpgp.keyring.protocol import Keyring, KeyringKind
from crypto_openpgp.models.crypto import SessionKey
from crypto_openpgp.models.tags import Requirement, parse_tag
from crypto_openpgp.streams.armor import ArmorReader
from crypto_openpgp.streams.packets import Packet, PacketReader, encode_packet, read_exact
from crypto_openpgp.streams.readers import (
    DecryptingReader,
    PlaintextReader,
    PrefixedReader,
    decompressor_for,
)

logger = structlog.get_logger(__name__)

_ENCRYPTED_DATA_TAGS = (
    PacketTag.SymmetricallyEncryptedIntegrityProtectedData,
    PacketTag.SymmetricallyEncryptedData,
)


@dataclass(frozen=True)
class DecryptionKeys:
    """
    Public-key protection: secret keyrings that may hold the recipient key.

    Attributes:
        keyrings: Secret keyrings to try, in order.
        password: Password unlocking the recipient key.
    """

    keyrings: tuple[Keyring, ...]
    password: Password

    def __post_init__(self) -> None:
        object.__setattr__(self, "keyrings", tuple(self.keyrings))
        for keyring in self.keyrings:
            if keyring.kind != KeyringKind.SECRET:
                msg = "Decryption requires secret keyrings"
                raise CapabilityError(msg, key_id=keyring.key_id)

    def secret_keys(self) -> Iterator[PGPKey]:
        """Copies of every master and sub-key, safe to unlock."""
        for keyring in self.keyrings:
            master = clone(keyring.get())
            yield master
            yield from master.subkeys.values()


def _whole_packet(packet: Packet) -> bytes:
    return encode_packet(packet.tag, packet.read_body())


def _password_session_key(packet: Packet, password: Password) -> SessionKey:
    with SecureBytes.from_password(password) as secret:
        return skesk_session_key(_whole_packet(packet), secret)


def _public_key_session_key(packet: Packet, keys: DecryptionKeys) -> SessionKey | None:
    pkesk = parse_pkesk(_whole_packet(packet))
    wildcard = is_wildcard(pkesk)
    for key in keys.secret_keys():
        if not (wildcard or pkesk.encrypter == key_id(key)):
            continue
        if key.key_algorithm != pkesk.pkalg:
            continue
        with SecureBytes.from_password(keys.password) as secret, unlocked(key, secret):
            try:
                return pkesk_session_key(pkesk, key)
            except CryptoError:
                if wildcard:
                    continue
                raise
    return None


def _locate_encrypted_data(packets: PacketReader, protection: Any) -> tuple[SessionKey, Packet]:
    session_key = None
    for packet in packets:
        if packet.tag in _ENCRYPTED_DATA_TAGS:
            if session_key is None:
                msg = "No session key usable with the supplied protection"
                raise MalformedInputError(msg)
            return session_key, packet
        if packet.tag == PacketTag.Marker or session_key is not None:
            continue
        match packet.tag:
            case PacketTag.SymmetricKeyEncryptedSessionKey:
                if not isinstance(protection, DecryptionKeys):
                    session_key = _password_session_key(packet, protection)
            case PacketTag.PublicKeyEncryptedSessionKey:
                if isinstance(protection, DecryptionKeys):
                    session_key = _public_key_session_key(packet, protection)
            case _:
                msg = f"Unexpected packet before encrypted data: tag {packet.tag}"
                raise MalformedInputError(msg)
    msg = "No encrypted data found"
    raise MalformedInputError(msg)


def _sender_keys(senders: Iterable[Keyring]) -> dict[str, PGPKey]:
    # Masters stay in the map, so their sub-keys keep a live parent
    keys = {}
    for sender in senders:
        master = sender.get_public_key()
        keys[key_id(master)] = master
        for subkey_id, subkey in master.subkeys.items():
            keys[subkey_id] = subkey
    return keys


def build_decryptor(
    source: BinaryIO,
    protection: Any,
    *,
    senders: Iterable[Keyring] = (),
    required: Iterable[Requirement | str] = (),
) -> PlaintextReader:
    """
    Build the layered decryption pipeline over ``source``.

    Args:
        source: Binary stream holding the message; never closed.
        protection: A password, or a DecryptionKeys value.
        senders: Keyrings whose signatures can be verified.
        required: Requirement flags enforced at close.

    Returns:
        A readable handle on the literal payload. Close it to run the
        integrity and signature checks.

    Raises:
        ConfigurationError: For an unrecognized requirement.
        MalformedInputError: If no encrypted data is found, or the payload
            is malformed under a valid modification detection code.
        IntegrityError: If the decrypted payload cannot be parsed and the
            ciphertext is not known to be intact.
        UnsupportedAlgorithmError: For an unknown compression algorithm in
            intact ciphertext.
        AuthenticationError: If the password (or recipient key password) is
            wrong.
    """
    requirements = frozenset(parse_tag(Requirement, value) for value in required)
    first = source.read(1)
    if not first:
        msg = "Empty input"
        raise MalformedInputError(msg)
    stream: BinaryIO = PrefixedReader(first, source)
    if not first[0] & 0x80:
        stream = ArmorReader(stream)

    session_key, encrypted = _locate_encrypted_data(PacketReader(stream), protection)
    integrity = encrypted.tag == PacketTag.SymmetricallyEncryptedIntegrityProtectedData
    decryptor = DecryptingReader(encrypted.body, session_key, integrity=integrity)

    try:
        inner, literal, one_pass, leading = _open_payload(decryptor)
        body = literal.body
        read_exact(body, 1)
        filename = read_exact(body, read_exact(body, 1)[0]).decode("utf-8", "replace")
        date = int.from_bytes(read_exact(body, 4), "big")
    except (CryptoError, UnsupportedAlgorithmError) as e:
        _drain_after_failure(decryptor)
        # Intact ciphertext means the error is genuine, not tampering
        if decryptor.mdc_valid or (
            decryptor.mdc_valid is None and isinstance(e, UnsupportedAlgorithmError)
        ):
            raise
        msg = f"Encrypted message is corrupt: {e}"
        raise IntegrityError(msg) from e

    logger.debug(
        "Built decryptor",
        integrity=integrity,
        one_pass=len(one_pass),
        signatures=len(leading),
    )
    return PlaintextReader(
        body,
        filename=filename,
        date=date,
        packets=inner,
        decryptor=decryptor,
        one_pass=one_pass,
        leading_signatures=leading,
        senders=_sender_keys(senders),
        required=requirements,
    )


def _open_payload(
    decryptor: DecryptingReader,
) -> tuple[PacketReader, Packet, list[OnePassSignatureV3], list[PGPSignature]]:
    """Decompress if needed and read up to the literal data packet header."""
    inner = PacketReader(decryptor)
    packet = inner.next_packet()
    if packet is not None and packet.tag == PacketTag.CompressedData:
        inner = PacketReader(decompressor_for(packet.body))
        packet = inner.next_packet()

    one_pass: list[OnePassSignatureV3] = []
    leading: list[PGPSignature] = []
    while packet is not None and packet.tag != PacketTag.LiteralData:
        match packet.tag:
            case PacketTag.OnePassSignature:
                one_pass.append(parse_one_pass(_whole_packet(packet)))
            case PacketTag.Signature:
                leading.append(parse_signature(_whole_packet(packet)))
            case PacketTag.Marker:
                pass
            case _:
                msg = f"Unexpected packet in encrypted data: tag {packet.tag}"
                raise MalformedInputError(msg)
        packet = inner.next_packet()
    if packet is None:
        msg = "No literal data found"
        raise MalformedInputError(msg)
    return inner, packet, one_pass, leading


def _drain_after_failure(decryptor: DecryptingReader) -> None:
    # The MDC verdict needs the whole ciphertext
    try:
        decryptor.drain()
    except CryptoError as e:
        logger.debug("Ciphertext ended early", error=str(e))


def decryptor_pbe(
    source: BinaryIO,
    password: Password,
    *,
    required: Iterable[Requirement | str] = (),
) -> PlaintextReader:
    """Password-based decryption pipeline."""
    return build_decryptor(source, password, required=required)


def decryptor_key(
    source: BinaryIO,
    keyrings: Iterable[Keyring],
    password: Password,
    *,
    senders: Iterable[Keyring] = (),
    required: Iterable[Requirement | str] = (),
) -> PlaintextReader:
    """Public-key decryption pipeline; ``senders`` verify the signatures."""
    keys = DecryptionKeys(keyrings=tuple(keyrings), password=password)
    return build_decryptor(source, keys, senders=senders, required=required)
