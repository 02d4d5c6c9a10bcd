"""
Encryption pipeline construction.

The caller's sink is wrapped, outermost first, in armor (optional),
encryption, compression (optional), signature generation (key variant) and
literal data framing. Only the innermost handle is returned; closing it
finishes every layer in order and leaves the sink open.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, BinaryIO

import structlog
from pgpy.constants import PacketTag

from crypto_openpgp.config import EncryptorConfig, make_config
from crypto_openpgp.crypto.keys import clone, key_id
from crypto_openpgp.crypto.secure_bytes import Password, SecureBytes
from crypto_openpgp.crypto.session_key import (
    check_cipher,
    generate_session_key,
    pkesk_packet,
    skesk_packet,
)
from crypto_openpgp.crypto.signatures import DocumentSigner
from crypto_openpgp.exceptions import CapabilityError, ConfigurationError
from crypto_openpgp.keyring.model import SecretKeyring
from crypto_openpgp.keyring.operations import keyring_encryption_key, keyring_signing_key
from crypto_openpgp.keyring.protocol import Keyring, KeyringKind
from crypto_openpgp.models.crypto import SessionKey
from crypto_openpgp.streams.armor import ArmorLabel
from crypto_openpgp.streams.writers import (
    ArmorWriter,
    CompressionWriter,
    EncryptionWriter,
    LayerWriter,
    LiteralDataWriter,
    PartialBodyWriter,
    SignatureWriter,
    write_all,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EncryptionKeys:
    """
    Public-key protection for a message.

    Attributes:
        recipients: Keyrings (either variant) the message is encrypted to.
        signers: (secret keyring, password) pairs that sign the message.
    """

    recipients: tuple[Keyring, ...]
    signers: tuple[tuple[SecretKeyring, Password], ...] = field(default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "recipients", tuple(self.recipients))
        object.__setattr__(self, "signers", tuple(self.signers))
        if not self.recipients:
            msg = "At least one recipient is required"
            raise ConfigurationError(msg)


def _recipient_packets(recipients: Iterable[Keyring], session_key: SessionKey) -> bytes:
    packets = b""
    for recipient in recipients:
        key = keyring_encryption_key(recipient)
        if key is None:
            msg = "Recipient has no usable encryption key"
            raise CapabilityError(msg, key_id=recipient.key_id)
        packets += pkesk_packet(key, session_key)
        logger.debug("Added message recipient", key_id=key_id(key))
    return packets


def _document_signers(
    signers: Iterable[tuple[SecretKeyring, Password]], created: int
) -> list[DocumentSigner]:
    # Check every signer before unlocking any key
    selected = []
    for keyring, password in signers:
        public = keyring_signing_key(keyring)
        if keyring.kind != KeyringKind.SECRET or public is None:
            msg = "Signer has no usable signing key"
            raise CapabilityError(msg, key_id=keyring.key_id)
        selected.append((keyring.get(), key_id(public), password))

    unlocked_signers: list[DocumentSigner] = []
    try:
        for master, signing_key_id, password in selected:
            master = clone(master)
            if key_id(master) == signing_key_id:
                secret_key = master
            else:
                secret_key = master.subkeys[signing_key_id]
            with SecureBytes.from_password(password) as secret:
                unlocked_signers.append(DocumentSigner(secret_key, secret, created))
    except Exception:
        for signer in unlocked_signers:
            signer.close()
        raise
    return unlocked_signers


def build_encryptor(sink: BinaryIO, protection: Any, **options: Any) -> LayerWriter:
    """
    Build the layered encryption pipeline over ``sink``.

    Args:
        sink: Binary stream receiving the ciphertext; never closed.
        protection: A password, or an EncryptionKeys value.
        **options: EncryptorConfig fields.

    Returns:
        The literal data layer; write plaintext to it, then close it.

    Raises:
        ConfigurationError: For invalid options, or a cipher that cannot
            encrypt (including "none").
        CapabilityError: If a recipient cannot encrypt or a signer cannot sign.
        AuthenticationError: If a signer password is wrong.
    """
    config = make_config(EncryptorConfig, options)
    cipher = config.cipher.algorithm
    check_cipher(cipher)
    created = config.timestamp

    if isinstance(protection, EncryptionKeys):
        session_key = generate_session_key(cipher, config.random)
        header = _recipient_packets(protection.recipients, session_key)
        signers = _document_signers(protection.signers, created)
    else:
        with SecureBytes.from_password(protection) as secret:
            session_key, header = skesk_packet(cipher, secret, config.random)
        signers = []

    layer: LayerWriter | None = None
    try:
        outer: BinaryIO = sink
        if config.enarmor:
            layer = ArmorWriter(sink, ArmorLabel.MESSAGE, owns_wrapped=False)
            outer = layer
        write_all(outer, header)

        tag = (
            PacketTag.SymmetricallyEncryptedIntegrityProtectedData
            if config.integrity
            else PacketTag.SymmetricallyEncryptedData
        )
        layer = PartialBodyWriter(outer, tag, config.partial, owns_wrapped=layer is not None)
        layer = EncryptionWriter(
            layer, session_key, integrity=config.integrity, random=config.random
        )
        if config.compress:
            layer = PartialBodyWriter(layer, PacketTag.CompressedData, config.partial)
            layer = CompressionWriter(layer, config.compression.algorithm)

        observer = None
        if signers:
            layer = SignatureWriter(layer, signers)
            observer = layer.update
        layer = PartialBodyWriter(layer, PacketTag.LiteralData, config.partial)
        layer = LiteralDataWriter(
            layer, filename=config.filename, date=created, observer=observer
        )
    except Exception:
        if layer is not None:
            layer.abandon()
        for signer in signers:
            signer.close()
        raise

    logger.debug(
        "Built encryptor",
        cipher=config.cipher.value,
        integrity=config.integrity,
        compress=config.compress,
        enarmor=config.enarmor,
        signers=len(signers),
    )
    return layer


def encryptor_pbe(sink: BinaryIO, password: Password, **options: Any) -> LayerWriter:
    """Password-based encryption pipeline."""
    return build_encryptor(sink, password, **options)


def encryptor_key(
    sink: BinaryIO,
    signers: Iterable[tuple[SecretKeyring, Password]],
    recipients: Iterable[Keyring],
    **options: Any,
) -> LayerWriter:
    """Public-key encryption pipeline, signed by every keyring in ``signers``."""
    keys = EncryptionKeys(recipients=tuple(recipients), signers=tuple(signers))
    return build_encryptor(sink, keys, **options)
