"""
Session key packets, built and opened with pgpy.

PKESK (tag 1) carries the message key encrypted to a recipient public key;
SKESK (tag 3) derives it from a password with an iterated and salted S2K.
"""

import binascii
from collections.abc import Callable

import structlog
from pgpy import PGPKey
from pgpy.constants import HashAlgorithm, String2KeyType, SymmetricKeyAlgorithm
from pgpy.errors import PGPDecryptionError, PGPError
from pgpy.packet import Packet
from pgpy.packet.packets import PKESessionKeyV3, SKESessionKeyV4

from crypto_openpgp.crypto.keys import key_id
from crypto_openpgp.crypto.secure_bytes import SecureBytes
from crypto_openpgp.exceptions import (
    AuthenticationError,
    CryptoError,
    MalformedInputError,
    UnsupportedAlgorithmError,
)
from crypto_openpgp.models.crypto import SessionKey

logger = structlog.get_logger(__name__)

S2K_HASH = HashAlgorithm.SHA256
WILDCARD_KEY_ID = "0000000000000000"

_S2K_SALT_SIZE = 8


def check_cipher(algorithm: SymmetricKeyAlgorithm) -> None:
    """
    Raise if ``algorithm`` cannot be used to encrypt data.

    Raises:
        UnsupportedAlgorithmError: For Plaintext and ciphers the provider lacks.
    """
    try:
        supported = algorithm.is_supported
    except NotImplementedError:
        supported = False
    if not supported:
        msg = f"Cipher not available for encryption: {algorithm.name}"
        raise UnsupportedAlgorithmError(msg, algorithm=algorithm)


def generate_session_key(
    algorithm: SymmetricKeyAlgorithm, random: Callable[[int], bytes]
) -> SessionKey:
    return SessionKey(algorithm=algorithm, key_data=random(algorithm.key_size // 8))


def _session_key(algorithm: SymmetricKeyAlgorithm, key_data: bytes) -> SessionKey:
    try:
        return SessionKey(algorithm=SymmetricKeyAlgorithm(algorithm), key_data=bytes(key_data))
    except (TypeError, ValueError) as e:
        msg = f"Invalid session key: {e}"
        raise CryptoError(msg) from e


def _parse(packet: bytes, expected: type):
    try:
        parsed = Packet(bytearray(packet))
    except (PGPError, ValueError, IndexError) as e:
        msg = f"Failed to parse session key packet: {e}"
        raise MalformedInputError(msg) from e
    if not isinstance(parsed, expected):
        msg = f"Unsupported session key packet: {type(parsed).__name__}"
        raise MalformedInputError(msg)
    return parsed


def skesk_packet(
    cipher: SymmetricKeyAlgorithm,
    secret: SecureBytes,
    random: Callable[[int], bytes],
) -> tuple[SessionKey, bytes]:
    """
    Build an SKESK packet whose S2K output is the session key itself.

    Returns:
        The session key and the complete packet (header included).
    """
    packet = SKESessionKeyV4()
    packet.s2k.usage = 255
    packet.s2k.specifier = String2KeyType.Iterated
    packet.s2k.halg = S2K_HASH
    packet.s2k.encalg = cipher
    packet.s2k.count = S2K_HASH.tuned_count
    packet.s2k.salt = bytearray(random(_S2K_SALT_SIZE))
    session_key = SessionKey(algorithm=cipher, key_data=packet.s2k.derive_key(bytes(secret)))
    packet.update_hlen()
    return session_key, bytes(packet)


def skesk_session_key(packet: bytes, secret: SecureBytes) -> SessionKey:
    """
    Derive the session key of an SKESK packet from a password.

    Raises:
        MalformedInputError: If the packet does not parse.
        UnsupportedAlgorithmError: If its cipher is not available.
        AuthenticationError: If a wrapped session key does not decode, which
            means the password is wrong.
    """
    skesk = _parse(packet, SKESessionKeyV4)
    check_cipher(skesk.symalg)
    try:
        algorithm, key_data = skesk.decrypt_sk(bytes(secret))
    except (PGPDecryptionError, ValueError) as e:
        msg = "Wrong password for encrypted session key"
        raise AuthenticationError(msg) from e
    try:
        return _session_key(algorithm, key_data)
    except CryptoError as e:
        msg = "Wrong password for encrypted session key"
        raise AuthenticationError(msg) from e


def pkesk_packet(recipient: PGPKey, session_key: SessionKey) -> bytes:
    """Build a complete PKESK v3 packet addressed to ``recipient``."""
    packet = PKESessionKeyV3()
    packet.encrypter = bytearray(binascii.unhexlify(key_id(recipient)))
    packet.pkalg = recipient.key_algorithm
    try:
        packet.encrypt_sk(recipient._key, session_key.algorithm, session_key.key_data)
    except (NotImplementedError, AttributeError) as e:
        msg = f"Cannot encrypt a session key to {recipient.key_algorithm.name} keys"
        raise UnsupportedAlgorithmError(msg, algorithm=recipient.key_algorithm) from e
    return bytes(packet)


def parse_pkesk(packet: bytes) -> PKESessionKeyV3:
    """Parse a complete PKESK packet; ``encrypter`` holds the recipient key id."""
    return _parse(packet, PKESessionKeyV3)


def is_wildcard(pkesk: PKESessionKeyV3) -> bool:
    return pkesk.encrypter == WILDCARD_KEY_ID


def pkesk_session_key(pkesk: PKESessionKeyV3, key: PGPKey) -> SessionKey:
    """
    Recover the session key with an unlocked private key.

    Raises:
        UnsupportedAlgorithmError: If the key algorithm cannot decrypt.
        CryptoError: If decryption fails or the checksum does not match.
    """
    try:
        algorithm, key_data = pkesk.decrypt_sk(key._key)
    except NotImplementedError as e:
        msg = f"Cannot decrypt session keys with {pkesk.pkalg.name} keys"
        raise UnsupportedAlgorithmError(msg, algorithm=pkesk.pkalg) from e
    except (PGPDecryptionError, ValueError, IndexError) as e:
        msg = f"Session key decryption failed: {e}"
        raise CryptoError(msg) from e
    logger.debug("Decrypted session key", key_id=key_id(key))
    return _session_key(algorithm, key_data)
