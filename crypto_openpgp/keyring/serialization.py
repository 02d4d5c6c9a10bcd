"""
Saving and loading keyrings as OpenPGP transferable keys.
"""

from typing import BinaryIO

import structlog

from crypto_openpgp.crypto.keys import load_key
from crypto_openpgp.exceptions import MalformedInputError
from crypto_openpgp.keyring.model import PublicKeyring, SecretKeyring
from crypto_openpgp.keyring.protocol import Keyring

logger = structlog.get_logger(__name__)


def keyring_save(keyring: Keyring, sink: BinaryIO, *, enarmor: bool = False) -> None:
    """
    Write a keyring as a transferable secret or public key.

    Args:
        keyring: Keyring to write; secret keyrings keep their protected keys.
        sink: Binary stream receiving the bytes.
        enarmor: Wrap the output in ASCII armor (PGP PRIVATE KEY BLOCK or
            PGP PUBLIC KEY BLOCK, following the variant).
    """
    key = keyring.get()
    data = str(key).encode("ascii") if enarmor else bytes(key)
    sink.write(data)
    logger.debug("Saved keyring", key_id=keyring.key_id, size=len(data))


def keyring_load(source: BinaryIO | bytes) -> SecretKeyring | PublicKeyring:
    """
    Read a keyring written by keyring_save (or any OpenPGP implementation).

    Armored input is detected automatically.

    Raises:
        MalformedInputError: If the input is empty or holds no key.
    """
    data = source if isinstance(source, bytes) else source.read()
    if not data:
        msg = "Empty keyring input"
        raise MalformedInputError(msg)

    key = load_key(data)
    if key.is_public:
        keyring: SecretKeyring | PublicKeyring = PublicKeyring(key=key)
    else:
        keyring = SecretKeyring(key=key)
    logger.debug("Loaded keyring", key_id=keyring.key_id, kind=str(keyring.kind))
    return keyring
