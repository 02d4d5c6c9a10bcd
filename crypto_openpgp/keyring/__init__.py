"""
Keyring model and operations.

Secret and public keyrings share one capability protocol; every operation
returns a new keyring and leaves its inputs untouched.
"""

from crypto_openpgp.keyring.model import PublicKeyring, SecretKeyring
from crypto_openpgp.keyring.operations import (
    add_revoker,
    add_subkeypair,
    certify,
    generate,
    keyring_certifications,
    keyring_encryption_key,
    keyring_revoked,
    keyring_revokers,
    keyring_signing_key,
    keyring_user_ids,
    publish,
    rekey_password,
    revoke,
)
from crypto_openpgp.keyring.protocol import Keyring, KeyringKind
from crypto_openpgp.keyring.serialization import keyring_load, keyring_save

__all__ = [
    "Keyring",
    "KeyringKind",
    "SecretKeyring",
    "PublicKeyring",
    "generate",
    "certify",
    "add_subkeypair",
    "revoke",
    "keyring_revoked",
    "add_revoker",
    "rekey_password",
    "publish",
    "keyring_save",
    "keyring_load",
    "keyring_user_ids",
    "keyring_certifications",
    "keyring_encryption_key",
    "keyring_signing_key",
    "keyring_revokers",
]
