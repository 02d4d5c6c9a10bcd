"""
The two keyring variants.

Both are frozen; every update returns a new value wrapping a fresh key.
"""

from dataclasses import dataclass

from pgpy import PGPKey

from crypto_openpgp.crypto.keys import clone, key_id, merge, public_clone
from crypto_openpgp.exceptions import CapabilityError
from crypto_openpgp.keyring.protocol import KeyringKind


def _merged(key: PGPKey, update: PGPKey) -> PGPKey:
    if key_id(update) != key_id(key):
        msg = f"Public key {key_id(update)} does not belong to this keyring"
        raise CapabilityError(msg, key_id=key_id(key))
    merged = clone(key)
    merge(merged, update)
    return merged


@dataclass(frozen=True)
class SecretKeyring:
    """A master key and its sub-keys, each with password-protected private material."""

    key: PGPKey

    @property
    def kind(self) -> KeyringKind:
        return KeyringKind.SECRET

    @property
    def key_id(self) -> str:
        return key_id(self.key)

    def get(self) -> PGPKey:
        return self.key

    def get_public(self) -> "PublicKeyring":
        return PublicKeyring(key=public_clone(self.key))

    def get_public_key(self) -> PGPKey:
        return public_clone(self.key)

    def put_public_key(self, key: PGPKey) -> "SecretKeyring":
        return SecretKeyring(key=_merged(self.key, key))


@dataclass(frozen=True)
class PublicKeyring:
    """The distributable part of a keyring: public keys and all signatures."""

    key: PGPKey

    @property
    def kind(self) -> KeyringKind:
        return KeyringKind.PUBLIC

    @property
    def key_id(self) -> str:
        return key_id(self.key)

    def get(self) -> PGPKey:
        return self.key

    def get_public(self) -> "PublicKeyring":
        return self

    def get_public_key(self) -> PGPKey:
        return clone(self.key)

    def put_public_key(self, key: PGPKey) -> "PublicKeyring":
        return PublicKeyring(key=_merged(self.key, key))
