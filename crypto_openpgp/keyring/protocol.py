"""
Keyring capability.

Secret and public keyrings are two variants behind one capability; all
certification and revocation logic is written against this protocol and
dispatches on ``kind`` where the variants differ.
"""

from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, Self, runtime_checkable

from pgpy import PGPKey

if TYPE_CHECKING:
    from crypto_openpgp.keyring.model import PublicKeyring


class KeyringKind(StrEnum):
    SECRET = "secret"
    PUBLIC = "public"


@runtime_checkable
class Keyring(Protocol):
    """Protocol shared by SecretKeyring and PublicKeyring."""

    @property
    def kind(self) -> KeyringKind:
        """Variant tag."""
        ...

    @property
    def key_id(self) -> str:
        """Key id of the master key, 16 uppercase hex digits."""
        ...

    def get(self) -> PGPKey:
        """
        Get the underlying key.

        Returns:
            The master key with its user ids, sub-keys and signatures;
            private for secret keyrings, public for public ones.
        """
        ...

    def get_public(self) -> "PublicKeyring":
        """Project to the distributable public keyring."""
        ...

    def get_public_key(self) -> PGPKey:
        """Get the public master key with its certifications and sub-keys."""
        ...

    def put_public_key(self, key: PGPKey) -> Self:
        """
        Return a copy with the signatures and user ids of ``key`` merged in.

        ``key`` must carry the same master key id. The result is the same
        variant as the receiver.
        """
        ...
