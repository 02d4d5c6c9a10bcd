"""
Crypto-related data models.

Algorithm identifiers come from ``pgpy.constants``; this module only adds the
values the streaming layers pass around.
"""

from dataclasses import dataclass

from pgpy.constants import SymmetricKeyAlgorithm

SEIPD_VERSION = 1


@dataclass(frozen=True, kw_only=True)
class SessionKey:
    """
    Decrypted session key for message content.

    Attributes:
        algorithm: The symmetric algorithm used.
        key_data: The raw key bytes.
    """

    algorithm: SymmetricKeyAlgorithm
    key_data: bytes

    def __post_init__(self) -> None:
        """Validate key size matches algorithm."""
        expected = self.algorithm.key_size // 8
        if len(self.key_data) != expected:
            msg = (
                f"Key size mismatch: {self.algorithm.name} expects {expected} bytes, "
                f"got {len(self.key_data)}"
            )
            raise ValueError(msg)

    @property
    def block_size(self) -> int:
        """Block size in bytes for this key's algorithm."""
        return self.algorithm.block_size // 8
