"""
Caller-facing tags and the session key model.

The tags module holds the string tags callers pass as options and their
mapping tables to ``pgpy.constants`` identifiers.
"""

from crypto_openpgp.models.crypto import SessionKey
from crypto_openpgp.models.tags import (
    CertificationLevel,
    Cipher,
    Compression,
    KeyAlgorithm,
    KeyUsage,
    RekeyScope,
    Requirement,
    RevocationReason,
    parse_tag,
)

__all__ = [
    # Tags
    "Cipher",
    "Compression",
    "KeyAlgorithm",
    "CertificationLevel",
    "RevocationReason",
    "KeyUsage",
    "RekeyScope",
    "Requirement",
    "parse_tag",
    # Models
    "SessionKey",
]
