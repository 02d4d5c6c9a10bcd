"""
OpenPGP primitives, built on pgpy.

This module provides:
- Key generation, loading, protection and sub-key binding
- Binary document signatures over streamed data
- Session key packets (PKESK and SKESK)
- Wipeable password copies
"""

from crypto_openpgp.crypto.keys import (
    clone,
    fingerprint,
    key_id,
    load_key,
    new_key,
    public_clone,
    unlocked,
)
from crypto_openpgp.crypto.secure_bytes import Password, SecureBytes
from crypto_openpgp.crypto.session_key import (
    generate_session_key,
    pkesk_packet,
    pkesk_session_key,
    skesk_packet,
    skesk_session_key,
)
from crypto_openpgp.crypto.signatures import DocumentSigner, verify_document

__all__ = [
    "SecureBytes",
    "Password",
    "new_key",
    "load_key",
    "clone",
    "public_clone",
    "key_id",
    "fingerprint",
    "unlocked",
    "DocumentSigner",
    "verify_document",
    "generate_session_key",
    "pkesk_packet",
    "pkesk_session_key",
    "skesk_packet",
    "skesk_session_key",
]
