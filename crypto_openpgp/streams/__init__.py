"""
Layered encryption and decryption pipelines.
"""

from crypto_openpgp.streams.builder import (
    EncryptionKeys,
    build_encryptor,
    encryptor_key,
    encryptor_pbe,
)
from crypto_openpgp.streams.parser import (
    DecryptionKeys,
    build_decryptor,
    decryptor_key,
    decryptor_pbe,
)
from crypto_openpgp.streams.readers import PlaintextReader
from crypto_openpgp.streams.writers import LayerWriter

__all__ = [
    "EncryptionKeys",
    "DecryptionKeys",
    "build_encryptor",
    "build_decryptor",
    "encryptor_pbe",
    "encryptor_key",
    "decryptor_pbe",
    "decryptor_key",
    "LayerWriter",
    "PlaintextReader",
]
