"""
OpenPGP message protection and keyring management.

Example:
    ```python
    import io

    from crypto_openpgp import decryptor_pbe, encryptor_pbe

    sink = io.BytesIO()
    with encryptor_pbe(sink, "secret", enarmor=True) as plaintext:
        plaintext.write(b"attack at dawn")

    with decryptor_pbe(io.BytesIO(sink.getvalue()), "secret") as reader:
        print(reader.read())
    ```
"""

from crypto_openpgp.config import EncryptorConfig, GenerateConfig
from crypto_openpgp.exceptions import (
    AuthenticationError,
    CapabilityError,
    ConfigurationError,
    CryptoError,
    IntegrityError,
    MalformedInputError,
    OpenPGPError,
    SignatureError,
    UnsupportedAlgorithmError,
)
from crypto_openpgp.keyring import (
    Keyring,
    KeyringKind,
    PublicKeyring,
    SecretKeyring,
    add_revoker,
    add_subkeypair,
    certify,
    generate,
    keyring_certifications,
    keyring_encryption_key,
    keyring_load,
    keyring_revoked,
    keyring_revokers,
    keyring_save,
    keyring_signing_key,
    keyring_user_ids,
    publish,
    rekey_password,
    revoke,
)
from crypto_openpgp.models.tags import (
    CertificationLevel,
    Cipher,
    Compression,
    KeyAlgorithm,
    KeyUsage,
    RekeyScope,
    Requirement,
    RevocationReason,
)
from crypto_openpgp.streams import (
    DecryptionKeys,
    EncryptionKeys,
    build_decryptor,
    build_encryptor,
    decryptor_key,
    decryptor_pbe,
    encryptor_key,
    encryptor_pbe,
)

__version__ = "0.1.0"


def library_version() -> str:
    return f"crypto_openpgp {__version__}"


__all__ = [
    "library_version",
    # Pipelines
    "build_encryptor",
    "build_decryptor",
    "encryptor_pbe",
    "encryptor_key",
    "decryptor_pbe",
    "decryptor_key",
    "EncryptionKeys",
    "DecryptionKeys",
    "EncryptorConfig",
    # Keyrings
    "Keyring",
    "KeyringKind",
    "SecretKeyring",
    "PublicKeyring",
    "GenerateConfig",
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
    # Tags
    "Cipher",
    "Compression",
    "KeyAlgorithm",
    "KeyUsage",
    "CertificationLevel",
    "RevocationReason",
    "RekeyScope",
    "Requirement",
    # Exceptions
    "OpenPGPError",
    "ConfigurationError",
    "UnsupportedAlgorithmError",
    "CapabilityError",
    "AuthenticationError",
    "CryptoError",
    "MalformedInputError",
    "IntegrityError",
    "SignatureError",
]
