"""
Caller-facing tags and their mapping tables to OpenPGP identifiers.

Every tag enum accepts either its member or its string value (``"AES-256"``,
``"sign-certify"``); anything else is a ConfigurationError, never a silent
default. The identifiers on the other side of each table are pgpy's.
"""

from enum import StrEnum
from typing import TypeVar

from pgpy import constants

from crypto_openpgp.exceptions import ConfigurationError

TagT = TypeVar("TagT", bound=StrEnum)


class Cipher(StrEnum):
    TRIPLE_DES = "TRIPLE-DES"
    CAST5 = "CAST5"
    BLOWFISH = "BLOWFISH"
    AES_128 = "AES-128"
    AES_192 = "AES-192"
    AES_256 = "AES-256"
    TWOFISH = "TWOFISH"
    NONE = "none"

    @property
    def algorithm(self) -> constants.SymmetricKeyAlgorithm:
        return _CIPHERS[self]


class KeyAlgorithm(StrEnum):
    """
    Key pair algorithm tags.

    RSA-SIGN and RSA-ENCRYPT are generated as RSA encrypt-or-sign keys (the
    sign-only and encrypt-only identifiers are deprecated); the role is
    carried by the key flags of the self-certification or binding.
    """

    DSA = "DSA"
    RSA_SIGN = "RSA-SIGN"
    RSA_ENCRYPT = "RSA-ENCRYPT"
    ELGAMAL_ENCRYPT = "ELGAMAL-ENCRYPT"

    @property
    def algorithm(self) -> constants.PubKeyAlgorithm:
        return _KEY_ALGORITHMS[self]

    @property
    def can_sign(self) -> bool:
        return self in (KeyAlgorithm.DSA, KeyAlgorithm.RSA_SIGN)

    @property
    def can_encrypt(self) -> bool:
        return self in (KeyAlgorithm.RSA_ENCRYPT, KeyAlgorithm.ELGAMAL_ENCRYPT)


class CertificationLevel(StrEnum):
    NO = "NO"
    DEFAULT = "DEFAULT"
    CASUAL = "CASUAL"
    POSITIVE = "POSITIVE"

    @property
    def signature_type(self) -> constants.SignatureType:
        return _CERTIFICATION_LEVELS[self]


class RevocationReason(StrEnum):
    KEY_COMPROMISED = "KEY-COMPROMISED"
    KEY_RETIRED = "KEY-RETIRED"
    KEY_SUPERSEDED = "KEY-SUPERSEDED"
    NO_REASON = "NO-REASON"
    USER_NO_LONGER_VALID = "USER-NO-LONGER-VALID"

    @property
    def code(self) -> constants.RevocationReason:
        return _REVOCATION_REASONS[self]


class KeyUsage(StrEnum):
    ENCRYPT = "encrypt"
    SIGN_CERTIFY = "sign-certify"
    SIGN = "sign"

    @property
    def flags(self) -> frozenset[constants.KeyFlags]:
        return _KEY_USAGES[self]


class Compression(StrEnum):
    ZIP = "ZIP"
    ZLIB = "ZLIB"
    BZIP2 = "BZIP2"

    @property
    def algorithm(self) -> constants.CompressionAlgorithm:
        return _COMPRESSIONS[self]


class Requirement(StrEnum):
    """Checks a decryptor must enforce when the plaintext handle closes."""

    INTEGRITY = "integrity"
    SIGNED = "signed"
    VERIFIED = "verified"


class RekeyScope(StrEnum):
    ALL = "all"
    MASTER = "master"
    SUBKEYS = "subkeys"


_CIPHERS = {
    Cipher.TRIPLE_DES: constants.SymmetricKeyAlgorithm.TripleDES,
    Cipher.CAST5: constants.SymmetricKeyAlgorithm.CAST5,
    Cipher.BLOWFISH: constants.SymmetricKeyAlgorithm.Blowfish,
    Cipher.AES_128: constants.SymmetricKeyAlgorithm.AES128,
    Cipher.AES_192: constants.SymmetricKeyAlgorithm.AES192,
    Cipher.AES_256: constants.SymmetricKeyAlgorithm.AES256,
    Cipher.TWOFISH: constants.SymmetricKeyAlgorithm.Twofish256,
    Cipher.NONE: constants.SymmetricKeyAlgorithm.Plaintext,
}

_KEY_ALGORITHMS = {
    KeyAlgorithm.DSA: constants.PubKeyAlgorithm.DSA,
    KeyAlgorithm.RSA_SIGN: constants.PubKeyAlgorithm.RSAEncryptOrSign,
    KeyAlgorithm.RSA_ENCRYPT: constants.PubKeyAlgorithm.RSAEncryptOrSign,
    KeyAlgorithm.ELGAMAL_ENCRYPT: constants.PubKeyAlgorithm.ElGamal,
}

_CERTIFICATION_LEVELS = {
    CertificationLevel.NO: constants.SignatureType.Persona_Cert,
    CertificationLevel.DEFAULT: constants.SignatureType.Generic_Cert,
    CertificationLevel.CASUAL: constants.SignatureType.Casual_Cert,
    CertificationLevel.POSITIVE: constants.SignatureType.Positive_Cert,
}

_REVOCATION_REASONS = {
    RevocationReason.KEY_COMPROMISED: constants.RevocationReason.Compromised,
    RevocationReason.KEY_RETIRED: constants.RevocationReason.Retired,
    RevocationReason.KEY_SUPERSEDED: constants.RevocationReason.Superseded,
    RevocationReason.NO_REASON: constants.RevocationReason.NotSpecified,
    RevocationReason.USER_NO_LONGER_VALID: constants.RevocationReason.UserID,
}

_KEY_USAGES = {
    KeyUsage.ENCRYPT: frozenset(
        {constants.KeyFlags.EncryptCommunications, constants.KeyFlags.EncryptStorage}
    ),
    KeyUsage.SIGN_CERTIFY: frozenset({constants.KeyFlags.Sign, constants.KeyFlags.Certify}),
    KeyUsage.SIGN: frozenset({constants.KeyFlags.Sign}),
}

_COMPRESSIONS = {
    Compression.ZIP: constants.CompressionAlgorithm.ZIP,
    Compression.ZLIB: constants.CompressionAlgorithm.ZLIB,
    Compression.BZIP2: constants.CompressionAlgorithm.BZ2,
}


def parse_tag(tag_type: type[TagT], value: object) -> TagT:
    """
    Coerce a caller-supplied value to a tag enum member.

    Args:
        tag_type: The tag enum class.
        value: A member of ``tag_type`` or its string value.

    Returns:
        The matching member.

    Raises:
        ConfigurationError: If the value is not a recognized tag.
    """
    if isinstance(value, tag_type):
        return value
    try:
        return tag_type(value)
    except ValueError:
        allowed = ", ".join(member.value for member in tag_type)
        msg = f"Unrecognized {tag_type.__name__} tag: {value!r} (expected one of: {allowed})"
        raise ConfigurationError(msg) from None
