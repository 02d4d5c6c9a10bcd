import pytest
from pgpy.constants import (
    CompressionAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SignatureType,
    SymmetricKeyAlgorithm,
)
from pgpy.constants import RevocationReason as ReasonCode

from crypto_openpgp.exceptions import ConfigurationError
from crypto_openpgp.models.tags import (
    CertificationLevel,
    Cipher,
    Compression,
    KeyAlgorithm,
    KeyUsage,
    RekeyScope,
    RevocationReason,
    parse_tag,
)


@pytest.mark.parametrize(
    ("tag", "algorithm"),
    [
        ("TRIPLE-DES", SymmetricKeyAlgorithm.TripleDES),
        ("CAST5", SymmetricKeyAlgorithm.CAST5),
        ("BLOWFISH", SymmetricKeyAlgorithm.Blowfish),
        ("AES-128", SymmetricKeyAlgorithm.AES128),
        ("AES-192", SymmetricKeyAlgorithm.AES192),
        ("AES-256", SymmetricKeyAlgorithm.AES256),
        ("TWOFISH", SymmetricKeyAlgorithm.Twofish256),
        ("none", SymmetricKeyAlgorithm.Plaintext),
    ],
)
def test_cipher_tags_map_to_symmetric_algorithms(
    tag: str, algorithm: SymmetricKeyAlgorithm
) -> None:
    assert parse_tag(Cipher, tag).algorithm == algorithm


def test_key_algorithm_tags_map_to_public_key_algorithms() -> None:
    assert KeyAlgorithm.DSA.algorithm == PubKeyAlgorithm.DSA
    assert KeyAlgorithm.RSA_SIGN.algorithm == PubKeyAlgorithm.RSAEncryptOrSign
    assert KeyAlgorithm.RSA_ENCRYPT.algorithm == PubKeyAlgorithm.RSAEncryptOrSign
    assert KeyAlgorithm.ELGAMAL_ENCRYPT.algorithm == PubKeyAlgorithm.ElGamal


def test_key_algorithm_roles_follow_the_tag() -> None:
    signing = {KeyAlgorithm.DSA, KeyAlgorithm.RSA_SIGN}
    assert {tag for tag in KeyAlgorithm if tag.can_sign} == signing
    assert {tag for tag in KeyAlgorithm if tag.can_encrypt} == {
        KeyAlgorithm.RSA_ENCRYPT,
        KeyAlgorithm.ELGAMAL_ENCRYPT,
    }


def test_certification_levels_map_to_signature_types() -> None:
    assert CertificationLevel.NO.signature_type == SignatureType.Persona_Cert
    assert CertificationLevel.DEFAULT.signature_type == SignatureType.Generic_Cert
    assert CertificationLevel.CASUAL.signature_type == SignatureType.Casual_Cert
    assert CertificationLevel.POSITIVE.signature_type == SignatureType.Positive_Cert


def test_every_revocation_reason_has_a_code() -> None:
    codes = {reason.code for reason in RevocationReason}

    assert len(codes) == len(RevocationReason)
    assert RevocationReason.USER_NO_LONGER_VALID.code == ReasonCode.UserID


def test_key_usage_flags() -> None:
    assert KeyUsage.SIGN.flags == {KeyFlags.Sign}
    assert KeyUsage.SIGN_CERTIFY.flags == {KeyFlags.Sign, KeyFlags.Certify}
    assert KeyFlags.EncryptCommunications in KeyUsage.ENCRYPT.flags
    assert KeyFlags.Sign not in KeyUsage.ENCRYPT.flags


def test_compression_tags_map_to_algorithms() -> None:
    assert Compression.ZIP.algorithm == CompressionAlgorithm.ZIP
    assert Compression.ZLIB.algorithm == CompressionAlgorithm.ZLIB
    assert Compression.BZIP2.algorithm == CompressionAlgorithm.BZ2


def test_parse_tag_returns_members_unchanged() -> None:
    assert parse_tag(RekeyScope, RekeyScope.MASTER) is RekeyScope.MASTER


def test_parse_tag_rejects_unknown_values_without_default() -> None:
    with pytest.raises(ConfigurationError, match="expected one of: all, master, subkeys"):
        parse_tag(RekeyScope, "everything")


def test_parse_tag_is_case_sensitive() -> None:
    with pytest.raises(ConfigurationError):
        parse_tag(Cipher, "aes-256")
