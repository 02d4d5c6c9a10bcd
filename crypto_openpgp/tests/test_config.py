from datetime import UTC, datetime

import pytest

from crypto_openpgp.config import (
    EncryptorConfig,
    GenerateConfig,
    make_config,
    parse_key_spec,
    to_timestamp,
)
from crypto_openpgp.exceptions import ConfigurationError
from crypto_openpgp.models.tags import (
    CertificationLevel,
    Cipher,
    Compression,
    KeyAlgorithm,
)


def test_encryptor_config_defaults() -> None:
    config = EncryptorConfig()

    assert config.enarmor is False
    assert config.compress is True
    assert config.integrity is True
    assert config.cipher == Cipher.AES_256
    assert config.compression == Compression.ZIP
    assert config.partial == 1 << 20


def test_encryptor_config_normalizes_string_tags() -> None:
    config = EncryptorConfig(cipher="AES-128", compression="BZIP2")

    assert config.cipher is Cipher.AES_128
    assert config.compression is Compression.BZIP2


@pytest.mark.parametrize("partial", [256, 1000, 1 << 31, "big"])
def test_encryptor_config_rejects_invalid_partial(partial: object) -> None:
    with pytest.raises(ConfigurationError, match="partial"):
        EncryptorConfig(partial=partial)


def test_encryptor_config_rejects_unknown_cipher() -> None:
    with pytest.raises(ConfigurationError, match="Unrecognized Cipher"):
        EncryptorConfig(cipher="ROT13")


def test_encryptor_config_rejects_non_callable_random() -> None:
    with pytest.raises(ConfigurationError, match="random"):
        EncryptorConfig(random=b"not callable")


def test_generate_config_defaults() -> None:
    config = GenerateConfig()

    assert config.master == (KeyAlgorithm.DSA, 2048)
    assert config.encryption == (KeyAlgorithm.RSA_ENCRYPT, 2048)
    assert config.level == CertificationLevel.POSITIVE
    assert config.expire == 0


def test_generate_config_accepts_no_encryption_key() -> None:
    config = GenerateConfig(encryption=None, master=("RSA-SIGN", 1024))

    assert config.encryption is None
    assert config.master == (KeyAlgorithm.RSA_SIGN, 1024)


def test_generate_config_rejects_negative_expire() -> None:
    with pytest.raises(ConfigurationError, match="expire"):
        GenerateConfig(expire=-1)


def test_generate_config_rejects_unknown_level() -> None:
    with pytest.raises(ConfigurationError, match="CertificationLevel"):
        GenerateConfig(level="ULTIMATE")


def test_parse_key_spec_rejects_bad_pairs() -> None:
    with pytest.raises(ConfigurationError, match="pair"):
        parse_key_spec("DSA", "master")
    with pytest.raises(ConfigurationError, match="strength"):
        parse_key_spec(("DSA", 0), "master")
    with pytest.raises(ConfigurationError, match="KeyAlgorithm"):
        parse_key_spec(("ECDSA", 256), "master")


def test_make_config_wraps_unknown_options() -> None:
    with pytest.raises(ConfigurationError, match="EncryptorConfig"):
        make_config(EncryptorConfig, {"armour": True})


def test_to_timestamp_accepts_datetime_and_int() -> None:
    moment = datetime(2024, 1, 1, tzinfo=UTC)

    assert to_timestamp(moment) == 1_704_067_200
    assert to_timestamp(42) == 42
    assert to_timestamp(None) > 1_700_000_000


def test_to_timestamp_rejects_negative() -> None:
    with pytest.raises(ConfigurationError, match="Invalid date"):
        to_timestamp(-5)
