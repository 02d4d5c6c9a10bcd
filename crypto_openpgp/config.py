"""
Option sets for the stream builder and keyring generation.

Tag-valued fields accept the enum member or its string tag and are
normalized on construction; invalid values raise ConfigurationError.
"""

import os
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeAlias, TypeVar

from crypto_openpgp.exceptions import ConfigurationError
from crypto_openpgp.models.tags import (
    CertificationLevel,
    Cipher,
    Compression,
    KeyAlgorithm,
    parse_tag,
)

RandomSource: TypeAlias = Callable[[int], bytes]
Date: TypeAlias = datetime | int | None

ConfigT = TypeVar("ConfigT", "EncryptorConfig", "GenerateConfig")

DEFAULT_PARTIAL = 1 << 20
MIN_PARTIAL = 512
MAX_PARTIAL = 1 << 30


def to_timestamp(date: Date) -> int:
    """Seconds since the epoch; ``None`` means now."""
    if date is None:
        return int(time.time())
    if isinstance(date, datetime):
        return int(date.timestamp())
    if isinstance(date, int) and date >= 0:
        return date
    msg = f"Invalid date: {date!r}"
    raise ConfigurationError(msg)


def parse_key_spec(value: object, name: str) -> tuple[KeyAlgorithm, int]:
    """Normalize an ``(algorithm, strength)`` pair."""
    try:
        algorithm, bits = value  # type: ignore[misc]
    except (TypeError, ValueError):
        msg = f"{name} must be an (algorithm, strength) pair, got {value!r}"
        raise ConfigurationError(msg) from None
    if not isinstance(bits, int) or bits <= 0:
        msg = f"{name} strength must be a positive integer, got {bits!r}"
        raise ConfigurationError(msg)
    return parse_tag(KeyAlgorithm, algorithm), bits


@dataclass(frozen=True, kw_only=True)
class EncryptorConfig:
    """
    Attributes:
        enarmor: Wrap the output in ASCII armor.
        compress: Insert a compression layer.
        compression: Compression algorithm when ``compress`` is set.
        cipher: Symmetric cipher for the message.
        integrity: Use integrity protected data with an MDC (otherwise legacy
            symmetrically encrypted data).
        partial: Partial body chunk size, a power of two in [512, 2^30].
        filename: File name stored in the literal data header.
        date: Modification date stored in the literal data header.
        random: Byte source for salts, IVs, prefixes and session keys.
    """

    enarmor: bool = False
    compress: bool = True
    compression: Compression = Compression.ZIP
    cipher: Cipher = Cipher.AES_256
    integrity: bool = True
    partial: int = DEFAULT_PARTIAL
    filename: str = ""
    date: Date = None
    random: RandomSource = os.urandom

    def __post_init__(self) -> None:
        object.__setattr__(self, "cipher", parse_tag(Cipher, self.cipher))
        object.__setattr__(self, "compression", parse_tag(Compression, self.compression))
        partial = self.partial
        if not isinstance(partial, int) or not MIN_PARTIAL <= partial <= MAX_PARTIAL:
            msg = f"partial must be between {MIN_PARTIAL} and {MAX_PARTIAL}, got {partial!r}"
            raise ConfigurationError(msg)
        if partial & (partial - 1):
            msg = f"partial must be a power of two, got {partial}"
            raise ConfigurationError(msg)
        if not callable(self.random):
            msg = "random must be callable"
            raise ConfigurationError(msg)

    @property
    def timestamp(self) -> int:
        return to_timestamp(self.date)


@dataclass(frozen=True, kw_only=True)
class GenerateConfig:
    """
    Key material, salts and IVs come from the operating system CSPRNG.

    Attributes:
        date: Creation time of the keys and self-signatures.
        master: Master key (algorithm, strength).
        encryption: Encryption sub-key (algorithm, strength), or None.
        cipher: Cipher protecting the private keys ("none" stores them clear).
        expire: Key lifetime in seconds from ``date``; 0 never expires.
        level: Certification level of the self-certification.
    """

    date: Date = None
    master: tuple[KeyAlgorithm, int] = (KeyAlgorithm.DSA, 2048)
    encryption: tuple[KeyAlgorithm, int] | None = (KeyAlgorithm.RSA_ENCRYPT, 2048)
    cipher: Cipher = Cipher.AES_256
    expire: int = 0
    level: CertificationLevel = CertificationLevel.POSITIVE

    def __post_init__(self) -> None:
        object.__setattr__(self, "master", parse_key_spec(self.master, "master"))
        if self.encryption is not None:
            object.__setattr__(self, "encryption", parse_key_spec(self.encryption, "encryption"))
        object.__setattr__(self, "cipher", parse_tag(Cipher, self.cipher))
        object.__setattr__(self, "level", parse_tag(CertificationLevel, self.level))
        if not isinstance(self.expire, int) or self.expire < 0:
            msg = f"expire must be a non-negative number of seconds, got {self.expire!r}"
            raise ConfigurationError(msg)

    @property
    def timestamp(self) -> int:
        return to_timestamp(self.date)


def make_config(config_type: type[ConfigT], options: Mapping[str, Any]) -> ConfigT:
    """
    Build a config from caller keyword options.

    Raises:
        ConfigurationError: For unknown option names or invalid values.
    """
    try:
        return config_type(**options)
    except TypeError as e:
        msg = f"Invalid options for {config_type.__name__}: {e}"
        raise ConfigurationError(msg) from e
