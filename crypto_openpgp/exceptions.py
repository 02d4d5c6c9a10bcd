"""
crypto_openpgp exception hierarchy.

All exceptions inherit from OpenPGPError for easy catching.
"""

from typing import Any


class OpenPGPError(Exception):
    """Base exception for all crypto_openpgp errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ConfigurationError(OpenPGPError):
    """An option or tag value is not recognized or not valid here."""


class UnsupportedAlgorithmError(ConfigurationError):
    """The algorithm is known but cannot be used for the requested operation."""

    def __init__(self, message: str, *, algorithm: Any = None) -> None:
        super().__init__(message, algorithm=algorithm)
        self.algorithm = algorithm


class CapabilityError(OpenPGPError):
    """A key does not have the role (master, signing, encryption) an operation needs."""

    def __init__(self, message: str, *, key_id: str | None = None) -> None:
        super().__init__(message, key_id=key_id)
        self.key_id = key_id


class AuthenticationError(OpenPGPError):
    """A password failed to unlock a private key or a password-encrypted message."""

    def __init__(self, message: str, *, key_id: str | None = None) -> None:
        super().__init__(message, key_id=key_id)
        self.key_id = key_id


class CryptoError(OpenPGPError):
    """Cryptographic operation failed."""


class MalformedInputError(CryptoError):
    """Input could not be parsed or lacks an expected packet."""


class IntegrityError(CryptoError):
    """Close-time verification failed (MDC mismatch, corrupted plaintext)."""


class SignatureError(IntegrityError):
    """A required signature is missing or does not verify."""

    def __init__(self, message: str, *, key_id: str | None = None) -> None:
        super().__init__(message, key_id=key_id)
        self.key_id = key_id
