"""
OpenPGP CFB mode.

Symmetrically encrypted data uses CFB with a zero IV over a random prefix
(block size + 2 octets, the last two repeating). Integrity protected data
(SEIPD) continues the same CFB stream and ends with an MDC packet; legacy
data (SED) resynchronizes the IV after the prefix.
"""

import hashlib
from collections.abc import Callable

from cryptography.hazmat.primitives.ciphers import Cipher, CipherContext, modes
from pgpy.constants import SymmetricKeyAlgorithm

from crypto_openpgp.crypto.session_key import check_cipher
from crypto_openpgp.exceptions import AuthenticationError, MalformedInputError

MDC_PACKET_SIZE = 22  # 2-byte header + 20-byte SHA-1
MDC_HEADER = b"\xd3\x14"


def _block_size(algorithm: SymmetricKeyAlgorithm) -> int:
    return algorithm.block_size // 8


def _cfb(algorithm: SymmetricKeyAlgorithm, key: bytes, iv: bytes) -> Cipher:
    return Cipher(algorithm.cipher(key), modes.CFB(iv))


def new_mdc_hash(prefix: bytes) -> "hashlib._Hash":
    """Start the SHA-1 context covering prefix, plaintext and MDC header."""
    return hashlib.sha1(prefix)


class OpenPGPCFBEncryptor:
    """
    Streaming encryptor for SEIPD (``resync=False``) or SED (``resync=True``) bodies.

    ``header`` holds the encrypted random prefix and must be written before
    any output of ``update``.
    """

    def __init__(
        self,
        algorithm: SymmetricKeyAlgorithm,
        key: bytes,
        random: Callable[[int], bytes],
        *,
        resync: bool,
    ) -> None:
        block_size = _block_size(algorithm)
        random_prefix = random(block_size)
        self.prefix = random_prefix + random_prefix[-2:]

        context = _cfb(algorithm, key, bytes(block_size)).encryptor()
        self.header = context.update(self.prefix)
        if resync:
            context.finalize()
            context = _cfb(algorithm, key, self.header[2:]).encryptor()
        self._context: CipherContext = context

    def update(self, data: bytes) -> bytes:
        return self._context.update(data)

    def finalize(self) -> bytes:
        return self._context.finalize()


class OpenPGPCFBDecryptor:
    """
    Streaming decryptor mirroring OpenPGPCFBEncryptor.

    The random prefix is consumed internally and exposed as ``prefix`` once
    the quick check passed.
    """

    def __init__(self, algorithm: SymmetricKeyAlgorithm, key: bytes, *, resync: bool) -> None:
        self._algorithm = algorithm
        self._key = key
        self._resync = resync
        self._pending = b""
        self._context: CipherContext | None = None
        self.prefix: bytes | None = None
        # Fail fast on unavailable ciphers
        check_cipher(algorithm)

    def update(self, data: bytes) -> bytes:
        """
        Decrypt the next chunk of ciphertext.

        Raises:
            AuthenticationError: If the prefix quick check fails (wrong key).
        """
        if self._context is None:
            self._pending += data
            prefix_size = _block_size(self._algorithm) + 2
            if len(self._pending) < prefix_size:
                return b""
            head, data = self._pending[:prefix_size], self._pending[prefix_size:]
            self._pending = b""
            self._start(head)
        assert self._context is not None
        return self._context.update(data)

    def finalize(self) -> bytes:
        if self._context is None:
            msg = "Encrypted data too short for the CFB prefix"
            raise MalformedInputError(msg)
        return self._context.finalize()

    def _start(self, head: bytes) -> None:
        block_size = _block_size(self._algorithm)
        context = _cfb(self._algorithm, self._key, bytes(block_size)).decryptor()
        prefix = context.update(head)

        # Last 2 bytes of random data should repeat
        if prefix[block_size - 2 : block_size] != prefix[block_size:]:
            msg = "CFB prefix verification failed, possibly wrong key"
            raise AuthenticationError(msg)

        if self._resync:
            context.finalize()
            context = _cfb(self._algorithm, self._key, head[2:]).decryptor()
        self.prefix = prefix
        self._context = context
