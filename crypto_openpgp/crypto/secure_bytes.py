"""Wipeable copies of caller-supplied passwords."""

import ctypes
import warnings
from collections.abc import Sequence
from typing import Self, TypeAlias, Union

# Union keeps the alias usable in annotations evaluated at import time
Password: TypeAlias = Union[str, bytes, bytearray, "SecureBytes", Sequence[str]]


def _secure_zero(data: bytearray) -> None:
    if len(data) == 0:
        return
    try:
        buffer = (ctypes.c_char * len(data)).from_buffer(data)
        ctypes.memset(ctypes.addressof(buffer), 0, len(data))
    except Exception as exc:
        warnings.warn(f"ctypes.memset failed, using fallback: {exc}", RuntimeWarning)
        for i in range(len(data)):
            data[i] = 0


class SecureBytes:
    """
    A private copy of a password that is zeroed when the ``with`` block ends.

    Every operation taking a password goes through ``from_password`` inside a
    ``with`` block, so the copy it derives keys from never outlives the call.
    """

    __slots__ = ("_data", "_cleared")

    def __init__(self, data: bytes | bytearray) -> None:
        self._data = bytearray(data)
        self._cleared = False

    def __del__(self) -> None:
        self.clear()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *_: object) -> None:
        self.clear()

    def clear(self) -> None:
        """Zero memory. Idempotent."""
        if self._cleared:
            return
        _secure_zero(self._data)
        self._cleared = True

    def __bytes__(self) -> bytes:
        """Warning: creates an insecure copy, which pgpy's S2K requires."""
        if self._cleared:
            raise RuntimeError("SecureBytes has been cleared")
        return bytes(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return not self._cleared and len(self._data) > 0

    def __repr__(self) -> str:
        if self._cleared:
            return "SecureBytes(<cleared>)"
        return f"SecureBytes(<{len(self._data)} bytes>)"

    @classmethod
    def from_password(cls, password: Password) -> Self:
        """
        Copy a caller-supplied password.

        Accepts text, raw bytes, another SecureBytes or a sequence of single
        characters. Text is UTF-8 encoded. The result is always a fresh copy,
        so clearing it never touches the caller's object.

        Raises:
            TypeError: For any other type.
            RuntimeError: If ``password`` is an already cleared SecureBytes.
        """
        if isinstance(password, SecureBytes):
            if password._cleared:
                raise RuntimeError("SecureBytes has been cleared")
            return cls(password._data)
        if isinstance(password, (bytes, bytearray)):
            return cls(password)
        if isinstance(password, Sequence) and all(isinstance(c, str) for c in password):
            encoded = bytearray("".join(password), "utf-8")
            try:
                return cls(encoded)
            finally:
                _secure_zero(encoded)
        msg = f"Unsupported password type: {type(password).__name__}"
        raise TypeError(msg)
