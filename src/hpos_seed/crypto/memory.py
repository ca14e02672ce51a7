"""
Scoped secret buffers for the HPOS Seed SDK

Seeds, passphrases and symmetric keys live in a SecretBuffer, a fixed-size
mutable byte buffer that is overwritten with zeros when its scope ends. Use
it as a context manager so the wipe happens on every exit path, including
exceptions and task cancellation.

Note: Python cannot guarantee that no other copy of a secret exists (the
libraries involved take immutable bytes), so wiping is best effort for those
copies. The buffers this SDK owns are always cleared.
"""

import hmac
from typing import Union

BytesLike = Union[bytes, bytearray, memoryview]


class SecretBuffer:
    """
    Fixed-size secret byte buffer, zero-filled on creation and on wipe.

    The buffer never changes size: writes go through item assignment or
    ``write`` and must match the existing length.
    """

    __slots__ = ('_buf',)

    def __init__(self, size: int):
        if not isinstance(size, int) or size < 0:
            raise ValueError("Secret buffer size must be a non-negative integer")
        self._buf = bytearray(size)

    @classmethod
    def from_bytes(cls, data: BytesLike) -> 'SecretBuffer':
        """Copy ``data`` into a new buffer of the same length"""
        buffer = cls(len(data))
        buffer.write(data)
        return buffer

    def write(self, data: BytesLike) -> None:
        """Overwrite the whole buffer in place"""
        if len(data) != len(self._buf):
            raise ValueError(
                f"Cannot write {len(data)} bytes into a {len(self._buf)} byte secret buffer"
            )
        self._buf[:] = data

    def read(self) -> bytes:
        """Return an immutable copy for APIs that only accept bytes"""
        return bytes(self._buf)

    def wipe(self) -> None:
        """Overwrite the contents with zeros, in place"""
        self._buf[:] = bytes(len(self._buf))

    def is_zero(self) -> bool:
        return not any(self._buf)

    def copy(self) -> 'SecretBuffer':
        return SecretBuffer.from_bytes(self._buf)

    def __len__(self) -> int:
        return len(self._buf)

    def __getitem__(self, index: int) -> int:
        return self._buf[index]

    def __setitem__(self, index: int, value: int) -> None:
        self._buf[index] = value

    def __iter__(self):
        return iter(self._buf)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecretBuffer):
            return hmac.compare_digest(bytes(self._buf), bytes(other._buf))
        if isinstance(other, (bytes, bytearray, memoryview)):
            return hmac.compare_digest(bytes(self._buf), bytes(other))
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"SecretBuffer(len={len(self._buf)})"

    __str__ = __repr__

    def __enter__(self) -> 'SecretBuffer':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        self.wipe()
        return False

    def __del__(self):
        buf = getattr(self, '_buf', None)
        if buf is not None:
            buf[:] = bytes(len(buf))


def passphrase_buffer(passphrase: Union[str, BytesLike]) -> SecretBuffer:
    """
    Copy a passphrase into a SecretBuffer.

    Strings are UTF-8 encoded. The caller's object cannot be cleared, but
    every copy made by this SDK lives in a wipeable buffer.
    """
    if isinstance(passphrase, str):
        encoded = bytearray(passphrase.encode('utf-8'))
        try:
            return SecretBuffer.from_bytes(encoded)
        finally:
            encoded[:] = bytes(len(encoded))
    if isinstance(passphrase, (bytes, bytearray, memoryview)):
        return SecretBuffer.from_bytes(passphrase)
    raise TypeError("Passphrase must be str or bytes")
