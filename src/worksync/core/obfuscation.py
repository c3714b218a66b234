"""Reversible XOR obfuscation for file content at rest.

This is light obfuscation to keep stored JSON from being casually
readable, not encryption.
"""

from __future__ import annotations

from itertools import cycle


class ObfuscationCodec:
    """XOR every byte with a repeating key.

    Applying the codec twice returns the original bytes, so obfuscate and
    deobfuscate are the same transform.
    """

    def __init__(self, key: str | bytes) -> None:
        if isinstance(key, str):
            key = key.encode("utf-8")
        if not key:
            raise ValueError("Obfuscation key must not be empty")
        self._key = key

    def obfuscate(self, data: bytes) -> bytes:
        return bytes(b ^ k for b, k in zip(data, cycle(self._key)))

    def deobfuscate(self, data: bytes) -> bytes:
        return self.obfuscate(data)
