"""Tests for the XOR obfuscation codec."""

from __future__ import annotations

import pytest

from worksync.core.obfuscation import ObfuscationCodec


class TestObfuscationCodec:
    """Tests for ObfuscationCodec."""

    def test_reversible(self) -> None:
        """Deobfuscating obfuscated data should return the original."""
        codec = ObfuscationCodec("secret")
        data = '{"name": "Ionuț", "hours": 8}'.encode()
        assert codec.deobfuscate(codec.obfuscate(data)) == data

    def test_changes_content(self) -> None:
        """Obfuscated data should not be readable JSON."""
        codec = ObfuscationCodec("secret")
        data = b'{"hours": 8}'
        assert codec.obfuscate(data) != data
        assert len(codec.obfuscate(data)) == len(data)

    def test_key_repeats(self) -> None:
        """A one-byte key XORs every byte with the same value."""
        codec = ObfuscationCodec(b"\x01")
        assert codec.obfuscate(b"\x00\x02\xff") == b"\x01\x03\xfe"

    def test_different_keys_differ(self) -> None:
        """Different keys should produce different output."""
        data = b"same content"
        assert ObfuscationCodec("a").obfuscate(data) != ObfuscationCodec("b").obfuscate(data)

    def test_empty_key_rejected(self) -> None:
        """Should raise ValueError for an empty key."""
        with pytest.raises(ValueError):
            ObfuscationCodec("")

    def test_empty_data(self) -> None:
        """Empty input stays empty."""
        assert ObfuscationCodec("k").obfuscate(b"") == b""
