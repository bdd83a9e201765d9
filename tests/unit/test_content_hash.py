"""Unit tests for content hashing."""

import hashlib

from cradle.app.knowledge.hashing import content_hash


def test_hash_is_lowercase_sha256_hex() -> None:
    """Test that the hash is the 64-char lowercase SHA-256 of the UTF-8 bytes."""
    digest = content_hash("Sono do bebê")

    assert digest == hashlib.sha256("Sono do bebê".encode()).hexdigest()
    assert len(digest) == 64
    assert digest == digest.lower()


def test_hash_is_deterministic() -> None:
    """Test that identical input yields identical hashes."""
    assert content_hash("same text") == content_hash("same text")


def test_hash_is_not_normalized() -> None:
    """Test that whitespace and line-ending differences change the hash."""
    assert content_hash("a\nb") != content_hash("a\r\nb")
    assert content_hash("text") != content_hash("text ")


def test_empty_string_hash() -> None:
    """Test hashing of the empty string."""
    assert content_hash("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
