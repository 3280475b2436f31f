"""Tests for AES-256-GCM token encryption."""

import base64

import pytest

from social_connect.auth.cipher import TokenCipher, generate_key
from social_connect.exceptions import DecryptionFailedError, InvalidConfigurationError


@pytest.fixture
def cipher():
    return TokenCipher.from_secret(generate_key())


@pytest.mark.parametrize(
    "plaintext",
    ["AT1", "", "x" * 4096, "tökén-with-ünicode", "a.b-c_d~e/f+g="],
)
def test_round_trip(cipher, plaintext):
    encrypted = cipher.encrypt(plaintext)
    assert cipher.decrypt(encrypted.ciphertext, encrypted.iv) == plaintext


def test_fresh_iv_per_call(cipher):
    first = cipher.encrypt("same-token")
    second = cipher.encrypt("same-token")
    assert first.iv != second.iv
    assert first.ciphertext != second.ciphertext


def test_ciphertext_does_not_contain_plaintext(cipher):
    encrypted = cipher.encrypt("secret-access-token")
    assert "secret-access-token" not in encrypted.ciphertext
    assert len(base64.urlsafe_b64decode(encrypted.iv)) == 12


def test_bit_flip_fails(cipher):
    encrypted = cipher.encrypt("AT1")
    raw = bytearray(base64.urlsafe_b64decode(encrypted.ciphertext))
    raw[0] ^= 0x01
    tampered = base64.urlsafe_b64encode(bytes(raw)).decode()

    with pytest.raises(DecryptionFailedError):
        cipher.decrypt(tampered, encrypted.iv)


def test_truncated_ciphertext_fails(cipher):
    encrypted = cipher.encrypt("AT1")
    raw = base64.urlsafe_b64decode(encrypted.ciphertext)[:-4]
    with pytest.raises(DecryptionFailedError):
        cipher.decrypt(base64.urlsafe_b64encode(raw).decode(), encrypted.iv)


def test_wrong_key_fails(cipher):
    encrypted = cipher.encrypt("AT1")
    other = TokenCipher.from_secret(generate_key())
    with pytest.raises(DecryptionFailedError):
        other.decrypt(encrypted.ciphertext, encrypted.iv)


def test_wrong_iv_fails(cipher):
    encrypted = cipher.encrypt("AT1")
    other_iv = cipher.encrypt("AT1").iv
    with pytest.raises(DecryptionFailedError):
        cipher.decrypt(encrypted.ciphertext, other_iv)


def test_associated_data_must_match(cipher):
    encrypted = cipher.encrypt("RT1", b"refresh_token")
    assert cipher.decrypt(encrypted.ciphertext, encrypted.iv, b"refresh_token") == "RT1"
    with pytest.raises(DecryptionFailedError):
        cipher.decrypt(encrypted.ciphertext, encrypted.iv, b"access_token")


def test_garbage_base64_fails(cipher):
    with pytest.raises(DecryptionFailedError):
        cipher.decrypt("!!!not-base64!!!", "also bad")


def test_missing_key():
    with pytest.raises(InvalidConfigurationError, match="not configured"):
        TokenCipher.from_secret(None)


def test_short_key():
    short = base64.urlsafe_b64encode(b"0" * 16).decode()
    with pytest.raises(InvalidConfigurationError, match="32 bytes"):
        TokenCipher.from_secret(short)


def test_generated_key_is_32_bytes():
    assert len(base64.urlsafe_b64decode(generate_key())) == 32
