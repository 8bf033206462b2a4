try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from sms_assistant.services.token_cipher import TokenCipherService


def test_token_cipher_roundtrip() -> None:
    cipher = TokenCipherService(secret="super-secret-key")
    plaintext = "sensitive-token"

    encrypted = cipher.encrypt(plaintext)
    assert encrypted != plaintext
    assert cipher.decrypt(encrypted) == plaintext


def test_token_cipher_rejects_bad_ciphertext() -> None:
    cipher = TokenCipherService(secret="another-secret")

    with pytest.raises(ValueError):
        cipher.decrypt("not-valid")


def test_token_cipher_requires_a_secret() -> None:
    with pytest.raises(ValueError):
        TokenCipherService(secret=" , ")


def test_rotated_secret_still_decrypts_old_values() -> None:
    old = TokenCipherService(secret="old-secret")
    ciphertext = old.encrypt("refresh-token")

    rotated = TokenCipherService(secret="new-secret,old-secret")
    assert rotated.decrypt(ciphertext) == "refresh-token"

    fresh = rotated.encrypt("refresh-token")
    assert TokenCipherService(secret="new-secret").decrypt(fresh) == "refresh-token"
    with pytest.raises(ValueError):
        old.decrypt(fresh)
