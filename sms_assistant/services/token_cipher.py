"""Symmetric encryption utilities for protecting stored OAuth tokens."""

from __future__ import annotations

import base64
import hashlib
from typing import Iterable

from cryptography.fernet import Fernet, InvalidToken, MultiFernet


def _derive_key(secret: str) -> bytes:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class TokenCipherService:
    """Encrypt and decrypt token strings with Fernet keys derived from secrets.

    Several secrets may be supplied to rotate keys: the first one encrypts new
    values, every one of them is tried when decrypting.
    """

    def __init__(self, *, secret: str | Iterable[str]) -> None:
        if isinstance(secret, str):
            secrets = [part.strip() for part in secret.split(",")]
        else:
            secrets = [part.strip() for part in secret]
        secrets = [part for part in secrets if part]
        if not secrets:
            raise ValueError("Token encryption secret must be provided.")
        self._fernet = MultiFernet([Fernet(_derive_key(part)) for part in secrets])

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string and return the ciphertext."""
        token = self._fernet.encrypt(plaintext.encode("utf-8"))
        return token.decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a ciphertext string and return the plaintext."""
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise ValueError(
                "Failed to decrypt token; invalid ciphertext or unknown key."
            ) from exc
        return plaintext.decode("utf-8")


__all__ = ["TokenCipherService"]
