"""Symmetric encryption for token records persisted by the broker."""

from __future__ import annotations

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken


class TokenCipherService:
    """Encrypt and decrypt serialized token records with a derived Fernet key."""

    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    @classmethod
    def from_secret(cls, secret: Optional[str]) -> Optional["TokenCipherService"]:
        """Build a cipher when a secret is configured, otherwise ``None``."""
        return cls(secret=secret) if secret else None

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise ValueError(
                "Failed to decrypt token record; wrong secret or corrupt data."
            ) from exc
        return plaintext.decode("utf-8")


__all__ = ["TokenCipherService"]
