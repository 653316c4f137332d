"""Credential encryption at rest (Fernet with a key derived from ENCRYPTION_KEY)."""
from __future__ import annotations

import base64
import logging

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

_KDF_SALT = b"business-pulse-credentials-v1"


class CredentialCipher:
    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("ENCRYPTION_KEY must be set to store integration credentials")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=_KDF_SALT,
            iterations=100_000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8")))
        self._fernet = Fernet(key)

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            logger.error("Stored credential could not be decrypted (key rotated?)")
            raise
