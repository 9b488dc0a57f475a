"""Credential vault: AES-256-GCM with a PBKDF2-SHA512 derived key.

Envelope layout (base64): salt(64) | iv(16) | tag(16) | ciphertext.
Every blob gets a fresh salt and IV, so encrypting the same secret twice
gives different output.
"""
import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from wpforge.core.config import settings
from wpforge.core.errors import VaultError
from wpforge.core.logger import setup_logger

logger = setup_logger("vault")

SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KDF_ITERATIONS = 100_000
MIN_KEY_LENGTH = 32


class CredentialVault:
    def __init__(self, key: str | None):
        if not key:
            raise VaultError(
                "ENCRYPTION_KEY is not set. Please set a strong encryption key."
            )
        if len(key) < MIN_KEY_LENGTH:
            raise VaultError(
                f"ENCRYPTION_KEY must be at least {MIN_KEY_LENGTH} characters long."
            )
        self._key = key.encode("utf-8")

    def _derive(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA512(),
            length=32,
            salt=salt,
            iterations=KDF_ITERATIONS,
        )
        return kdf.derive(self._key)

    def encrypt(self, text: str) -> str:
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        sealed = AESGCM(self._derive(salt)).encrypt(iv, text.encode("utf-8"), None)
        # AESGCM appends the tag; the envelope stores it ahead of the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        try:
            raw = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            logger.error(f"Vault blob is not valid base64: {e}")
            raise VaultError(
                "Failed to decrypt data. The data may be corrupted or tampered with."
            ) from e

        header = SALT_LENGTH + IV_LENGTH + TAG_LENGTH
        if len(raw) < header:
            raise VaultError(
                "Failed to decrypt data. The data may be corrupted or tampered with."
            )

        salt = raw[:SALT_LENGTH]
        iv = raw[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
        tag = raw[SALT_LENGTH + IV_LENGTH:header]
        ciphertext = raw[header:]
        try:
            plain = AESGCM(self._derive(salt)).decrypt(iv, ciphertext + tag, None)
            return plain.decode("utf-8")
        except (InvalidTag, UnicodeDecodeError) as e:
            logger.error("Vault decryption failed (bad key or tampered blob)")
            raise VaultError(
                "Failed to decrypt data. The data may be corrupted or tampered with."
            ) from e


def get_vault() -> CredentialVault:
    return CredentialVault(settings.encryption_key)


def encrypt(text: str) -> str:
    return get_vault().encrypt(text)


def decrypt(blob: str) -> str:
    return get_vault().decrypt(blob)


def is_encryption_key_configured() -> bool:
    return bool(settings.encryption_key) and len(settings.encryption_key) >= MIN_KEY_LENGTH
