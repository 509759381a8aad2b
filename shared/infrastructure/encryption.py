"""
Card vault

AES-256-GCM encryption for card payloads held at rest (guest cards inside
a booking's request snapshot, the agency card in configuration).

Stored form is ``nonce:tag:ciphertext``, each part hex encoded, with a
fresh random nonce per call. Errors never carry the plaintext, the
ciphertext or key material.
"""

import json
import logging
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.signals import setting_changed
from django.dispatch import receiver

logger = logging.getLogger(__name__)

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16

# Only ever used when DEBUG is on and ENCRYPTION_KEY is unset.
DEV_FALLBACK_SECRET = 'ebt-development-card-vault-do-not-use-in-production'


class EncryptionError(Exception):
    def __init__(self, message: str = 'Failed to encrypt data'):
        super().__init__(message)


class DecryptionError(Exception):
    def __init__(self, message: str = 'Failed to decrypt data'):
        super().__init__(message)


def _is_hex_key(secret: str) -> bool:
    if len(secret) != KEY_SIZE * 2:
        return False
    try:
        bytes.fromhex(secret)
    except ValueError:
        return False
    return True


def derive_key(secret: str, salt: str) -> bytes:
    """
    Turn the operator supplied secret into a 256-bit key.

    A 64 character hex string is used as-is; anything else is treated as
    a passphrase and stretched with scrypt using the deployment salt.
    """
    if _is_hex_key(secret):
        return bytes.fromhex(secret)
    kdf = Scrypt(salt=salt.encode('utf-8'), length=KEY_SIZE, n=2 ** 14, r=8, p=1)
    return kdf.derive(secret.encode('utf-8'))


class CardVault:
    """Authenticated symmetric encryption with a single process-wide key."""

    def __init__(self, key: bytes):
        if len(key) != KEY_SIZE:
            raise ImproperlyConfigured('Card vault key must be 256 bits')
        self._aead = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        try:
            nonce = os.urandom(NONCE_SIZE)
            sealed = self._aead.encrypt(nonce, plaintext.encode('utf-8'), None)
        except (TypeError, ValueError, AttributeError):
            raise EncryptionError() from None
        # AESGCM appends the tag to the ciphertext.
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return f"{nonce.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, token: str) -> str:
        try:
            nonce_hex, tag_hex, ciphertext_hex = token.split(':')
            nonce = bytes.fromhex(nonce_hex)
            tag = bytes.fromhex(tag_hex)
            ciphertext = bytes.fromhex(ciphertext_hex)
            if len(tag) != TAG_SIZE:
                raise ValueError
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
            return plaintext.decode('utf-8')
        except (InvalidTag, TypeError, ValueError, AttributeError):
            raise DecryptionError() from None

    def encrypt_json(self, payload: dict) -> str:
        try:
            serialized = json.dumps(payload, separators=(',', ':'))
        except (TypeError, ValueError):
            raise EncryptionError() from None
        return self.encrypt(serialized)

    def decrypt_json(self, token: str) -> dict:
        plaintext = self.decrypt(token)
        try:
            payload = json.loads(plaintext)
        except ValueError:
            raise DecryptionError() from None
        if not isinstance(payload, dict):
            raise DecryptionError()
        return payload


def build_vault_from_settings() -> CardVault:
    secret = getattr(settings, 'ENCRYPTION_KEY', '') or ''
    if not secret:
        if not settings.DEBUG:
            raise ImproperlyConfigured(
                "ENCRYPTION_KEY is not configured. Refusing to start the card vault "
                "without a key outside of DEBUG mode."
            )
        logger.warning(
            "ENCRYPTION_KEY is not set; the card vault is using the DEVELOPMENT fallback key. "
            "Never run like this with real card data."
        )
        secret = DEV_FALLBACK_SECRET
    salt = getattr(settings, 'ENCRYPTION_KEY_SALT', '') or 'ebt-card-vault-salt'
    return CardVault(derive_key(secret, salt))


@lru_cache(maxsize=1)
def get_card_vault() -> CardVault:
    """Return the process-wide vault, deriving the key on first use."""
    return build_vault_from_settings()


@receiver(setting_changed)
def _reset_vault(sender, setting, **kwargs):
    if setting in ('ENCRYPTION_KEY', 'ENCRYPTION_KEY_SALT', 'DEBUG'):
        get_card_vault.cache_clear()


def encrypt_string(plaintext: str) -> str:
    """Encrypt a string with the process-wide vault."""
    if not plaintext:
        return ''
    return get_card_vault().encrypt(plaintext)


def decrypt_string(encrypted: str) -> str:
    """Decrypt a value produced by ``encrypt_string``."""
    if not encrypted:
        return ''
    return get_card_vault().decrypt(encrypted)
