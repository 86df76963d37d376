"""
HybridX API - Security Utilities.

Token encryption for third-party OAuth credentials stored in MongoDB.
"""

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet


def get_cipher(secret_key: Optional[str] = None) -> Fernet:
    """
    Get Fernet cipher derived from the application secret.

    Args:
        secret_key: Secret to derive the key from. Defaults to settings.SECRET_KEY.

    Returns:
        Fernet: Cipher for encrypting and decrypting tokens.
    """
    if secret_key is None:
        from settings import settings
        secret_key = settings.SECRET_KEY
    digest = hashlib.sha256(secret_key.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_token(token: str, secret_key: Optional[str] = None) -> str:
    """Encrypt OAuth token for storage."""
    return get_cipher(secret_key).encrypt(token.encode()).decode()


def decrypt_token(encrypted: str, secret_key: Optional[str] = None) -> str:
    """Decrypt stored OAuth token."""
    return get_cipher(secret_key).decrypt(encrypted.encode()).decode()
