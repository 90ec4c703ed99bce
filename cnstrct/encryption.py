"""
Token Encryption

OAuth tokens are stored with Fernet symmetric encryption. The key comes from
TOKEN_ENCRYPTION_KEY when set, otherwise it is derived from SECRET_KEY.
"""

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from .config import SECRET_KEY, TOKEN_ENCRYPTION_KEY


def _build_cipher(key: Optional[str] = None) -> Fernet:
    if key:
        return Fernet(key.encode())
    # Fernet requires a urlsafe base64-encoded 32-byte key
    digest = hashlib.sha256(SECRET_KEY.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


cipher_suite = _build_cipher(TOKEN_ENCRYPTION_KEY)


def encrypt_token(token: str) -> str:
    """Encrypt a token for storage"""
    return cipher_suite.encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored token"""
    try:
        return cipher_suite.decrypt(encrypted_token.encode()).decode()
    except InvalidToken as e:
        raise ValueError("Stored token could not be decrypted") from e
