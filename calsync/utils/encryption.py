# calsync/utils/encryption.py
from typing import Optional

from cryptography.fernet import Fernet

from calsync.config.settings import get_settings


# Generate a key once and store it in CALENDAR_ENCRYPTION_KEY:
# Fernet.generate_key()


def get_cipher() -> Fernet:
    """Get Fernet cipher instance"""
    key = get_settings().CALENDAR_ENCRYPTION_KEY
    return Fernet(key.encode() if isinstance(key, str) else key)


def encrypt_token(token: Optional[str]) -> Optional[bytes]:
    """Encrypt a token string"""
    if not token:
        return None
    return get_cipher().encrypt(token.encode())


def decrypt_token(encrypted_token: Optional[bytes]) -> Optional[str]:
    """Decrypt a token"""
    if not encrypted_token:
        return None
    return get_cipher().decrypt(encrypted_token).decode()
