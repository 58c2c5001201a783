"""
Client-side password encryption for uploaded payloads.

Blob layout (no sidecar metadata, offsets fixed by convention):

    salt (16 bytes) || iv (12 bytes) || AES-256-GCM ciphertext with 16-byte tag

The key is derived with PBKDF2-HMAC-SHA256, 100 000 iterations. These
constants are mirrored by the browser decryptor in templates/protected.html
and must not change independently.
"""
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from quickdrop.exceptions import DecryptionError

SALT_LENGTH = 16
IV_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32
PBKDF2_ITERATIONS = 100_000

HEADER_LENGTH = SALT_LENGTH + IV_LENGTH


def derive_key(password: str, salt: bytes) -> bytes:
    """Derive a 256-bit AES key from a password and salt."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt(plaintext: bytes, password: str) -> bytes:
    """
    Encrypt a payload with a password.

    A fresh salt and IV are generated for every call, so encrypting the
    same payload twice with the same password yields different blobs.

    Args:
        plaintext: Bytes to protect
        password: Non-empty password

    Returns:
        salt || iv || ciphertext (tag appended by AES-GCM)

    Raises:
        ValueError: If password is empty
    """
    if not password:
        raise ValueError("Password must not be empty")

    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    key = derive_key(password, salt)
    ciphertext = AESGCM(key).encrypt(iv, plaintext, None)
    return salt + iv + ciphertext


def decrypt(blob: bytes, password: str) -> bytes:
    """
    Decrypt a blob produced by encrypt().

    Raises:
        DecryptionError: Wrong password, truncated blob or tampered data.
            All three surface identically.
    """
    if not password or len(blob) < HEADER_LENGTH + TAG_LENGTH:
        raise DecryptionError()

    salt = blob[:SALT_LENGTH]
    iv = blob[SALT_LENGTH:HEADER_LENGTH]
    ciphertext = blob[HEADER_LENGTH:]

    key = derive_key(password, salt)
    try:
        return AESGCM(key).decrypt(iv, ciphertext, None)
    except InvalidTag:
        raise DecryptionError() from None
