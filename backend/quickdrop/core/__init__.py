"""
Pure building blocks: identifiers, object keys and the encryption codec.
Nothing in here performs network I/O.
"""
from quickdrop.core.identifiers import generate_id, is_valid_id, validate_id
from quickdrop.core.crypto import encrypt, decrypt
from quickdrop.core.objects import StoredObject, object_key, split_key

__all__ = [
    "generate_id",
    "is_valid_id",
    "validate_id",
    "encrypt",
    "decrypt",
    "StoredObject",
    "object_key",
    "split_key",
]
