"""
Short identifier generation.

Identifiers are 6 characters drawn uniformly from [a-z0-9] (~31 bits).
They are capability tokens for ephemeral links, not guess-proof secrets.
No uniqueness check is made here: a collision overwrites the earlier
object. See Uploader(check_collisions=True) for the opt-in check.
"""
import re
import secrets

from quickdrop.exceptions import ValidationError

ID_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
ID_LENGTH = 6

_ID_PATTERN = re.compile(r"^[a-z0-9]{6}$")


def generate_id() -> str:
    """Return a fresh random identifier using a CSPRNG."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))


def is_valid_id(value: str) -> bool:
    return bool(_ID_PATTERN.fullmatch(value or ""))


def validate_id(value: str) -> str:
    """
    Validate an identifier before it is used for any storage lookup.

    Raises:
        ValidationError: If the value is not 6 lowercase alphanumerics
    """
    if not is_valid_id(value):
        raise ValidationError("Invalid image ID")
    return value
