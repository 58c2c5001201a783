"""
Error taxonomy shared by the uploader, gateway and garbage collector.

- ValidationError: malformed identifier or upload input (HTTP 400)
- NotFoundError: no object at the computed key, expired or never existed (HTTP 404)
- UpstreamError: the object store call failed or timed out (HTTP 5xx)
- AuthError: signature rejected by the provider, or decryption failed
"""
from typing import Optional


class QuickDropError(Exception):
    """Base class for all QuickDrop errors."""


class ValidationError(QuickDropError):
    """Input rejected before any network call."""


class NotFoundError(QuickDropError):
    """Object missing or expired. The two cases are deliberately indistinguishable."""


class UpstreamError(QuickDropError):
    """
    Object store call failed.

    Carries the provider status code and body so callers can decide
    whether to retry. ``status_code`` is None for timeouts and
    transport failures.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AuthError(QuickDropError):
    """Authentication failure (upload signature or client-side decryption)."""


class SignatureRejectedError(AuthError, UpstreamError):
    """The provider rejected the request signature (401/403)."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        UpstreamError.__init__(self, message, status_code=status_code, body=body)


class DecryptionError(AuthError):
    """Wrong password or corrupted data. Never says which."""

    MESSAGE = "Decryption failed"

    def __init__(self):
        super().__init__(self.MESSAGE)
