"""Secure URL issuance services."""

from secure_media.services.secure_url import (
    MediaCategory,
    SecureUrlService,
    SignedUrlResult,
    SigningFailure,
)

__all__ = ["MediaCategory", "SecureUrlService", "SignedUrlResult", "SigningFailure"]
