"""CloudFront signed URL generation.

Produces canned-policy signed URLs via botocore's CloudFrontSigner. The
signature is RSA-SHA1 with PKCS#1 v1.5 padding, which is deterministic, so
``sign()`` is a pure function of its inputs.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import lru_cache

from botocore.signers import CloudFrontSigner
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from secure_media.config import SigningCredential
from secure_media.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)


@lru_cache(maxsize=8)
def _load_private_key(pem: str) -> rsa.RSAPrivateKey:
    """Parse a PEM private key (PKCS#1 or PKCS#8).

    Raises:
        ConfigurationError: If the key cannot be parsed or is not RSA.
    """
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise ConfigurationError(f"Malformed CloudFront private key: {exc}") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigurationError("CloudFront private key must be an RSA key")
    return key


def _make_rsa_signer(pem: str):
    private_key = _load_private_key(pem)

    def rsa_signer(message: bytes) -> bytes:
        return private_key.sign(message, padding.PKCS1v15(), hashes.SHA1())

    return rsa_signer


def build_resource_url(object_key: str, cdn_hostname: str) -> str:
    """Return the unsigned CDN URL for an object key."""
    return f"https://{cdn_hostname}/{object_key}"


def sign(object_key: str, expires_at: datetime, credential: SigningCredential) -> str:
    """Sign a CDN URL for an object key.

    The returned URL carries ``Expires``, ``Signature`` and ``Key-Pair-Id``
    query parameters that CloudFront validates with the matching public key.

    Args:
        object_key: Bare object-storage key (no scheme, no leading slash).
        expires_at: Instant after which the URL stops working. Naive values
            are taken as UTC. Callers are responsible for passing a future
            instant.
        credential: The signing credential.

    Returns:
        The signed URL.

    Raises:
        ValueError: If object_key is empty.
        ConfigurationError: If the private key is malformed.
    """
    if not object_key:
        raise ValueError("object_key must not be empty")

    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=UTC)
    # botocore converts via timetuple(), which is only correct for UTC
    expires_at = expires_at.astimezone(UTC)

    signer = CloudFrontSigner(
        credential.key_pair_id, _make_rsa_signer(credential.private_key)
    )
    url = build_resource_url(object_key, credential.cdn_hostname)
    return signer.generate_presigned_url(url, date_less_than=expires_at)
