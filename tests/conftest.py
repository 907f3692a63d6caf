"""Shared fixtures: a throwaway RSA key pair and signing credential."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from secure_media.config import SigningCredential
from secure_media.services.secure_url import SecureUrlService

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)
CDN_HOSTNAME = "d123456789.cloudfront.net"
KEY_PAIR_ID = "K2JCJMDEHXQW5F"


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_key: rsa.RSAPrivateKey) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def credential(private_key_pem: str) -> SigningCredential:
    return SigningCredential(
        cdn_hostname=CDN_HOSTNAME,
        key_pair_id=KEY_PAIR_ID,
        private_key=private_key_pem,
    )


@pytest.fixture
def signing_env(private_key_pem: str) -> dict[str, str]:
    """Environment mapping with the PEM newlines escaped, as in a .env file."""
    return {
        "CLOUDFRONT_DISTRIBUTION_DOMAIN": CDN_HOSTNAME,
        "CLOUDFRONT_KEY_PAIR_ID": KEY_PAIR_ID,
        "CLOUDFRONT_PRIVATE_KEY": private_key_pem.replace("\n", "\\n"),
    }


@pytest.fixture
def url_service(credential: SigningCredential) -> SecureUrlService:
    return SecureUrlService(credential, clock=lambda: FIXED_NOW)
