"""Secure URL service.

Facade over key resolution and CloudFront signing. Media consumers call
this service to turn stored object keys (or URLs) into time-limited signed
URLs, either one at a time or in concurrent batches.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from secure_media.config import SigningCredential, try_load_signing_credential
from secure_media.signing.cloudfront import sign
from secure_media.signing.keys import resolve_key
from secure_media.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)


class MediaCategory(str, Enum):
    """Kinds of private media served through the CDN."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


@dataclass(frozen=True)
class SignedUrlResult:
    """A freshly signed URL and the instant it stops working."""

    signed_url: str
    expires_at: datetime
    expiration_hours: int

    def to_dict(self) -> dict[str, object]:
        return {
            "signedUrl": self.signed_url,
            "expiresAt": self.expires_at.isoformat().replace("+00:00", "Z"),
            "expirationHours": self.expiration_hours,
        }


@dataclass(frozen=True)
class SigningFailure:
    """Batch entry for an input that could not be signed."""

    raw_input: str
    error: str
    error_type: str

    def to_dict(self) -> dict[str, object]:
        return {
            "rawInput": self.raw_input,
            "error": self.error,
            "errorType": self.error_type,
        }


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SecureUrlService:
    """Issues signed CDN URLs for private image, video and audio content.

    Args:
        credential: The signing credential, or None when the CDN is not
            configured. An unconfigured service still constructs so that
            best-effort callers can fall back to raw keys.
        clock: Returns the current aware UTC time. Injectable for tests.
    """

    def __init__(
        self,
        credential: SigningCredential | None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._credential = credential
        self._clock = clock

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SecureUrlService:
        """Build a service from CLOUDFRONT_* environment variables."""
        return cls(try_load_signing_credential(environ))

    def is_configured(self) -> bool:
        """Return True if a usable signing credential is present. Never raises."""
        return self._credential is not None

    @staticmethod
    def extract_key(value: str) -> str:
        """Return the object key for a bare key or storage/CDN URL."""
        return resolve_key(value)

    async def generate_secure_url(
        self,
        category: MediaCategory,
        raw_input: str,
        expiration_hours: int | None = None,
    ) -> SignedUrlResult:
        """Sign a URL for one piece of media.

        Args:
            category: Media category, used for logging.
            raw_input: Object key or storage/CDN URL.
            expiration_hours: Lifetime of the URL. Defaults to the
                credential's default (24 hours unless configured).

        Returns:
            SignedUrlResult carrying the exact expiration instant.

        Raises:
            ConfigurationError: If the service has no credential or the
                key material is malformed.
            ValueError: If the input is empty or the lifetime not positive.
        """
        if self._credential is None:
            raise ConfigurationError("CloudFront is not properly configured")

        object_key = resolve_key(raw_input)
        hours = (
            expiration_hours
            if expiration_hours is not None
            else self._credential.default_expiration_hours
        )
        if hours <= 0:
            raise ValueError(f"expiration_hours must be positive, got {hours}")

        expires_at = self._clock() + timedelta(hours=hours)
        signed_url = sign(object_key, expires_at, self._credential)

        logger.debug(
            "Signed %s URL valid for %dh",
            category.value,
            hours,
            extra={"object_key": object_key, "category": category.value},
        )
        return SignedUrlResult(
            signed_url=signed_url,
            expires_at=expires_at,
            expiration_hours=hours,
        )

    async def generate_secure_urls(
        self,
        category: MediaCategory,
        raw_inputs: list[str],
        expiration_hours: int | None = None,
    ) -> list[SignedUrlResult | SigningFailure]:
        """Sign many URLs concurrently.

        Results come back in input order. A failure on one input yields a
        SigningFailure at that position and does not affect the others.
        """
        results = await asyncio.gather(
            *(
                self.generate_secure_url(category, raw, expiration_hours)
                for raw in raw_inputs
            ),
            return_exceptions=True,
        )

        output: list[SignedUrlResult | SigningFailure] = []
        for raw, result in zip(raw_inputs, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Failed to sign %s URL: %s",
                    category.value,
                    result,
                    extra={"object_key": raw, "category": category.value},
                )
                output.append(
                    SigningFailure(
                        raw_input=raw,
                        error=str(result),
                        error_type=type(result).__name__,
                    )
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                output.append(result)
        return output

    async def secure_url_or_original(
        self,
        category: MediaCategory,
        raw_input: str,
        expiration_hours: int | None = None,
    ) -> str:
        """Return a signed URL, or the raw input if signing fails for any reason.

        Media URLs are a presentation concern: an unsigned link degrades one
        asset, a raised error would fail the whole response.
        """
        if not raw_input or not self.is_configured():
            return raw_input
        try:
            result = await self.generate_secure_url(
                category, raw_input, expiration_hours
            )
        except Exception as exc:
            logger.warning(
                "Falling back to unsigned %s URL: %s",
                category.value,
                exc,
                extra={"object_key": raw_input, "category": category.value},
            )
            return raw_input
        return result.signed_url

    async def generate_secure_image_url(
        self, image_url: str, expiration_hours: int | None = None
    ) -> SignedUrlResult:
        return await self.generate_secure_url(
            MediaCategory.IMAGE, image_url, expiration_hours
        )

    async def generate_secure_video_url(
        self, video_url: str, expiration_hours: int | None = None
    ) -> SignedUrlResult:
        return await self.generate_secure_url(
            MediaCategory.VIDEO, video_url, expiration_hours
        )

    async def generate_secure_audio_url(
        self, audio_url: str, expiration_hours: int | None = None
    ) -> SignedUrlResult:
        return await self.generate_secure_url(
            MediaCategory.AUDIO, audio_url, expiration_hours
        )

    async def generate_secure_image_urls(
        self, image_urls: list[str], expiration_hours: int | None = None
    ) -> list[SignedUrlResult | SigningFailure]:
        return await self.generate_secure_urls(
            MediaCategory.IMAGE, image_urls, expiration_hours
        )

    async def generate_secure_video_urls(
        self, video_urls: list[str], expiration_hours: int | None = None
    ) -> list[SignedUrlResult | SigningFailure]:
        return await self.generate_secure_urls(
            MediaCategory.VIDEO, video_urls, expiration_hours
        )
