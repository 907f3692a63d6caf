"""Process-wide configuration values.

Configuration is read once at start-up into frozen dataclasses and then
injected into the services that need it. Nothing below the entry point
reads the environment directly.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from secure_media.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_EXPIRATION_HOURS = 24
DEFAULT_ASR_PROVIDER = "whisper"

REQUIRED_SIGNING_VARIABLES = (
    "CLOUDFRONT_DISTRIBUTION_DOMAIN",
    "CLOUDFRONT_KEY_PAIR_ID",
    "CLOUDFRONT_PRIVATE_KEY",
)


@dataclass(frozen=True)
class SigningCredential:
    """CDN signing credential. Immutable for the process lifetime."""

    cdn_hostname: str
    key_pair_id: str
    private_key: str = field(repr=False)
    default_expiration_hours: int = DEFAULT_EXPIRATION_HOURS

    def __post_init__(self) -> None:
        missing = [
            name
            for name, value in (
                ("cdn_hostname", self.cdn_hostname),
                ("key_pair_id", self.key_pair_id),
                ("private_key", self.private_key),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Incomplete signing credential, missing: {', '.join(missing)}"
            )
        if self.default_expiration_hours <= 0:
            raise ConfigurationError("default_expiration_hours must be positive")


@dataclass(frozen=True)
class TranscriptionSettings:
    """Settings for the audio transcription pipeline."""

    api_key: str = field(default="", repr=False)
    provider: str = DEFAULT_ASR_PROVIDER
    temp_dir: Path = field(default_factory=lambda: Path.cwd() / "temp")
    url_expiration_hours: int = 1
    download_timeout_seconds: float = 30.0
    base_delay_seconds: float = 1.0


def unescape_private_key(value: str) -> str:
    """Turn literal ``\\n`` sequences from an env var into real newlines."""
    return value.replace("\\n", "\n")


def load_signing_credential(
    environ: Mapping[str, str] | None = None,
) -> SigningCredential:
    """Build the signing credential from environment variables.

    Args:
        environ: Mapping to read from (defaults to ``os.environ``).

    Returns:
        A validated SigningCredential.

    Raises:
        ConfigurationError: If any required variable is missing or the
            default expiration is not a positive integer.
    """
    env = os.environ if environ is None else environ
    missing = [name for name in REQUIRED_SIGNING_VARIABLES if not env.get(name)]
    if missing:
        raise ConfigurationError(
            "Missing required CloudFront environment variables: "
            + ", ".join(missing)
        )

    raw_hours = env.get("CLOUDFRONT_DEFAULT_EXPIRATION_HOURS", "")
    try:
        hours = int(raw_hours) if raw_hours else DEFAULT_EXPIRATION_HOURS
    except ValueError as exc:
        raise ConfigurationError(
            f"CLOUDFRONT_DEFAULT_EXPIRATION_HOURS is not an integer: {raw_hours!r}"
        ) from exc

    return SigningCredential(
        cdn_hostname=env["CLOUDFRONT_DISTRIBUTION_DOMAIN"],
        key_pair_id=env["CLOUDFRONT_KEY_PAIR_ID"],
        private_key=unescape_private_key(env["CLOUDFRONT_PRIVATE_KEY"]),
        default_expiration_hours=hours,
    )


def try_load_signing_credential(
    environ: Mapping[str, str] | None = None,
) -> SigningCredential | None:
    """Like load_signing_credential() but returns None when unconfigured."""
    try:
        return load_signing_credential(environ)
    except ConfigurationError as exc:
        logger.error("CloudFront configuration error: %s", exc)
        return None


def load_transcription_settings(
    environ: Mapping[str, str] | None = None,
) -> TranscriptionSettings:
    """Build pipeline settings from environment variables."""
    env = os.environ if environ is None else environ
    temp_dir = env.get("TRANSCRIPTION_TEMP_DIR")
    return TranscriptionSettings(
        api_key=env.get("OPENAI_API_KEY", ""),
        provider=env.get("ASR_PROVIDER", DEFAULT_ASR_PROVIDER),
        temp_dir=Path(temp_dir) if temp_dir else Path.cwd() / "temp",
    )
