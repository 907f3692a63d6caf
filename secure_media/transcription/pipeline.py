"""Audio transcription pipeline.

Orchestrates: validate -> sign -> download -> verify -> transcribe ->
cleanup, repeated under a classified retry policy. Every attempt owns one
scoped temp file that is gone by the time the attempt returns or raises.
"""

from __future__ import annotations

import itertools
import logging
import os
import time
from collections.abc import Mapping

import httpx

from secure_media.asr.interface import ASREngine, DecodingConfig, TranscriptionResult
from secure_media.asr.registry import get_asr_engine
from secure_media.config import TranscriptionSettings, load_transcription_settings
from secure_media.services.secure_url import SecureUrlService
from secure_media.transcription.download import download_to_file, scoped_temp_file
from secure_media.utils.errors import (
    FatalConfigurationError,
    FatalValidationError,
    MediaAccessError,
    RetryableEmptyFileError,
    RetryableUnknownError,
    TranscriptionFailedError,
)
from secure_media.utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)

AUDIO_KEY_PREFIX = "audio/user-recordings/"
AUDIO_EXTENSIONS = (".webm", ".mp3", ".wav", ".m4a", ".ogg")
DEFAULT_MAX_RETRIES = 3


def validate_audio_file(object_key: str) -> bool:
    """Return True if the key names a user recording in a supported format."""
    if not object_key or not isinstance(object_key, str):
        logger.debug("Audio key is not a non-empty string")
        return False
    if not object_key.startswith(AUDIO_KEY_PREFIX):
        logger.debug(
            "Audio key outside %s", AUDIO_KEY_PREFIX, extra={"object_key": object_key}
        )
        return False
    if not object_key.lower().endswith(AUDIO_EXTENSIONS):
        logger.debug(
            "Audio key has unsupported extension", extra={"object_key": object_key}
        )
        return False
    return True


class AudioTranscriptionPipeline:
    """Transcribes user recordings stored behind the CDN.

    Args:
        url_service: Issues the short-lived signed URL for each attempt.
        engine: Speech-to-text engine.
        settings: Staging directory, timeouts and backoff settings.
        decoding: Fixed decoding configuration sent to the engine.
        transport: Optional httpx transport for the CDN download (tests).
    """

    def __init__(
        self,
        url_service: SecureUrlService,
        engine: ASREngine,
        settings: TranscriptionSettings | None = None,
        decoding: DecodingConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url_service = url_service
        self._engine = engine
        self._settings = settings or TranscriptionSettings()
        self._decoding = decoding or DecodingConfig()
        self._transport = transport

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None
    ) -> AudioTranscriptionPipeline:
        """Build a pipeline from environment configuration."""
        settings = load_transcription_settings(environ)
        engine = get_asr_engine(settings.provider, api_key=settings.api_key)
        return cls(SecureUrlService.from_env(environ), engine, settings)

    async def transcribe(
        self, object_key: str, max_retries: int = DEFAULT_MAX_RETRIES
    ) -> TranscriptionResult:
        """Transcribe a recording, retrying transient failures.

        Args:
            object_key: Key under ``audio/user-recordings/``.
            max_retries: Total number of attempts (at least 1).

        Returns:
            The transcription.

        Raises:
            FatalValidationError: The key has the wrong shape.
            FatalConfigurationError, FatalInputError, FatalNotFoundError:
                Raised immediately, without further attempts.
            TranscriptionFailedError: Every attempt failed with a retryable
                error; the last one is attached as ``last_error``.
        """
        if not validate_audio_file(object_key):
            raise FatalValidationError(
                "Invalid audio file format or location", object_key=object_key
            )

        attempts = itertools.count(1)

        def exhausted(last_error: Exception, count: int) -> Exception:
            return TranscriptionFailedError(
                f"Transcription failed after {count} attempts: {last_error}",
                object_key=object_key,
                last_error=last_error,
                attempts=count,
            )

        @retry_with_backoff(
            max_attempts=max_retries,
            base_delay=self._settings.base_delay_seconds,
            on_exhausted=exhausted,
        )
        async def transcribe_once() -> TranscriptionResult:
            return await self._run_attempt(object_key, next(attempts))

        return await transcribe_once()

    async def transcribe_or_none(
        self, object_key: str, max_retries: int = DEFAULT_MAX_RETRIES
    ) -> TranscriptionResult | None:
        """Best-effort transcription for flows that can proceed without text."""
        try:
            return await self.transcribe(object_key, max_retries)
        except MediaAccessError as exc:
            logger.warning(
                "Proceeding without transcription: %s",
                exc,
                extra={"object_key": object_key, "error_kind": type(exc).__name__},
            )
            return None

    async def _run_attempt(self, object_key: str, attempt: int) -> TranscriptionResult:
        """Run one sign/download/verify/transcribe cycle."""
        start = time.monotonic()
        stage = "sign"
        log_extra: dict[str, object] = {"object_key": object_key, "attempt": attempt}
        try:
            try:
                signed = await self._url_service.generate_secure_audio_url(
                    object_key,
                    expiration_hours=self._settings.url_expiration_hours,
                )
            except Exception as exc:
                raise FatalConfigurationError(
                    f"Unable to generate secure URL for audio file: {exc}",
                    object_key=object_key,
                ) from exc

            suffix = os.path.splitext(object_key)[1].lower()
            stage = "download"
            async with scoped_temp_file(self._settings.temp_dir, suffix) as path:
                size = await download_to_file(
                    signed.signed_url,
                    path,
                    timeout_seconds=self._settings.download_timeout_seconds,
                    transport=self._transport,
                    object_key=object_key,
                )

                stage = "verify"
                if path.stat().st_size == 0:
                    raise RetryableEmptyFileError(
                        "Downloaded audio file is empty", object_key=object_key
                    )

                stage = "transcribe"
                logger.info(
                    "Downloaded %d bytes, transcribing", size, extra=log_extra
                )
                try:
                    result = await self._engine.transcribe(str(path), self._decoding)
                except MediaAccessError:
                    raise
                except Exception as exc:
                    raise RetryableUnknownError(
                        f"Failed to transcribe audio: {exc}", object_key=object_key
                    ) from exc
        except MediaAccessError as exc:
            logger.warning(
                "Transcription attempt %d failed at %s: %s",
                attempt,
                stage,
                exc,
                extra={**log_extra, "stage": stage, "error_kind": type(exc).__name__},
            )
            raise

        logger.info(
            "Transcription attempt %d succeeded",
            attempt,
            extra={**log_extra, "duration_seconds": round(time.monotonic() - start, 3)},
        )
        return result


async def transcribe_audio_with_retry(
    object_key: str,
    max_retries: int = DEFAULT_MAX_RETRIES,
    pipeline: AudioTranscriptionPipeline | None = None,
) -> TranscriptionResult:
    """Transcribe a recording with the default, environment-built pipeline."""
    if pipeline is None:
        pipeline = AudioTranscriptionPipeline.from_env()
    return await pipeline.transcribe(object_key, max_retries)
