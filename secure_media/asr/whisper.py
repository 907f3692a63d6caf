"""OpenAI Whisper ASR client implementation.

Uploads a local audio file to the OpenAI audio transcription endpoint and
maps every provider failure onto a tagged error so the pipeline's retry loop
never has to inspect messages.
"""

import logging
import os

import httpx

from secure_media.asr.interface import ASREngine, DecodingConfig, TranscriptionResult
from secure_media.utils.errors import (
    FatalConfigurationError,
    FatalInputError,
    FatalNotFoundError,
    MediaAccessError,
    RetryableServiceError,
    RetryableUnknownError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_TIMEOUT_SECONDS = 300.0
# Whisper rejects uploads above 25 MB
MAX_UPLOAD_BYTES = 25 * 1024 * 1024

CONTENT_TYPES = {
    ".webm": "audio/webm",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".ogg": "audio/ogg",
}

_FORMAT_HINTS = ("unsupported", "invalid file format", "could not be decoded")
_SIZE_HINTS = ("too large", "maximum content size", "maximum file size")

PROVIDER = "whisper"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message", ""))
    return response.text


def classify_response_error(response: httpx.Response) -> MediaAccessError:
    """Map a non-200 transcription response onto a tagged error."""
    status = response.status_code
    message = _error_message(response)
    lowered = message.lower()
    detail = f"Whisper request failed with status {status}: {message}"

    if status == 413 or any(hint in lowered for hint in _SIZE_HINTS):
        return FatalInputError(f"File too large. {detail}", provider=PROVIDER)
    if status in (400, 415) and any(hint in lowered for hint in _FORMAT_HINTS):
        return FatalInputError(
            f"Unsupported audio format. {detail}", provider=PROVIDER
        )
    if status in (401, 403):
        return FatalConfigurationError(f"Authentication failed. {detail}")
    if status == 404:
        return FatalNotFoundError(detail)
    if status == 429:
        return RetryableServiceError(detail, provider=PROVIDER)
    return RetryableUnknownError(detail, provider=PROVIDER)


class WhisperEngine(ASREngine):
    """OpenAI Whisper transcription engine.

    Args:
        api_key: OpenAI API key.
        timeout: Request timeout in seconds (default 300).
        base_url: API base URL (default production endpoint).
        transport: Optional httpx transport, used by tests.
    """

    name = PROVIDER

    def __init__(
        self,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        base_url: str = DEFAULT_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise FatalConfigurationError("OPENAI_API_KEY is required")
        self._api_key = api_key
        self._timeout = timeout
        self._base_url = base_url.rstrip("/")
        self._transport = transport

    async def transcribe(
        self, audio_path: str, config: DecodingConfig
    ) -> TranscriptionResult:
        """Upload an audio file and return its transcription."""
        try:
            size = os.path.getsize(audio_path)
        except OSError as exc:
            raise RetryableUnknownError(
                f"Cannot read audio file {audio_path}: {exc}", provider=PROVIDER
            ) from exc
        if size > MAX_UPLOAD_BYTES:
            raise FatalInputError(
                f"File too large: {size} bytes exceeds {MAX_UPLOAD_BYTES}",
                provider=PROVIDER,
            )

        filename = os.path.basename(audio_path)
        extension = os.path.splitext(filename)[1].lower()
        content_type = CONTENT_TYPES.get(extension, "application/octet-stream")
        data = {
            "model": config.model,
            "language": config.language,
            "temperature": str(config.temperature),
            "response_format": config.response_format,
        }

        logger.info("Sending %s (%d bytes) to Whisper", filename, size)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                with open(audio_path, "rb") as audio_file:
                    response = await client.post(
                        f"{self._base_url}/audio/transcriptions",
                        headers={"Authorization": f"Bearer {self._api_key}"},
                        files={"file": (filename, audio_file, content_type)},
                        data=data,
                    )
        except httpx.HTTPError as exc:
            raise RetryableUnknownError(
                f"Whisper request failed: {exc}", provider=PROVIDER
            ) from exc

        if response.status_code != 200:
            raise classify_response_error(response)

        return self._convert_response(response.json())

    def _convert_response(self, body: dict) -> TranscriptionResult:
        """Convert a verbose_json response to a TranscriptionResult."""
        text = str(body.get("text", "")).strip()
        duration = body.get("duration")
        logger.info("Transcription completed, %d characters", len(text))
        return TranscriptionResult(
            text=text,
            language=body.get("language"),
            duration_seconds=float(duration) if duration is not None else None,
        )
