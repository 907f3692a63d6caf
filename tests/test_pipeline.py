"""Tests for secure_media.transcription.pipeline."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import AsyncMock, patch
from urllib.parse import urlsplit

import httpx
import pytest

from secure_media.asr.interface import ASREngine, DecodingConfig, TranscriptionResult
from secure_media.config import TranscriptionSettings
from secure_media.services.secure_url import SecureUrlService
from secure_media.transcription.pipeline import (
    AudioTranscriptionPipeline,
    transcribe_audio_with_retry,
    validate_audio_file,
)
from secure_media.utils.errors import (
    FatalConfigurationError,
    FatalInputError,
    FatalNotFoundError,
    FatalValidationError,
    RetryableNetworkError,
    RetryableServiceError,
    RetryableStagingError,
    RetryableUnknownError,
    TranscriptionFailedError,
)

AUDIO_KEY = "audio/user-recordings/abc123.webm"
AUDIO_BYTES = b"\x1a\x45\xdf\xa3webm-payload"


class FakeEngine(ASREngine):
    """Engine that replays scripted outcomes and records what it saw."""

    name = "fake"

    def __init__(self, *outcomes) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, bytes, DecodingConfig]] = []

    async def transcribe(self, audio_path: str, config: DecodingConfig) -> TranscriptionResult:
        self.calls.append((audio_path, Path(audio_path).read_bytes(), config))
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _ok() -> TranscriptionResult:
    return TranscriptionResult(text="hello world", language="english", duration_seconds=2.5)


class CdnStub:
    """httpx handler serving scripted CDN responses.

    Each item is a (status, body) pair, an exception to raise, or a ready
    httpx.Response for single-use streaming bodies. The last item repeats.
    """

    def __init__(self, *responses) -> None:
        self._responses = list(responses) or [(200, AUDIO_BYTES)]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            return response
        status, body = response
        return httpx.Response(status, content=body)


@pytest.fixture
def staging(tmp_path) -> Path:
    return tmp_path / "staging"


@pytest.fixture
def sleeps():
    recorded: list[float] = []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    with patch("secure_media.utils.retry.asyncio.sleep", side_effect=fake_sleep):
        yield recorded


def _staging_is_empty(staging: Path) -> bool:
    return not staging.exists() or not any(staging.iterdir())


def _make_pipeline(url_service, engine, staging, cdn=None) -> AudioTranscriptionPipeline:
    return AudioTranscriptionPipeline(
        url_service,
        engine,
        settings=TranscriptionSettings(api_key="sk-test", temp_dir=staging),
        transport=httpx.MockTransport(cdn or CdnStub()),
    )


class TestValidateAudioFile:
    """Tests for validate_audio_file()."""

    @pytest.mark.parametrize(
        "key",
        [
            "audio/user-recordings/abc123.webm",
            "audio/user-recordings/abc123.mp3",
            "audio/user-recordings/u1/abc123.WAV",
            "audio/user-recordings/abc123.m4a",
            "audio/user-recordings/abc123.ogg",
        ],
    )
    def test_accepts_recordings(self, key) -> None:
        assert validate_audio_file(key) is True

    @pytest.mark.parametrize(
        "key",
        [
            "images/cover.png",
            "audio/user-recordings/abc123.txt",
            "audio/other/abc123.webm",
            "https://cdn.example.com/audio/user-recordings/abc123.webm",
            "",
            None,
        ],
    )
    def test_rejects_everything_else(self, key) -> None:
        assert validate_audio_file(key) is False


class TestTranscribeSuccess:
    """Tests for the happy path."""

    async def test_returns_transcription(self, url_service, staging, sleeps) -> None:
        engine = FakeEngine(_ok())
        cdn = CdnStub()
        pipeline = _make_pipeline(url_service, engine, staging, cdn)

        result = await pipeline.transcribe(AUDIO_KEY)

        assert result == _ok()
        assert sleeps == []
        assert len(engine.calls) == 1
        path, data, config = engine.calls[0]
        assert data == AUDIO_BYTES
        assert path.endswith(".webm")
        assert config == DecodingConfig(temperature=0.0)
        assert _staging_is_empty(staging)

    async def test_downloads_through_one_hour_signed_url(self, url_service, staging) -> None:
        cdn = CdnStub()
        pipeline = _make_pipeline(url_service, FakeEngine(_ok()), staging, cdn)

        await pipeline.transcribe(AUDIO_KEY)

        url = urlsplit(str(cdn.requests[0].url))
        assert url.hostname == "d123456789.cloudfront.net"
        assert url.path == "/" + AUDIO_KEY
        assert "Signature=" in url.query
        # FIXED_NOW (2026-03-01T12:00:00Z) + 1h
        assert "Expires=1772370000" in url.query


class TestTranscribeRetries:
    """Tests for retry termination and classification."""

    async def test_network_errors_exhaust_exactly_max_retries(
        self, url_service, staging, sleeps
    ) -> None:
        cdn = CdnStub((503, b""))
        engine = FakeEngine(_ok())
        pipeline = _make_pipeline(url_service, engine, staging, cdn)

        with pytest.raises(TranscriptionFailedError) as exc_info:
            await pipeline.transcribe(AUDIO_KEY, max_retries=3)

        assert len(cdn.requests) == 3
        assert engine.calls == []
        assert sleeps == [2.0, 4.0]
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, RetryableNetworkError)
        assert exc_info.value.__cause__ is exc_info.value.last_error
        assert _staging_is_empty(staging)

    @pytest.mark.parametrize("max_retries", [1, 2, 5])
    async def test_never_exceeds_limit(self, url_service, staging, sleeps, max_retries) -> None:
        engine = FakeEngine(RetryableUnknownError("upstream 500"))
        pipeline = _make_pipeline(url_service, engine, staging)

        with pytest.raises(TranscriptionFailedError):
            await pipeline.transcribe(AUDIO_KEY, max_retries=max_retries)

        assert len(engine.calls) == max_retries
        assert len(sleeps) == max_retries - 1

    async def test_recovers_after_transient_failures(self, url_service, staging, sleeps) -> None:
        engine = FakeEngine(RetryableServiceError("rate limited"), _ok())
        cdn = CdnStub((200, b""), (200, AUDIO_BYTES))
        pipeline = _make_pipeline(url_service, engine, staging, cdn)

        result = await pipeline.transcribe(AUDIO_KEY, max_retries=3)

        # attempt 1: empty file, attempt 2: rate limited, attempt 3: ok
        assert result == _ok()
        assert len(cdn.requests) == 3
        assert len(engine.calls) == 2
        assert sleeps == [2.0, 4.0]
        assert _staging_is_empty(staging)

    async def test_empty_download_is_retried(self, url_service, staging, sleeps) -> None:
        cdn = CdnStub((200, b""))
        engine = FakeEngine(_ok())
        pipeline = _make_pipeline(url_service, engine, staging, cdn)

        with pytest.raises(TranscriptionFailedError) as exc_info:
            await pipeline.transcribe(AUDIO_KEY, max_retries=2)

        assert type(exc_info.value.last_error).__name__ == "RetryableEmptyFileError"
        assert engine.calls == []
        assert _staging_is_empty(staging)

    async def test_untagged_engine_error_treated_as_unknown(self, url_service, staging, sleeps) -> None:
        engine = FakeEngine(KeyError("text"))
        pipeline = _make_pipeline(url_service, engine, staging)

        with pytest.raises(TranscriptionFailedError) as exc_info:
            await pipeline.transcribe(AUDIO_KEY, max_retries=2)

        assert isinstance(exc_info.value.last_error, RetryableUnknownError)
        assert len(engine.calls) == 2


class TestTranscribeFatal:
    """Fatal errors abort immediately, regardless of remaining attempts."""

    async def test_invalid_key_never_attempted(self, url_service, staging, sleeps) -> None:
        engine = FakeEngine(_ok())
        cdn = CdnStub()
        pipeline = _make_pipeline(url_service, engine, staging, cdn)

        with pytest.raises(FatalValidationError):
            await pipeline.transcribe("images/cover.png")

        assert cdn.requests == []
        assert engine.calls == []
        assert sleeps == []

    @pytest.mark.parametrize(
        "error",
        [
            FatalInputError("Unsupported audio format"),
            FatalInputError("File too large"),
            FatalNotFoundError("model not found"),
            FatalConfigurationError("Authentication failed"),
        ],
    )
    async def test_fatal_oracle_errors_not_retried(
        self, url_service, staging, sleeps, error
    ) -> None:
        engine = FakeEngine(error)
        pipeline = _make_pipeline(url_service, engine, staging)

        with pytest.raises(type(error)):
            await pipeline.transcribe(AUDIO_KEY, max_retries=5)

        assert len(engine.calls) == 1
        assert sleeps == []
        assert _staging_is_empty(staging)

    async def test_missing_object_not_retried(self, url_service, staging, sleeps) -> None:
        cdn = CdnStub((404, b""))
        pipeline = _make_pipeline(url_service, FakeEngine(_ok()), staging, cdn)

        with pytest.raises(FatalNotFoundError):
            await pipeline.transcribe(AUDIO_KEY, max_retries=5)

        assert len(cdn.requests) == 1
        assert _staging_is_empty(staging)

    async def test_unconfigured_signing_is_fatal(self, staging, sleeps) -> None:
        cdn = CdnStub()
        pipeline = _make_pipeline(SecureUrlService(None), FakeEngine(_ok()), staging, cdn)

        with pytest.raises(FatalConfigurationError) as exc_info:
            await pipeline.transcribe(AUDIO_KEY)

        assert "secure URL" in str(exc_info.value)
        assert cdn.requests == []
        assert sleeps == []

    async def test_crash_mid_download_propagates_and_cleans_up(
        self, url_service, staging, sleeps
    ) -> None:
        async def broken():
            yield b"partial"
            raise RuntimeError("worker crashed")

        cdn = CdnStub(httpx.Response(200, content=broken()))
        pipeline = _make_pipeline(url_service, FakeEngine(_ok()), staging, cdn)

        with pytest.raises(RuntimeError, match="worker crashed"):
            await pipeline.transcribe(AUDIO_KEY)

        assert _staging_is_empty(staging)


class TestCleanupDuringTranscription:
    """The temp file exists while the engine reads it and is gone afterwards."""

    async def test_file_present_only_during_attempt(self, url_service, staging, sleeps) -> None:
        seen: list[bool] = []

        class InspectingEngine(ASREngine):
            async def transcribe(self, audio_path, config):
                seen.append(Path(audio_path).exists())
                raise RetryableServiceError("quota")

        pipeline = _make_pipeline(url_service, InspectingEngine(), staging)

        with pytest.raises(TranscriptionFailedError):
            await pipeline.transcribe(AUDIO_KEY, max_retries=2)

        assert seen == [True, True]
        assert _staging_is_empty(staging)


class TestStagingAndLogging:
    """Tests for local staging failures and per-attempt failure logs."""

    async def test_unwritable_staging_is_retried_then_wrapped(
        self, url_service, tmp_path, sleeps
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"")
        cdn = CdnStub()
        pipeline = _make_pipeline(url_service, FakeEngine(_ok()), blocker / "staging", cdn)

        with pytest.raises(TranscriptionFailedError) as exc_info:
            await pipeline.transcribe(AUDIO_KEY, max_retries=2)

        assert isinstance(exc_info.value.last_error, RetryableStagingError)
        assert exc_info.value.attempts == 2
        assert cdn.requests == []
        assert sleeps == [2.0]

    async def test_one_warning_per_failed_attempt(
        self, url_service, staging, sleeps, caplog
    ) -> None:
        engine = FakeEngine(RetryableServiceError("rate limited"))
        pipeline = _make_pipeline(url_service, engine, staging)

        with caplog.at_level(logging.INFO):
            with pytest.raises(TranscriptionFailedError):
                await pipeline.transcribe(AUDIO_KEY, max_retries=3)

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert [r.attempt for r in warnings] == [1, 2, 3]
        assert all(r.stage == "transcribe" for r in warnings)


class TestTranscribeOrNone:
    """Tests for the best-effort variant."""

    async def test_returns_result(self, url_service, staging) -> None:
        pipeline = _make_pipeline(url_service, FakeEngine(_ok()), staging)
        assert await pipeline.transcribe_or_none(AUDIO_KEY) == _ok()

    async def test_returns_none_on_failure(self, url_service, staging, sleeps) -> None:
        pipeline = _make_pipeline(url_service, FakeEngine(FatalInputError("bad")), staging)
        assert await pipeline.transcribe_or_none(AUDIO_KEY) is None


class TestModuleEntryPoints:
    """Tests for transcribe_audio_with_retry() and from_env()."""

    async def test_delegates_to_given_pipeline(self) -> None:
        pipeline = AsyncMock(spec=AudioTranscriptionPipeline)
        pipeline.transcribe.return_value = _ok()

        result = await transcribe_audio_with_retry(AUDIO_KEY, max_retries=2, pipeline=pipeline)

        assert result == _ok()
        pipeline.transcribe.assert_awaited_once_with(AUDIO_KEY, 2)

    def test_from_env_builds_whisper_pipeline(self, signing_env, tmp_path) -> None:
        env = {**signing_env, "OPENAI_API_KEY": "sk-test", "TRANSCRIPTION_TEMP_DIR": str(tmp_path)}
        pipeline = AudioTranscriptionPipeline.from_env(env)
        assert pipeline._engine.name == "whisper"
        assert pipeline._url_service.is_configured()

    def test_from_env_without_api_key_fails(self, signing_env) -> None:
        with pytest.raises(FatalConfigurationError):
            AudioTranscriptionPipeline.from_env(signing_env)
