"""Exception hierarchy for secure media access and transcription.

All exceptions inherit from MediaAccessError. Every concrete class is tagged
with a ``retryable`` flag; the retry loop branches on that flag alone, so the
transient/permanent split is a property of the type, not of the message.
"""

from __future__ import annotations


class MediaAccessError(Exception):
    """Base exception for all secure media errors."""

    retryable: bool = False

    def __init__(self, message: str, object_key: str | None = None) -> None:
        self.object_key = object_key
        super().__init__(message)

    def __str__(self) -> str:
        if self.object_key:
            return f"[key={self.object_key}] {super().__str__()}"
        return super().__str__()


class ConfigurationError(MediaAccessError):
    """Raised when the signing credential is missing or malformed."""


class FatalError(MediaAccessError):
    """Pipeline failure that no amount of retrying can fix."""

    retryable = False


class RetryableError(MediaAccessError):
    """Pipeline failure assumed to be transient."""

    retryable = True


class FatalConfigurationError(FatalError):
    """Raised when a secure URL or oracle credential cannot be used."""


class FatalValidationError(FatalError):
    """Raised when an object key has the wrong namespace or extension."""


class FatalInputError(FatalError):
    """Raised when the oracle rejects the audio itself (format, size)."""

    def __init__(
        self,
        message: str,
        object_key: str | None = None,
        provider: str | None = None,
    ) -> None:
        self.provider = provider
        super().__init__(message, object_key)


class FatalNotFoundError(FatalError):
    """Raised when the object is missing at the signed URL or the oracle."""


class RetryableNetworkError(RetryableError):
    """Raised when downloading from the CDN fails or times out."""

    def __init__(
        self,
        message: str,
        object_key: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, object_key)


class RetryableEmptyFileError(RetryableError):
    """Raised when a download completes with zero bytes."""


class RetryableStagingError(RetryableError):
    """Raised when the local staging directory or file cannot be written."""


class RetryableServiceError(RetryableError):
    """Raised when the oracle reports quota exhaustion or rate limiting."""

    def __init__(
        self,
        message: str,
        object_key: str | None = None,
        provider: str | None = None,
    ) -> None:
        self.provider = provider
        super().__init__(message, object_key)


class RetryableUnknownError(RetryableError):
    """Raised for unclassified oracle failures; retried conservatively."""

    def __init__(
        self,
        message: str,
        object_key: str | None = None,
        provider: str | None = None,
    ) -> None:
        self.provider = provider
        super().__init__(message, object_key)


class TranscriptionFailedError(MediaAccessError):
    """Raised after every attempt failed with a retryable error."""

    def __init__(
        self,
        message: str,
        object_key: str | None = None,
        last_error: BaseException | None = None,
        attempts: int = 0,
    ) -> None:
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(message, object_key)
