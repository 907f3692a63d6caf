"""Abstract ASR engine interface.

Defines the engine ABC, the fixed decoding configuration and the result
model. Concrete engines (e.g., Whisper) subclass ASREngine and translate
provider failures into the tagged errors in secure_media.utils.errors.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class DecodingConfig:
    """Decoding parameters sent with every request.

    Temperature is pinned to zero so repeated attempts on the same audio
    produce the same text.
    """

    model: str = "whisper-1"
    language: str = "en"
    temperature: float = 0.0
    response_format: str = "verbose_json"


@dataclass
class TranscriptionResult:
    """Text transcribed from one recording."""

    text: str
    language: str | None = None
    duration_seconds: float | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "text": self.text,
            "language": self.language,
            "durationSeconds": self.duration_seconds,
        }


class ASREngine(ABC):
    """Abstract base class for ASR engine implementations.

    Subclasses must implement the transcribe() method.
    """

    name: str = ""

    @abstractmethod
    async def transcribe(
        self, audio_path: str, config: DecodingConfig
    ) -> TranscriptionResult:
        """Transcribe an audio file.

        Args:
            audio_path: Path to a local audio file.
            config: Decoding parameters.

        Returns:
            TranscriptionResult with text, detected language and duration.

        Raises:
            FatalInputError: Unsupported format or oversized file.
            FatalConfigurationError: The provider rejected our credential.
            FatalNotFoundError: The provider reported a missing resource.
            RetryableServiceError: Rate limit or quota exhaustion.
            RetryableUnknownError: Any other failure.
        """
