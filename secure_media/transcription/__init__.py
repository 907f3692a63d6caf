"""Audio transcription pipeline."""

from secure_media.transcription.pipeline import (
    AudioTranscriptionPipeline,
    transcribe_audio_with_retry,
    validate_audio_file,
)

__all__ = [
    "AudioTranscriptionPipeline",
    "transcribe_audio_with_retry",
    "validate_audio_file",
]
