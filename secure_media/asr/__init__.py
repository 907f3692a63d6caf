"""Automatic speech recognition modules."""

from secure_media.asr.registry import get_asr_engine

__all__ = ["get_asr_engine"]
