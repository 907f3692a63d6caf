"""ASR engine registry with configuration-driven provider selection.

Maps provider name strings to engine classes. Use get_asr_engine() to
instantiate an engine by name with engine-specific configuration.
"""

from secure_media.asr.interface import ASREngine
from secure_media.asr.whisper import WhisperEngine
from secure_media.utils.errors import FatalConfigurationError

ASR_ENGINES: dict[str, type[ASREngine]] = {
    "whisper": WhisperEngine,
}


def get_asr_engine(provider: str, **kwargs: object) -> ASREngine:
    """Create an ASR engine instance by provider name.

    Args:
        provider: Provider name (e.g., "whisper").
        **kwargs: Engine-specific configuration passed to the constructor.

    Returns:
        An initialized ASREngine instance.

    Raises:
        FatalConfigurationError: If the provider name is not registered.
    """
    engine_cls = ASR_ENGINES.get(provider)
    if not engine_cls:
        available = ", ".join(sorted(ASR_ENGINES.keys()))
        raise FatalConfigurationError(
            f"Unknown ASR provider: '{provider}'. Available: {available}"
        )
    return engine_cls(**kwargs)
