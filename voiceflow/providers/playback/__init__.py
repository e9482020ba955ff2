"""Speech playback devices."""


def register_providers():
    """Register all playback providers."""
    # Import at function level to avoid circular imports
    from ..registry import registry
    from ...config.settings import settings
    from .elevenlabs import ElevenLabsPlaybackDevice
    from .text import TextPlaybackDevice

    def get_elevenlabs_config():
        return settings.get_provider_config("elevenlabs")

    registry.register_playback_provider(
        "elevenlabs", ElevenLabsPlaybackDevice, get_elevenlabs_config
    )
    registry.register_playback_provider("text", TextPlaybackDevice)
