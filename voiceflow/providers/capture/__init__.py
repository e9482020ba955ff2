"""Speech capture devices."""


def register_providers():
    """Register all capture providers."""
    # Import at function level to avoid circular imports
    from ..registry import registry
    from ...config.settings import settings
    from .whisperkit import WhisperKitCaptureDevice

    def get_whisperkit_config():
        return settings.get_provider_config("whisperkit")

    registry.register_capture_provider(
        "whisperkit", WhisperKitCaptureDevice, get_whisperkit_config
    )
