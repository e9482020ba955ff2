"""Inference clients."""


def register_providers():
    """Register all inference providers."""
    # Import at function level to avoid circular imports
    from ..registry import registry
    from ...config.settings import settings
    from .gemini import GeminiInferenceClient

    def get_gemini_config():
        return settings.get_provider_config("gemini")

    registry.register_inference_provider("gemini", GeminiInferenceClient, get_gemini_config)
