"""Capture, inference and playback provider interfaces and implementations."""

from .registry import registry

# Defer provider registration to avoid circular imports
def _register_all_providers():
    """Register all provider types."""
    from . import capture, inference, playback
    capture.register_providers()
    inference.register_providers()
    playback.register_providers()

# Register providers after module initialization
_register_all_providers()

__all__ = ['registry']
