"""Provider registry for dynamic provider loading."""

from typing import Dict, Type, Callable, Any, Optional
import structlog

from .capture.base import CaptureDevice
from .inference.base import InferenceClient
from .playback.base import PlaybackDevice


logger = structlog.get_logger()

ConfigGetter = Callable[[], Dict[str, Any]]


class ProviderRegistry:
    """Registry for capture, inference and playback implementations."""

    def __init__(self):
        self._capture_providers: Dict[str, Type[CaptureDevice]] = {}
        self._inference_providers: Dict[str, Type[InferenceClient]] = {}
        self._playback_providers: Dict[str, Type[PlaybackDevice]] = {}
        self._provider_configs: Dict[str, ConfigGetter] = {}

    def register_capture_provider(
        self,
        name: str,
        provider_class: Type[CaptureDevice],
        config_getter: Optional[ConfigGetter] = None,
    ) -> None:
        """Register a capture device."""
        self._capture_providers[name] = provider_class
        if config_getter:
            self._provider_configs[f"capture:{name}"] = config_getter
        logger.debug(
            "Registered capture provider", name=name, class_name=provider_class.__name__
        )

    def register_inference_provider(
        self,
        name: str,
        provider_class: Type[InferenceClient],
        config_getter: Optional[ConfigGetter] = None,
    ) -> None:
        """Register an inference client."""
        self._inference_providers[name] = provider_class
        if config_getter:
            self._provider_configs[f"inference:{name}"] = config_getter
        logger.debug(
            "Registered inference provider", name=name, class_name=provider_class.__name__
        )

    def register_playback_provider(
        self,
        name: str,
        provider_class: Type[PlaybackDevice],
        config_getter: Optional[ConfigGetter] = None,
    ) -> None:
        """Register a playback device."""
        self._playback_providers[name] = provider_class
        if config_getter:
            self._provider_configs[f"playback:{name}"] = config_getter
        logger.debug(
            "Registered playback provider", name=name, class_name=provider_class.__name__
        )

    def _create(self, kind: str, providers: Dict[str, type], name: str, kwargs: Dict[str, Any]):
        if name not in providers:
            raise ValueError(f"Unknown {kind} provider: {name}")

        config_key = f"{kind}:{name}"
        if config_key in self._provider_configs:
            config = self._provider_configs[config_key]()
            # Explicit keyword arguments win over configured values
            kwargs = {**config, **kwargs}

        return providers[name](**kwargs)

    def get_capture_provider(self, name: str, **kwargs) -> CaptureDevice:
        """Get a capture device instance."""
        return self._create("capture", self._capture_providers, name, kwargs)

    def get_inference_provider(self, name: str, **kwargs) -> InferenceClient:
        """Get an inference client instance."""
        return self._create("inference", self._inference_providers, name, kwargs)

    def get_playback_provider(self, name: str, **kwargs) -> PlaybackDevice:
        """Get a playback device instance."""
        return self._create("playback", self._playback_providers, name, kwargs)

    def list_capture_providers(self) -> list[str]:
        """List available capture providers."""
        return list(self._capture_providers.keys())

    def list_inference_providers(self) -> list[str]:
        """List available inference providers."""
        return list(self._inference_providers.keys())

    def list_playback_providers(self) -> list[str]:
        """List available playback providers."""
        return list(self._playback_providers.keys())

    def clear(self) -> None:
        """Clear all registered providers."""
        self._capture_providers.clear()
        self._inference_providers.clear()
        self._playback_providers.clear()
        self._provider_configs.clear()


# Global registry instance
registry = ProviderRegistry()
