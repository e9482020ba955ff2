"""Configuration settings for VoiceFlow."""

import os
from pathlib import Path
from typing import Optional, Dict, Any, Union
from dataclasses import dataclass, asdict
import json
import structlog
from dotenv import load_dotenv
import threading


logger = structlog.get_logger()


@dataclass
class SystemPrompts:
    """System prompts for inference clients."""
    default: str = "You are a friendly voice assistant. Answer in a few short, spoken-style sentences."


@dataclass
class TurnSettings:
    """Turn-taking behaviour."""
    debounce_ms: int = 100
    hands_free: bool = False
    fallback_answer: str = "Sorry - Something went wrong. Please try again!"
    capture_error_message: str = "Failed to recognize speech."


@dataclass
class ProviderSettings:
    """Provider-specific settings."""
    # WhisperKit
    whisperkit_path: str = "whisperkit-cli"
    whisperkit_model: str = "large-v3_turbo"
    whisperkit_compute_units: str = "cpuAndNeuralEngine"
    whisperkit_vad_enabled: bool = True

    # Gemini
    gemini_model: str = "gemini-1.5-flash"
    gemini_temperature: float = 0.7
    gemini_max_tokens: int = 2048

    # ElevenLabs
    elevenlabs_voice_id: str = "pNInz6obpgDQGcFmaJgB"  # Adam voice
    elevenlabs_model_id: str = "eleven_flash_v2_5"
    elevenlabs_output_format: str = "mp3_22050_32"
    elevenlabs_stability: float = 0.5
    elevenlabs_similarity_boost: float = 0.8
    elevenlabs_style: float = 0.0
    elevenlabs_speed: float = 1.0
    elevenlabs_use_speaker_boost: bool = True


@dataclass
class TimeoutSettings:
    """Timeout settings for various operations."""
    inference_timeout: float = 30.0  # seconds
    tts_generation_timeout: float = 10.0  # seconds


@dataclass
class RetrySettings:
    """Retry configuration."""
    max_retries: int = 3
    initial_backoff: float = 1.0  # seconds
    backoff_multiplier: float = 2.0
    max_backoff: float = 30.0  # seconds


@dataclass
class MetricsSettings:
    """Metrics collection settings."""
    enabled: bool = True
    storage_path: str = "~/.voiceflow/metrics"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = "INFO"
    format: str = "json"
    file_enabled: bool = True
    file_rotation_mb: int = 10
    file_backup_count: int = 7


def _env_bool(value: str) -> bool:
    return value.lower() in ("1", "true", "yes", "on")


# Environment variable -> (section, field, converter)
ENV_OVERRIDES = {
    "SYSTEM_PROMPT_DEFAULT": ("system_prompts", "default", str),
    "DEBOUNCE_MS": ("turns", "debounce_ms", int),
    "HANDS_FREE": ("turns", "hands_free", _env_bool),
    "FALLBACK_ANSWER": ("turns", "fallback_answer", str),
    "WHISPERKIT_PATH": ("providers", "whisperkit_path", str),
    "WHISPERKIT_MODEL": ("providers", "whisperkit_model", str),
    "WHISPERKIT_COMPUTE_UNITS": ("providers", "whisperkit_compute_units", str),
    "WHISPERKIT_VAD_ENABLED": ("providers", "whisperkit_vad_enabled", _env_bool),
    "GEMINI_MODEL": ("providers", "gemini_model", str),
    "GEMINI_TEMPERATURE": ("providers", "gemini_temperature", float),
    "GEMINI_MAX_TOKENS": ("providers", "gemini_max_tokens", int),
    "ELEVENLABS_VOICE_ID": ("providers", "elevenlabs_voice_id", str),
    "ELEVENLABS_MODEL_ID": ("providers", "elevenlabs_model_id", str),
    "ELEVENLABS_OUTPUT_FORMAT": ("providers", "elevenlabs_output_format", str),
    "INFERENCE_TIMEOUT": ("timeouts", "inference_timeout", float),
    "TTS_GENERATION_TIMEOUT": ("timeouts", "tts_generation_timeout", float),
    "MAX_RETRIES": ("retries", "max_retries", int),
    "INITIAL_BACKOFF": ("retries", "initial_backoff", float),
    "METRICS_ENABLED": ("metrics", "enabled", _env_bool),
    "LOG_LEVEL": ("logging", "level", str),
    "LOG_FORMAT": ("logging", "format", str),
    "LOG_FILE_ENABLED": ("logging", "file_enabled", _env_bool),
}

SECTIONS = ("system_prompts", "turns", "providers", "timeouts", "retries", "metrics", "logging")


class Settings:
    """Main settings class for VoiceFlow."""

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        self.config_file = Path(config_file) if config_file else None
        self._lock = threading.RLock()
        self._env_loaded = False

        # Initialize sub-settings
        self.system_prompts = SystemPrompts()
        self.turns = TurnSettings()
        self.providers = ProviderSettings()
        self.timeouts = TimeoutSettings()
        self.retries = RetrySettings()
        self.metrics = MetricsSettings()
        self.logging = LoggingSettings()

        self.capture_provider = "whisperkit"
        self.inference_provider = "gemini"
        self.playback_provider = "elevenlabs"

        # Load .env file first
        self._load_env_file()

        # Load from file if provided
        if self.config_file and self.config_file.exists():
            self.load_from_file()

        # Override with environment variables
        self.load_from_env()

    def _load_env_file(self) -> None:
        """Load environment variables from .env file."""
        if not self._env_loaded:
            # Look for .env in current directory and parent directories
            current_dir = Path.cwd()
            for parent in [current_dir] + list(current_dir.parents):
                env_file = parent / ".env"
                if env_file.exists():
                    load_dotenv(env_file)
                    logger.debug("Loaded .env file", path=str(env_file))
                    break
            self._env_loaded = True

    def load_from_file(self) -> None:
        """Load settings from the JSON configuration file."""
        if not self.config_file or not self.config_file.exists():
            return

        try:
            with self._lock:
                with open(self.config_file, "r") as f:
                    config = json.load(f)

                for name in SECTIONS:
                    section = getattr(self, name)
                    for key, value in config.get(name, {}).items():
                        if hasattr(section, key):
                            setattr(section, key, value)

                for kind in ("capture", "inference", "playback"):
                    if f"{kind}_provider" in config:
                        setattr(self, f"{kind}_provider", config[f"{kind}_provider"])

                logger.info("Loaded settings from file", file=str(self.config_file))

        except (OSError, ValueError) as e:
            logger.error("Failed to load settings from file",
                         file=str(self.config_file),
                         error=str(e))

    def load_from_env(self) -> None:
        """Load settings from environment variables."""
        with self._lock:
            self.capture_provider = os.getenv("CAPTURE_PROVIDER", self.capture_provider)
            self.inference_provider = os.getenv("INFERENCE_PROVIDER", self.inference_provider)
            self.playback_provider = os.getenv("PLAYBACK_PROVIDER", self.playback_provider)

            for env_name, (section_name, key, convert) in ENV_OVERRIDES.items():
                raw = os.getenv(env_name)
                if not raw:
                    continue
                try:
                    setattr(getattr(self, section_name), key, convert(raw))
                except ValueError:
                    logger.warning("Ignoring invalid environment override",
                                   variable=env_name, value=raw)

    def save_to_file(self, file_path: Optional[Union[str, Path]] = None) -> None:
        """Save current settings to file."""
        save_path = Path(file_path) if file_path else self.config_file
        if not save_path:
            raise ValueError("No file path provided")

        with self._lock:
            save_path.parent.mkdir(parents=True, exist_ok=True)
            with open(save_path, "w") as f:
                json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

        logger.info("Saved settings to file", file=str(save_path))

    def get_provider_config(self, provider_type: str) -> Dict[str, Any]:
        """Get configuration for a specific provider."""
        if provider_type == "whisperkit":
            return {
                "whisperkit_path": self.providers.whisperkit_path,
                "model": self.providers.whisperkit_model,
                "compute_units": self.providers.whisperkit_compute_units,
                "vad_enabled": self.providers.whisperkit_vad_enabled,
            }
        elif provider_type == "gemini":
            return {
                "model_name": self.providers.gemini_model,
                "temperature": self.providers.gemini_temperature,
                "max_tokens": self.providers.gemini_max_tokens,
                "system_prompt": self.system_prompts.default,
                "timeout": self.timeouts.inference_timeout,
                "max_retries": self.retries.max_retries,
                "initial_backoff": self.retries.initial_backoff,
                "backoff_multiplier": self.retries.backoff_multiplier,
                "max_backoff": self.retries.max_backoff,
            }
        elif provider_type == "elevenlabs":
            return {
                "voice_id": self.providers.elevenlabs_voice_id,
                "model_id": self.providers.elevenlabs_model_id,
                "output_format": self.providers.elevenlabs_output_format,
                "stability": self.providers.elevenlabs_stability,
                "similarity_boost": self.providers.elevenlabs_similarity_boost,
                "style": self.providers.elevenlabs_style,
                "speed": self.providers.elevenlabs_speed,
                "use_speaker_boost": self.providers.elevenlabs_use_speaker_boost,
                "timeout": self.timeouts.tts_generation_timeout,
            }
        else:
            raise ValueError(f"Unknown provider type: {provider_type}")

    def reload(self) -> None:
        """Reload settings from file and environment."""
        with self._lock:
            if self.config_file and self.config_file.exists():
                self.load_from_file()
            self.load_from_env()
            logger.info("Settings reloaded")

    def validate(self) -> list[str]:
        """Validate current settings and return list of issues."""
        issues = []

        if self.turns.debounce_ms <= 0:
            issues.append(f"Invalid debounce window: {self.turns.debounce_ms}ms")
        if not self.turns.fallback_answer.strip():
            issues.append("Fallback answer must not be empty")

        if self.timeouts.inference_timeout <= 0:
            issues.append(f"Invalid inference timeout: {self.timeouts.inference_timeout}")
        if self.timeouts.tts_generation_timeout <= 0:
            issues.append(f"Invalid TTS timeout: {self.timeouts.tts_generation_timeout}")

        if self.retries.max_retries < 0:
            issues.append(f"Invalid max retries: {self.retries.max_retries}")
        if self.retries.initial_backoff <= 0:
            issues.append(f"Invalid initial backoff: {self.retries.initial_backoff}")

        if self.logging.level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            issues.append(f"Invalid log level: {self.logging.level}")

        return issues

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary for serialization."""
        data: Dict[str, Any] = {
            "capture_provider": self.capture_provider,
            "inference_provider": self.inference_provider,
            "playback_provider": self.playback_provider,
        }
        for name in SECTIONS:
            data[name] = asdict(getattr(self, name))
        return data


# Global settings instance
settings = Settings()
