"""ElevenLabs playback device implementation."""

import os
import asyncio
import threading
import time
from io import BytesIO
from typing import Optional
import pygame
from elevenlabs import VoiceSettings
from elevenlabs.client import ElevenLabs
import structlog

from .base import PlaybackDevice


logger = structlog.get_logger()


class ElevenLabsPlaybackDevice(PlaybackDevice):
    """
    Speaks text with ElevenLabs and plays it through pygame.

    Synthesis and playback run on a worker thread per utterance; completion is
    handed back to the asyncio loop. A cancelled utterance never completes.
    """

    def __init__(
        self,
        voice_id: str = "pNInz6obpgDQGcFmaJgB",  # Adam voice
        model_id: str = "eleven_flash_v2_5",
        output_format: str = "mp3_22050_32",
        stability: float = 0.5,
        similarity_boost: float = 0.8,
        style: float = 0.0,
        speed: float = 1.0,
        use_speaker_boost: bool = True,
        timeout: float = 10.0,
    ):
        super().__init__()
        self.voice_id = voice_id
        self.model_id = model_id
        self.output_format = output_format
        self.timeout = timeout

        self.voice_settings = VoiceSettings(
            stability=stability,
            similarity_boost=similarity_boost,
            style=style,
            use_speaker_boost=use_speaker_boost,
            speed=speed,
        )

        self.client: Optional[ElevenLabs] = None
        self.playback_thread: Optional[threading.Thread] = None
        self._cancel_event: Optional[threading.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.utterance_count = 0

    def initialize(self) -> None:
        """Initialize ElevenLabs client and pygame mixer."""
        logger.info("Initializing ElevenLabs playback", voice_id=self.voice_id)

        api_key = os.getenv("ELEVENLABS_API_KEY")
        if not api_key:
            raise ValueError("ELEVENLABS_API_KEY environment variable not set")

        self.client = ElevenLabs(api_key=api_key, timeout=self.timeout)

        pygame.mixer.pre_init(frequency=22050, size=-16, channels=2, buffer=1024)
        pygame.mixer.init()

        logger.info("ElevenLabs playback initialized")

    def speak(self, text: str) -> None:
        """Synthesize and play ``text`` on a worker thread."""
        if not self.client:
            raise RuntimeError("ElevenLabs not initialized")

        self._loop = asyncio.get_running_loop()
        self._cancel_event = threading.Event()
        self.is_active = True
        self.utterance_count += 1

        logger.debug("Starting playback", text_length=len(text))
        self.playback_thread = threading.Thread(
            target=self._play, args=(text, self._cancel_event, self._loop), daemon=True
        )
        self.playback_thread.start()

    def synthesize(self, text: str) -> bytes:
        """Convert ``text`` to encoded audio bytes."""
        audio = self.client.text_to_speech.convert(
            voice_id=self.voice_id,
            text=text,
            model_id=self.model_id,
            output_format=self.output_format,
            voice_settings=self.voice_settings,
        )

        if isinstance(audio, (bytes, bytearray)):
            return bytes(audio)
        # The SDK streams the body as an iterator of chunks
        return b"".join(audio)

    def _play(
        self,
        text: str,
        cancel_event: threading.Event,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        """Worker thread body for one utterance."""
        try:
            audio_data = self.synthesize(text)
            if cancel_event.is_set():
                return

            pygame.mixer.music.load(BytesIO(audio_data))
            pygame.mixer.music.play()
            if cancel_event.is_set():
                # cancel() ran between the check above and play()
                pygame.mixer.music.stop()
                return

            while pygame.mixer.music.get_busy() and not cancel_event.is_set():
                time.sleep(0.01)

            logger.debug("Audio playback completed", total_bytes=len(audio_data))

        except Exception as e:
            # Completion is still signalled so the conversation can move on
            logger.error("Error in playback worker", error=str(e))

        finally:
            if not cancel_event.is_set():
                loop.call_soon_threadsafe(self.emit_complete)

    def cancel(self) -> None:
        """Stop current audio playback."""
        logger.debug("Cancelling audio playback")

        if self._cancel_event:
            self._cancel_event.set()
        if pygame.mixer.get_init():
            pygame.mixer.music.stop()
        self.is_active = False

    def close(self) -> None:
        """Stop ElevenLabs playback and release the mixer."""
        logger.info("Stopping ElevenLabs playback")

        self.cancel()
        if self.playback_thread and self.playback_thread.is_alive():
            self.playback_thread.join(timeout=2.0)

        pygame.mixer.quit()
        self.client = None

    def get_status(self) -> dict:
        """Get ElevenLabs playback status."""
        return {
            "provider": "elevenlabs",
            "voice_id": self.voice_id,
            "model_id": self.model_id,
            "is_active": self.is_active,
            "utterance_count": self.utterance_count,
            "playback_thread_alive": self.playback_thread.is_alive()
            if self.playback_thread
            else False,
            "initialized": self.client is not None,
        }
