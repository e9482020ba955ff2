"""Tests for the concrete providers and the provider registry."""

import asyncio
import os
import threading
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock, patch
import pytest

from conftest import FakeCaptureDevice, settle
from voiceflow.core.errors import CaptureError, EmptyResponse, NetworkError
from voiceflow.providers import registry
from voiceflow.providers.capture.whisperkit import WhisperKitCaptureDevice
from voiceflow.providers.inference.gemini import GeminiInferenceClient, extract_response_text
from voiceflow.providers.playback.elevenlabs import ElevenLabsPlaybackDevice
from voiceflow.providers.playback.text import TextPlaybackDevice
from voiceflow.providers.registry import ProviderRegistry


def gemini_response(text):
    part = SimpleNamespace(text=text)
    candidate = SimpleNamespace(content=SimpleNamespace(parts=[part]))
    return SimpleNamespace(candidates=[candidate])


class TestGeminiInferenceClient:
    """Test Gemini inference client."""

    def setup_method(self):
        """Set up test fixtures."""
        self.system_prompt = "You are a helpful assistant."
        self.client = GeminiInferenceClient(
            system_prompt=self.system_prompt, timeout=1.0, max_retries=2, initial_backoff=0.001
        )

    @patch.dict(os.environ, {"GOOGLE_API_KEY": "test-key"})
    @patch("google.generativeai.configure")
    @patch("google.generativeai.GenerativeModel")
    def test_initialize_success(self, mock_model_class, mock_configure):
        """Test successful Gemini initialization."""
        self.client.initialize()

        mock_configure.assert_called_once_with(api_key="test-key")
        mock_model_class.assert_called_once_with(
            model_name="gemini-1.5-flash", system_instruction=self.system_prompt
        )
        assert self.client.model is mock_model_class.return_value

    @patch.dict(os.environ, {"GOOGLE_API_KEY": "test-key"})
    @patch("google.generativeai.configure")
    @patch("google.generativeai.GenerativeModel")
    def test_initialize_without_system_prompt(self, mock_model_class, mock_configure):
        client = GeminiInferenceClient()
        client.initialize()

        mock_model_class.assert_called_once_with(model_name="gemini-1.5-flash")

    def test_initialize_no_api_key(self):
        """Test Gemini initialization without API key."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="GOOGLE_API_KEY"):
                self.client.initialize()

    @pytest.mark.asyncio
    async def test_generate_not_initialized(self):
        with pytest.raises(RuntimeError):
            await self.client.generate("Hello")

    @pytest.mark.asyncio
    async def test_generate_success(self):
        self.client.model = Mock()
        self.client.model.generate_content_async = AsyncMock(
            return_value=gemini_response("Hi there")
        )

        answer = await self.client.generate("Hello")

        assert answer == "Hi there"
        assert self.client.request_count == 1
        assert self.client.is_generating is False
        args, kwargs = self.client.model.generate_content_async.call_args
        assert args == ("Hello",)
        assert "generation_config" in kwargs

    @pytest.mark.asyncio
    async def test_generate_empty_response(self):
        self.client.model = Mock()
        self.client.model.generate_content_async = AsyncMock(
            return_value=SimpleNamespace(candidates=[])
        )

        with pytest.raises(EmptyResponse):
            await self.client.generate("Hello")

        assert self.client.model.generate_content_async.call_count == 1

    @pytest.mark.asyncio
    async def test_generate_retry(self):
        """Test Gemini retry logic."""
        self.client.model = Mock()
        self.client.model.generate_content_async = AsyncMock(
            side_effect=[Exception("API Error"), gemini_response("Success")]
        )

        assert await self.client.generate("Hello") == "Success"
        assert self.client.model.generate_content_async.call_count == 2

    @pytest.mark.asyncio
    async def test_generate_all_retries_fail(self):
        """Test Gemini when all retries fail."""
        self.client.model = Mock()
        self.client.model.generate_content_async = AsyncMock(
            side_effect=Exception("Persistent API Error")
        )

        with pytest.raises(NetworkError, match="Persistent API Error") as exc_info:
            await self.client.generate("Hello")

        assert self.client.model.generate_content_async.call_count == 2
        assert str(exc_info.value.cause) == "Persistent API Error"

    @pytest.mark.asyncio
    async def test_generate_timeout(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        client = GeminiInferenceClient(timeout=0.01, max_retries=1)
        client.model = Mock()
        client.model.generate_content_async = slow

        with pytest.raises(NetworkError, match="timeout"):
            await client.generate("Hello")

    def test_extract_response_text(self):
        assert extract_response_text(gemini_response("text")) == "text"
        assert extract_response_text(gemini_response(None)) == ""
        assert extract_response_text(SimpleNamespace(candidates=[])) == ""
        assert extract_response_text(None) == ""

    def test_close(self):
        self.client.model = Mock()
        self.client.close()
        assert self.client.model is None

    def test_get_status(self):
        """Test getting Gemini status."""
        status = self.client.get_status()

        assert status["provider"] == "gemini"
        assert status["model"] == "gemini-1.5-flash"
        assert status["initialized"] is False
        assert status["request_count"] == 0


class TestElevenLabsPlaybackDevice:
    """Test ElevenLabs playback device."""

    def setup_method(self):
        self.device = ElevenLabsPlaybackDevice()
        self.device.client = Mock()
        self.device.client.text_to_speech.convert.return_value = iter([b"ab", b"cd"])

    def test_initialize_no_api_key(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="ELEVENLABS_API_KEY"):
                ElevenLabsPlaybackDevice().initialize()

    @patch.dict(os.environ, {"ELEVENLABS_API_KEY": "test-key"})
    @patch("voiceflow.providers.playback.elevenlabs.pygame")
    @patch("voiceflow.providers.playback.elevenlabs.ElevenLabs")
    def test_initialize_success(self, mock_client_class, mock_pygame):
        device = ElevenLabsPlaybackDevice(timeout=5.0)
        device.initialize()

        mock_client_class.assert_called_once_with(api_key="test-key", timeout=5.0)
        mock_pygame.mixer.init.assert_called_once()
        assert device.client is mock_client_class.return_value

    def test_synthesize_joins_chunks(self):
        assert self.device.synthesize("Hello") == b"abcd"

        kwargs = self.device.client.text_to_speech.convert.call_args.kwargs
        assert kwargs["text"] == "Hello"
        assert kwargs["voice_id"] == self.device.voice_id

    def test_speak_requires_initialize(self):
        with pytest.raises(RuntimeError):
            ElevenLabsPlaybackDevice().speak("Hello")

    @pytest.mark.asyncio
    @patch("voiceflow.providers.playback.elevenlabs.pygame")
    async def test_speak_signals_completion(self, mock_pygame):
        mock_pygame.mixer.music.get_busy.return_value = False
        listener = Mock()
        self.device.attach(listener)

        self.device.speak("Hello")
        listener.on_playback_complete.assert_not_called()

        self.device.playback_thread.join(timeout=2.0)
        await settle()

        listener.on_playback_complete.assert_called_once()
        mock_pygame.mixer.music.play.assert_called_once()
        assert self.device.is_active is False

    @patch("voiceflow.providers.playback.elevenlabs.pygame")
    def test_cancelled_utterance_never_completes(self, mock_pygame):
        loop = Mock()
        cancel_event = threading.Event()
        cancel_event.set()

        self.device._play("Hello", cancel_event, loop)

        loop.call_soon_threadsafe.assert_not_called()
        mock_pygame.mixer.music.play.assert_not_called()

    @patch("voiceflow.providers.playback.elevenlabs.pygame")
    def test_cancel_just_before_play_stops_audio(self, mock_pygame):
        loop = Mock()
        cancel_event = threading.Event()
        mock_pygame.mixer.music.play.side_effect = lambda: cancel_event.set()

        self.device._play("Hello", cancel_event, loop)

        mock_pygame.mixer.music.play.assert_called_once()
        mock_pygame.mixer.music.stop.assert_called_once()
        mock_pygame.mixer.music.get_busy.assert_not_called()
        loop.call_soon_threadsafe.assert_not_called()

    @patch("voiceflow.providers.playback.elevenlabs.pygame")
    def test_synthesis_error_still_completes(self, mock_pygame):
        loop = Mock()
        self.device.client.text_to_speech.convert.side_effect = Exception("quota exceeded")

        self.device._play("Hello", threading.Event(), loop)

        loop.call_soon_threadsafe.assert_called_once_with(self.device.emit_complete)

    @patch("voiceflow.providers.playback.elevenlabs.pygame")
    def test_cancel_stops_mixer(self, mock_pygame):
        mock_pygame.mixer.get_init.return_value = True
        self.device._cancel_event = threading.Event()
        self.device.is_active = True

        self.device.cancel()

        assert self.device._cancel_event.is_set()
        mock_pygame.mixer.music.stop.assert_called_once()
        assert self.device.is_active is False

    def test_get_status(self):
        status = self.device.get_status()

        assert status["provider"] == "elevenlabs"
        assert status["initialized"] is True
        assert status["playback_thread_alive"] is False


class FakeProcess:
    """Stand-in for an asyncio subprocess."""

    def __init__(self, stdout=b"", stderr=b"", returncode=0):
        self.pid = 1234
        self.returncode = None
        self._exit_code = returncode
        self.stdout = asyncio.StreamReader()
        self.stdout.feed_data(stdout)
        self.stdout.feed_eof()
        self.stderr = asyncio.StreamReader()
        self.stderr.feed_data(stderr)
        self.stderr.feed_eof()
        self.terminate = Mock()

    async def wait(self):
        self.returncode = self._exit_code
        return self.returncode


class StderrHeavyProcess(FakeProcess):
    """Subprocess that only finishes its stdout once stderr has been read."""

    def __init__(self):
        super().__init__()
        self.stdout = asyncio.StreamReader()
        self.stderr_read = asyncio.Event()
        self.stderr = Mock()
        self.stderr.read = AsyncMock(side_effect=self._read_stderr)

    async def _read_stderr(self):
        self.stderr_read.set()
        return b"loading model... " * 4096

    async def finish_stdout(self):
        await self.stderr_read.wait()
        self.stdout.feed_data(b"hello\n")
        self.stdout.feed_eof()


class TestWhisperKitCaptureDevice:
    """Test WhisperKit capture device."""

    def test_build_command(self):
        device = WhisperKitCaptureDevice(whisperkit_path="/usr/bin/whisperkit-cli", model="base")

        cmd = device.build_command()

        assert cmd[:3] == ["/usr/bin/whisperkit-cli", "transcribe", "--stream"]
        assert cmd[cmd.index("--model") + 1] == "base"
        assert cmd[-2:] == ["--chunking-strategy", "vad"]

    def test_build_command_without_vad(self):
        cmd = WhisperKitCaptureDevice(vad_enabled=False).build_command()
        assert "--chunking-strategy" not in cmd

    @patch("voiceflow.providers.capture.whisperkit.shutil.which")
    def test_initialize_resolves_path(self, mock_which):
        mock_which.return_value = "/opt/bin/whisperkit-cli"
        device = WhisperKitCaptureDevice()

        device.initialize()

        assert device.whisperkit_path == "/opt/bin/whisperkit-cli"

    @patch("voiceflow.providers.capture.whisperkit.shutil.which")
    def test_start_without_binary_raises(self, mock_which):
        mock_which.return_value = None
        device = WhisperKitCaptureDevice()
        device.initialize()

        with pytest.raises(CaptureError, match="not found"):
            device.start()
        assert device.is_active is False

    @pytest.mark.asyncio
    async def test_streams_transcripts(self):
        process = FakeProcess(stdout=b"hello there\n\n  \nwhat time is it\n")
        listener = Mock()
        device = WhisperKitCaptureDevice()
        device.attach(listener)

        with patch(
            "voiceflow.providers.capture.whisperkit.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=process),
        ):
            device.start()
            await device._reader_task

        listener.on_capture_start.assert_called_once()
        results = [c.args[0] for c in listener.on_capture_result.call_args_list]
        assert results == ["hello there", "what time is it"]
        listener.on_capture_end.assert_called_once()
        listener.on_capture_error.assert_not_called()
        assert device.transcript_count == 2

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_error(self):
        process = FakeProcess(stderr=b"microphone permission denied", returncode=1)
        listener = Mock()
        device = WhisperKitCaptureDevice()
        device.attach(listener)

        with patch(
            "voiceflow.providers.capture.whisperkit.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=process),
        ):
            device.start()
            await device._reader_task

        listener.on_capture_error.assert_called_once_with("microphone permission denied")
        listener.on_capture_end.assert_not_called()
        assert device.is_active is False

    @pytest.mark.asyncio
    async def test_stderr_read_while_streaming(self):
        process = StderrHeavyProcess()
        listener = Mock()
        device = WhisperKitCaptureDevice()
        device.attach(listener)

        with patch(
            "voiceflow.providers.capture.whisperkit.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=process),
        ):
            device.start()
            writer = asyncio.get_running_loop().create_task(process.finish_stdout())
            await asyncio.wait_for(device._reader_task, timeout=1.0)
            await writer

        listener.on_capture_result.assert_called_once_with("hello")
        listener.on_capture_end.assert_called_once()
        listener.on_capture_error.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_binary_is_error(self):
        listener = Mock()
        device = WhisperKitCaptureDevice(whisperkit_path="/missing/whisperkit-cli")
        device.attach(listener)

        with patch(
            "voiceflow.providers.capture.whisperkit.asyncio.create_subprocess_exec",
            new=AsyncMock(side_effect=FileNotFoundError("No such file")),
        ):
            device.start()
            await device._reader_task

        listener.on_capture_start.assert_not_called()
        reason = listener.on_capture_error.call_args.args[0]
        assert reason.startswith("Failed to start WhisperKit")

    @pytest.mark.asyncio
    async def test_stop_terminates_process(self):
        device = WhisperKitCaptureDevice()
        process = FakeProcess()
        device.process = process
        device.is_active = True

        device.stop()

        process.terminate.assert_called_once()
        assert device.process is None
        assert device.is_active is False

    def test_get_status(self):
        status = WhisperKitCaptureDevice().get_status()

        assert status["provider"] == "whisperkit"
        assert status["process_alive"] is False


class TestTextPlaybackDevice:
    """Test text-only playback."""

    @pytest.mark.asyncio
    async def test_completes_on_next_iteration(self):
        listener = Mock()
        device = TextPlaybackDevice()
        device.attach(listener)

        device.speak("Hello")
        listener.on_playback_complete.assert_not_called()
        await settle()

        listener.on_playback_complete.assert_called_once()
        assert device.utterance_count == 1

    @pytest.mark.asyncio
    async def test_cancel_suppresses_completion(self):
        listener = Mock()
        device = TextPlaybackDevice()
        device.attach(listener)

        device.speak("Hello")
        device.cancel()
        await settle()

        listener.on_playback_complete.assert_not_called()


class TestProviderRegistry:
    """Test provider registration and lookup."""

    def test_builtin_providers_registered(self):
        assert "whisperkit" in registry.list_capture_providers()
        assert "gemini" in registry.list_inference_providers()
        assert set(registry.list_playback_providers()) >= {"elevenlabs", "text"}

    def test_config_getter_applied(self):
        client = registry.get_inference_provider("gemini")

        assert isinstance(client, GeminiInferenceClient)
        assert client.system_prompt

    def test_explicit_kwargs_win(self):
        client = registry.get_inference_provider("gemini", model_name="gemini-1.5-pro")
        assert client.model_name == "gemini-1.5-pro"

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown capture provider"):
            registry.get_capture_provider("nonexistent")

    def test_register_and_clear(self):
        local = ProviderRegistry()
        local.register_capture_provider("fake", FakeCaptureDevice)

        assert isinstance(local.get_capture_provider("fake"), FakeCaptureDevice)

        local.clear()
        assert local.list_capture_providers() == []

    def test_config_getter_called_per_instance(self):
        local = ProviderRegistry()
        getter = MagicMock(return_value={})
        local.register_capture_provider("fake", FakeCaptureDevice, getter)

        local.get_capture_provider("fake")
        local.get_capture_provider("fake")

        assert getter.call_count == 2
