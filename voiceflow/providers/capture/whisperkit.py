"""WhisperKit capture device: streams microphone transcripts from whisperkit-cli."""

import asyncio
import shutil
from typing import List, Optional
import structlog

from .base import CaptureDevice
from ...core.errors import CaptureError


logger = structlog.get_logger()


class WhisperKitCaptureDevice(CaptureDevice):
    """
    Runs ``whisperkit-cli transcribe --stream`` as a subprocess for as long as
    the device is active. Each non-empty stdout line is one transcript.

    A binary that cannot be launched or a non-zero exit is reported as an
    error; a clean exit is reported as the end of capture.
    """

    def __init__(
        self,
        whisperkit_path: str = "whisperkit-cli",
        model: str = "large-v3_turbo",
        compute_units: str = "cpuAndNeuralEngine",
        vad_enabled: bool = True,
    ):
        super().__init__()
        self.whisperkit_path = whisperkit_path
        self.model = model
        self.compute_units = compute_units
        self.vad_enabled = vad_enabled

        self.process: Optional[asyncio.subprocess.Process] = None
        self._reader_task: Optional[asyncio.Task] = None
        self.transcript_count = 0
        self.available: Optional[bool] = None

    def initialize(self) -> None:
        """Check that whisperkit-cli is available."""
        resolved = shutil.which(self.whisperkit_path)
        self.available = resolved is not None
        if resolved:
            self.whisperkit_path = resolved
            logger.info("WhisperKit capture ready", path=resolved, model=self.model)
        else:
            logger.warning(
                "whisperkit-cli not found, voice capture will fail",
                path=self.whisperkit_path,
            )

    def build_command(self) -> List[str]:
        cmd = [
            self.whisperkit_path,
            "transcribe",
            "--stream",
            "--model", self.model,
            "--audio-encoder-compute-units", self.compute_units,
            "--text-decoder-compute-units", self.compute_units,
        ]
        if self.vad_enabled:
            cmd.extend(["--chunking-strategy", "vad"])
        return cmd

    def start(self) -> None:
        """Launch the transcription subprocess."""
        if self.is_active:
            return
        if self.available is False:
            raise CaptureError(f"whisperkit-cli not found: {self.whisperkit_path}")

        self.is_active = True
        self._reader_task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        cmd = self.build_command()
        try:
            self.process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Failed to start WhisperKit", error=str(e))
            self.emit_error(f"Failed to start WhisperKit: {e}")
            return

        logger.info("WhisperKit subprocess started", pid=self.process.pid, command=" ".join(cmd))
        self.emit_start()

        # Drain stderr while stdout streams
        stderr_task = asyncio.get_running_loop().create_task(self.process.stderr.read())
        try:
            async for raw_line in self.process.stdout:
                text = raw_line.decode(errors="replace").strip()
                if text:
                    self.transcript_count += 1
                    self.emit_result(text)

            returncode = await self.process.wait()
            stderr = (await stderr_task).decode(errors="replace").strip()
        finally:
            if not stderr_task.done():
                stderr_task.cancel()

        if returncode == 0:
            logger.info("WhisperKit subprocess finished")
            self.emit_end()
            return

        logger.warning("WhisperKit process terminated", returncode=returncode, stderr=stderr[:200])
        self.emit_error(stderr or f"whisperkit-cli exited with status {returncode}")

    def stop(self) -> None:
        """Stop the subprocess. No further events are emitted."""
        self.is_active = False

        if self._reader_task and not self._reader_task.done():
            self._reader_task.cancel()
        self._reader_task = None

        if self.process and self.process.returncode is None:
            try:
                self.process.terminate()
            except ProcessLookupError:
                logger.debug("WhisperKit process already exited")
        self.process = None

    def close(self) -> None:
        logger.info("Stopping WhisperKit capture")
        self.stop()

    def get_status(self) -> dict:
        """Get WhisperKit capture status."""
        return {
            "provider": "whisperkit",
            "model": self.model,
            "is_active": self.is_active,
            "process_alive": self.process is not None and self.process.returncode is None,
            "vad_enabled": self.vad_enabled,
            "compute_units": self.compute_units,
            "transcript_count": self.transcript_count,
        }
