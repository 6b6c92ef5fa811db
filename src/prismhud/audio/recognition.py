"""Push-to-talk speech recognition."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum

import numpy as np

from prismhud.audio.pcm import PCM_SCALE
from prismhud.common import BusyError, DeviceError, PrismError, get_logger
from prismhud.config import Config


class RecognitionState(str, Enum):
    """Recognizer state."""

    IDLE = "IDLE"
    LISTENING = "LISTENING"


@dataclass(frozen=True)
class RecognitionOutcome:
    """Result of one listening session.

    ``transcript`` is None when nothing was heard, the session was stopped,
    or recognition failed (``error`` is set in that case).
    """

    transcript: str | None = None
    error: str | None = None
    latency_ms: int = 0


class RecognitionBackend:
    """Abstract recognition backend."""

    async def recognize(self) -> str:
        """Capture one utterance and return its text."""
        raise NotImplementedError

    async def cancel(self) -> None:
        """Abort a capture in progress."""


class MockRecognitionBackend(RecognitionBackend):
    """Returns a fixed phrase after a delay."""

    def __init__(self, phrase: str = "What am I looking at?", delay: float = 0.05) -> None:
        self.phrase = phrase
        self.delay = delay
        self.sessions = 0

    async def recognize(self) -> str:
        self.sessions += 1
        await asyncio.sleep(self.delay)
        return self.phrase


class WhisperRecognitionBackend(RecognitionBackend):
    """Records the microphone with sounddevice and transcribes with faster-whisper."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self._whisper_model = None
        self.logger = get_logger("whisper_recognition_backend")

    def _load_model(self):
        if self._whisper_model is None:
            try:
                from faster_whisper import WhisperModel
            except ImportError as e:
                raise DeviceError("faster-whisper is not installed") from e

            model_size = self.config.speech.stt_model
            self._whisper_model = WhisperModel(model_size, device="cpu", compute_type="int8")
            self.logger.info("whisper_model_loaded", model=model_size)
        return self._whisper_model

    def _record(self) -> np.ndarray:
        try:
            import sounddevice as sd
        except ImportError as e:
            raise DeviceError("sounddevice is not installed") from e

        sample_rate = self.config.speech.mic_sample_rate
        frames = int(sample_rate * self.config.speech.listen_seconds)
        try:
            audio = sd.rec(frames, samplerate=sample_rate, channels=1, dtype="int16")
            sd.wait()
        except sd.PortAudioError as e:
            raise DeviceError(f"Microphone unavailable: {e}") from e
        return audio.reshape(-1).astype(np.float32) / PCM_SCALE

    def _transcribe(self, audio: np.ndarray) -> str:
        language = self.config.speech.stt_language
        segments, _ = self._load_model().transcribe(
            audio,
            language=language if language != "auto" else None,
            vad_filter=True,
        )
        return " ".join(segment.text for segment in segments).strip()

    async def recognize(self) -> str:
        audio = await asyncio.to_thread(self._record)
        return await asyncio.to_thread(self._transcribe, audio)

    async def cancel(self) -> None:
        try:
            import sounddevice as sd
        except ImportError:
            return
        await asyncio.to_thread(sd.stop)


class SpeechRecognizer:
    """Two-state recognizer: IDLE until ``listen()``, LISTENING until the utterance resolves."""

    def __init__(self, config: Config, backend: RecognitionBackend | None = None) -> None:
        self.config = config
        self._backend = backend or (
            MockRecognitionBackend() if config.mock_mode else WhisperRecognitionBackend(config)
        )
        self._state = RecognitionState.IDLE
        self._task: asyncio.Task[str] | None = None
        self._stop_requested = False
        self.logger = get_logger("speech_recognizer")

    @property
    def state(self) -> RecognitionState:
        return self._state

    async def listen(self) -> RecognitionOutcome:
        """Run one listening session.

        Raises:
            BusyError: A session is already active.
        """
        if self._state is RecognitionState.LISTENING:
            raise BusyError("Recognition session already active")

        self._state = RecognitionState.LISTENING
        self._stop_requested = False
        self._task = asyncio.create_task(self._backend.recognize())
        start_time = time.time()
        self.logger.info("listening_started")

        try:
            text = await self._task
        except asyncio.CancelledError:
            if not self._stop_requested:
                raise
            self.logger.info("listening_stopped")
            return RecognitionOutcome()
        except PrismError as e:
            self.logger.warning("recognition_failed", kind=e.kind, error=str(e))
            return RecognitionOutcome(error=str(e))
        except Exception as e:
            self.logger.exception("recognition_failed", error=str(e))
            return RecognitionOutcome(error=str(e))
        finally:
            self._task = None
            self._state = RecognitionState.IDLE

        latency_ms = int((time.time() - start_time) * 1000)
        transcript = text.strip() if text else ""
        self.logger.info("listening_finished", heard=bool(transcript), latency_ms=latency_ms)
        return RecognitionOutcome(transcript=transcript or None, latency_ms=latency_ms)

    async def stop(self) -> None:
        """End the active session; it resolves with no transcript."""
        if self._task is None or self._task.done():
            return
        self._stop_requested = True
        self._task.cancel()
        await self._backend.cancel()
