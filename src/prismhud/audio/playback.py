"""Speech playback."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

from prismhud.audio.pcm import SampleBuffer, decode_base64_pcm
from prismhud.common import get_logger
from prismhud.common.events import Event, EventBus, get_event_bus
from prismhud.config import Config


@dataclass
class Playback:
    """Record of a submitted playback."""

    buffer: SampleBuffer
    started_at: float


class AudioSink:
    """Abstract audio output."""

    async def play(self, buffer: SampleBuffer) -> None:
        """Start playing a buffer without waiting for it to finish."""
        raise NotImplementedError

    async def stop(self) -> None:
        """Stop any playback in progress."""
        raise NotImplementedError


class MockAudioSink(AudioSink):
    """Records submitted buffers."""

    def __init__(self) -> None:
        self.played: list[SampleBuffer] = []
        self.stops = 0

    async def play(self, buffer: SampleBuffer) -> None:
        self.played.append(buffer)

    async def stop(self) -> None:
        self.stops += 1


class SoundDeviceAudioSink(AudioSink):
    """Output through sounddevice; a new play replaces the previous one."""

    def __init__(self) -> None:
        self.logger = get_logger("sounddevice_audio_sink")

    async def play(self, buffer: SampleBuffer) -> None:
        try:
            import sounddevice as sd
        except ImportError:
            self.logger.error("sounddevice_not_available")
            return

        await asyncio.to_thread(sd.play, buffer.samples, buffer.sample_rate)

    async def stop(self) -> None:
        try:
            import sounddevice as sd
        except ImportError:
            return

        await asyncio.to_thread(sd.stop)


class AudioPlayer:
    """Plays synthesized speech through a single playback slot.

    Submitting a new buffer stops the previous one, so playbacks never
    accumulate.
    """

    def __init__(
        self,
        config: Config,
        sink: AudioSink | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.config = config
        self._sink = sink or (MockAudioSink() if config.mock_mode else SoundDeviceAudioSink())
        self._event_bus = event_bus or get_event_bus()
        self._current: Playback | None = None
        self.logger = get_logger("audio_player")

    @property
    def sink(self) -> AudioSink:
        return self._sink

    @property
    def current(self) -> Playback | None:
        """Latest playback, if it may still be sounding."""
        if self._current is None:
            return None
        elapsed_ms = (time.time() - self._current.started_at) * 1000
        if elapsed_ms >= self._current.buffer.duration_ms:
            self._current = None
        return self._current

    async def play(self, buffer: SampleBuffer) -> None:
        """Replace any current playback with buffer."""
        if self._current is not None:
            await self._sink.stop()
            self._current = None

        await self._sink.play(buffer)
        self._current = Playback(buffer=buffer, started_at=time.time())
        self.logger.info(
            "playback_started",
            duration_ms=buffer.duration_ms,
            sample_rate=buffer.sample_rate,
        )
        await self._event_bus.publish(
            Event(
                topic="audio.playback",
                data={"duration_ms": buffer.duration_ms},
                source="audio",
            )
        )

    async def play_base64(self, payload: str) -> SampleBuffer:
        """Decode base64 PCM and play it.

        Raises:
            AudioDecodeError: The payload is not valid 16-bit PCM.
        """
        buffer = decode_base64_pcm(
            payload,
            sample_rate=self.config.audio.sample_rate,
            channels=self.config.audio.channels,
        )
        await self.play(buffer)
        return buffer

    async def stop(self) -> None:
        """Stop current playback."""
        if self._current is not None:
            await self._sink.stop()
            self._current = None
