"""Raw PCM decoding for synthesized speech.

The speech model returns headerless signed 16-bit little-endian PCM,
mono at 24 kHz, base64 encoded.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

import numpy as np

from prismhud.common import AudioDecodeError

PCM_SCALE = 32768.0
DEFAULT_SAMPLE_RATE = 24000


@dataclass(frozen=True)
class SampleBuffer:
    """Float samples in [-1, 1), shaped (frames,) for mono or (frames, channels)."""

    samples: np.ndarray
    sample_rate: int
    channels: int

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_ms(self) -> int:
        return int(self.frame_count * 1000 / self.sample_rate)


def decode_raw_pcm(
    data: bytes,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    channels: int = 1,
) -> SampleBuffer:
    """Decode signed 16-bit little-endian PCM into normalized float samples.

    Raises:
        AudioDecodeError: The byte count is not a whole number of frames.
    """
    if channels < 1 or sample_rate < 1:
        raise AudioDecodeError(f"Invalid PCM format: {sample_rate} Hz, {channels} channels")
    if len(data) % (2 * channels):
        raise AudioDecodeError(
            f"PCM payload of {len(data)} bytes is not a whole number of {channels}-channel frames"
        )

    samples = np.frombuffer(data, dtype="<i2").astype(np.float32) / PCM_SCALE
    if channels > 1:
        samples = samples.reshape(-1, channels)
    return SampleBuffer(samples=samples, sample_rate=sample_rate, channels=channels)


def decode_base64_pcm(
    payload: str,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    channels: int = 1,
) -> SampleBuffer:
    """Decode a base64 PCM payload."""
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AudioDecodeError(f"Audio payload is not valid base64: {e}") from e
    return decode_raw_pcm(data, sample_rate, channels)


def encode_pcm16(samples: np.ndarray) -> bytes:
    """Encode float samples in [-1, 1] as signed 16-bit little-endian PCM."""
    scaled = np.clip(np.round(np.asarray(samples, dtype=np.float64) * PCM_SCALE), -32768, 32767)
    return scaled.astype("<i2").tobytes()


def tone(frequency: float = 440.0, duration_s: float = 0.3, sample_rate: int = DEFAULT_SAMPLE_RATE) -> bytes:
    """Generate a short sine tone as PCM bytes."""
    t = np.arange(int(sample_rate * duration_s)) / sample_rate
    return encode_pcm16(0.25 * np.sin(2 * np.pi * frequency * t))
