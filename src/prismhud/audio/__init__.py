"""Speech playback and recognition."""

from prismhud.audio.pcm import SampleBuffer, decode_base64_pcm, decode_raw_pcm, encode_pcm16, tone
from prismhud.audio.playback import AudioPlayer, AudioSink, MockAudioSink, SoundDeviceAudioSink
from prismhud.audio.recognition import (
    MockRecognitionBackend,
    RecognitionBackend,
    RecognitionOutcome,
    RecognitionState,
    SpeechRecognizer,
    WhisperRecognitionBackend,
)

__all__ = [
    "SampleBuffer",
    "decode_raw_pcm",
    "decode_base64_pcm",
    "encode_pcm16",
    "tone",
    "AudioPlayer",
    "AudioSink",
    "MockAudioSink",
    "SoundDeviceAudioSink",
    "SpeechRecognizer",
    "RecognitionBackend",
    "RecognitionOutcome",
    "RecognitionState",
    "MockRecognitionBackend",
    "WhisperRecognitionBackend",
]
