"""Pytest configuration and fixtures for PRISM HUD tests."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest
from PIL import Image

from prismhud.analysis import AnalysisClient, MockAnalysisProvider
from prismhud.audio import AudioPlayer, MockAudioSink, MockRecognitionBackend, SpeechRecognizer
from prismhud.capture import CaptureAdapter, Facing, Frame, MockCaptureBackend
from prismhud.common.events import EventBus, reset_event_bus
from prismhud.config import Config
from prismhud.pipeline import PipelineOrchestrator


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom command line options."""
    parser.addoption(
        "--hil",
        action="store_true",
        default=False,
        help="Run hardware-in-the-loop tests (requires camera, microphone and speakers)",
    )
    parser.addoption(
        "--slow",
        action="store_true",
        default=False,
        help="Run slow tests",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Configure test markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "hil: Hardware-in-the-loop tests")
    config.addinivalue_line("markers", "slow: Slow running tests")


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Modify test collection based on options."""
    # Skip HIL tests unless --hil flag is set
    if not config.getoption("--hil"):
        skip_hil = pytest.mark.skip(reason="Need --hil option to run")
        for item in items:
            if "hil" in item.keywords:
                item.add_marker(skip_hil)

    # Skip slow tests unless --slow flag is set
    if not config.getoption("--slow"):
        skip_slow = pytest.mark.skip(reason="Need --slow option to run")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)


@pytest.fixture(autouse=True)
def _fresh_event_bus():
    """Each test gets its own global event bus."""
    reset_event_bus()
    yield
    reset_event_bus()


@pytest.fixture
def mock_config() -> Config:
    """Get mock configuration with no camera settle delay."""
    cfg = Config()
    cfg.mock_mode = True
    cfg.device.mode = "development"
    cfg.device.log_level = "DEBUG"
    cfg.capture.settle_delay_seconds = 0.0
    cfg.analysis.api_key = "test-key"
    return cfg


@pytest.fixture
def hil_config(request: pytest.FixtureRequest) -> Config:
    """Get configuration for HIL tests (real hardware)."""
    cfg = Config()
    cfg.mock_mode = not request.config.getoption("--hil")
    cfg.device.mode = "development"
    cfg.device.log_level = "DEBUG"
    return cfg


@pytest.fixture
def event_bus() -> EventBus:
    """Create a fresh event bus."""
    return EventBus()


# Component fixtures


@pytest.fixture
def capture_backend() -> MockCaptureBackend:
    return MockCaptureBackend()


@pytest.fixture
def capture(mock_config: Config, capture_backend: MockCaptureBackend, event_bus: EventBus) -> CaptureAdapter:
    return CaptureAdapter(mock_config, backend=capture_backend, event_bus=event_bus)


@pytest.fixture
def provider() -> MockAnalysisProvider:
    return MockAnalysisProvider()


@pytest.fixture
def client(mock_config: Config, provider: MockAnalysisProvider) -> AnalysisClient:
    return AnalysisClient(mock_config, provider=provider)


@pytest.fixture
def audio_sink() -> MockAudioSink:
    return MockAudioSink()


@pytest.fixture
def player(mock_config: Config, audio_sink: MockAudioSink, event_bus: EventBus) -> AudioPlayer:
    return AudioPlayer(mock_config, sink=audio_sink, event_bus=event_bus)


@pytest.fixture
def recognition_backend() -> MockRecognitionBackend:
    return MockRecognitionBackend(phrase="Check the power strip", delay=0.01)


@pytest.fixture
def recognizer(mock_config: Config, recognition_backend: MockRecognitionBackend) -> SpeechRecognizer:
    return SpeechRecognizer(mock_config, backend=recognition_backend)


@pytest.fixture
def orchestrator(
    mock_config: Config,
    capture: CaptureAdapter,
    client: AnalysisClient,
    player: AudioPlayer,
    recognizer: SpeechRecognizer,
    event_bus: EventBus,
) -> PipelineOrchestrator:
    """Create an orchestrator over mock components (not started)."""
    return PipelineOrchestrator(
        mock_config,
        capture=capture,
        client=client,
        player=player,
        recognizer=recognizer,
        event_bus=event_bus,
    )


@pytest.fixture
async def running_orchestrator(orchestrator: PipelineOrchestrator):
    """Started orchestrator, stopped after the test."""
    await orchestrator.start()
    yield orchestrator
    await orchestrator.stop()


# Data fixtures


@pytest.fixture
def frame() -> Frame:
    """Solid 1280x720 frame."""
    return Frame(
        frame_id="frame-1",
        image=Image.new("RGB", (1280, 720), color=(73, 109, 137)),
        facing=Facing.BACK,
        timestamp=0.0,
    )


def _make_roi(label: str = "Dell 4K Monitor", **overrides: Any) -> dict[str, Any]:
    """Wire-form ROI."""
    roi = {
        "label": label,
        "x": 50,
        "y": 40,
        "description": "Primary display.",
        "safetyRating": "SECURE",
        "category": "ELECTRONIC",
        "confidence": 91.5,
        "rationale": ["Thin bezel panel", "Brand badge"],
        "whyItMatters": "Main work surface.",
        "recommendation": "Lower brightness by 20 percent.",
    }
    roi.update(overrides)
    return roi


@pytest.fixture
def analysis_payload(make_roi) -> dict[str, Any]:
    """Wire-form analysis response with three ROIs."""
    return {
        "verbal": "Sector mapped. Three assets tagged.",
        "summaryRationale": "Desk sweep.",
        "ambientScore": 64,
        "moodDescriptor": "Focused",
        "roi": [
            make_roi(),
            make_roi("Ceramic Coffee Mug", x=82, y=71, safetyRating="ADVISORY", category="UNKNOWN"),
            make_roi("Power Strip", x=6, y=95, safetyRating="ATTENTION"),
        ],
    }


def _gemini_body(payload: Any) -> dict[str, Any]:
    """Wrap an analysis payload in a generateContent response body."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def _gemini_audio_body(data: str) -> dict[str, Any]:
    """generateContent response body carrying inline audio."""
    return {
        "candidates": [
            {"content": {"parts": [{"inlineData": {"mimeType": "audio/L16;rate=24000", "data": data}}]}}
        ]
    }


@pytest.fixture
def recording_transport() -> Callable[..., tuple[httpx.MockTransport, list[httpx.Request]]]:
    """Factory for an httpx.MockTransport that records requests.

    ``responder(request)`` returns an ``httpx.Response``.
    """

    def factory(responder: Callable[[httpx.Request], httpx.Response]):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return responder(request)

        return httpx.MockTransport(handler), requests

    return factory


@pytest.fixture
def make_roi() -> Callable[..., dict[str, Any]]:
    return _make_roi


@pytest.fixture
def gemini_body() -> Callable[[Any], dict[str, Any]]:
    return _gemini_body


@pytest.fixture
def gemini_audio_body() -> Callable[[str], dict[str, Any]]:
    return _gemini_audio_body
