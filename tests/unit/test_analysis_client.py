"""Tests for the analysis client and its providers."""

import base64
import json

import httpx
import pytest

from prismhud.analysis import (
    AnalysisClient,
    AnalysisRequest,
    ConversationTurn,
    FocusMode,
    GeminiAnalysisProvider,
    MockAnalysisProvider,
    RelayAnalysisProvider,
    Role,
    VoiceOption,
)
from prismhud.analysis.client import ProviderReply
from prismhud.analysis.prompts import AUTONOMOUS_PROMPT
from prismhud.common import NetworkError, SchemaError, ServiceError
from prismhud.config import Config

HISTORY = (
    ConversationTurn(Role.USER, "Execute sector sweep."),
    ConversationTurn(Role.MODEL, "Sector mapped."),
)


def gemini_client(config, transport):
    config.mock_mode = False
    config.analysis.provider = "gemini"
    return AnalysisClient(config, transport=transport)


class TestGeminiProvider:
    """Direct generateContent calls over httpx."""

    @pytest.mark.asyncio
    async def test_request_shape(self, mock_config: Config, frame, analysis_payload, gemini_body, recording_transport):
        mock_config.analysis.speech_enabled = False
        transport, requests = recording_transport(lambda r: httpx.Response(200, json=gemini_body(analysis_payload)))
        client = gemini_client(mock_config, transport)

        response = await client.request(frame, "What is on the desk?", HISTORY, FocusMode.WORKSPACE, VoiceOption.MALE)

        assert len(response.data.roi) == 3
        assert response.audio_base64 is None

        assert len(requests) == 1
        request = requests[0]
        assert request.url.path.endswith("/models/gemini-3-flash-preview:generateContent")
        assert request.headers["x-goog-api-key"] == "test-key"

        body = json.loads(request.content)
        assert "WORKSPACE" in body["systemInstruction"]["parts"][0]["text"]
        assert body["contents"][:2] == [turn.to_content() for turn in HISTORY]

        user_turn = body["contents"][2]
        assert user_turn["role"] == "user"
        assert user_turn["parts"][0] == {"text": "What is on the desk?"}
        inline = user_turn["parts"][1]["inlineData"]
        assert inline["mimeType"] == "image/jpeg"
        assert base64.b64decode(inline["data"])[:2] == b"\xff\xd8"

        generation = body["generationConfig"]
        assert generation["responseMimeType"] == "application/json"
        assert generation["responseSchema"]["required"] == ["verbal", "roi", "ambientScore", "moodDescriptor"]
        assert generation["thinkingConfig"] == {"thinkingBudget": 0}

    @pytest.mark.asyncio
    async def test_empty_prompt_uses_autonomous_default(
        self, mock_config: Config, frame, analysis_payload, gemini_body, recording_transport
    ):
        mock_config.analysis.speech_enabled = False
        transport, requests = recording_transport(lambda r: httpx.Response(200, json=gemini_body(analysis_payload)))
        client = gemini_client(mock_config, transport)

        await client.request(frame, "", (), FocusMode.GENERAL, VoiceOption.MALE)

        body = json.loads(requests[0].content)
        assert body["contents"][0]["parts"][0] == {"text": AUTONOMOUS_PROMPT}
        assert "MODE: AUTONOMOUS" in body["systemInstruction"]["parts"][0]["text"]

    @pytest.mark.asyncio
    async def test_speech_sub_call(
        self, mock_config: Config, frame, analysis_payload, gemini_body, gemini_audio_body, recording_transport
    ):
        pcm = base64.b64encode(b"\x00\x01" * 240).decode()

        def responder(request: httpx.Request) -> httpx.Response:
            if "tts" in request.url.path:
                return httpx.Response(200, json=gemini_audio_body(pcm))
            return httpx.Response(200, json=gemini_body(analysis_payload))

        transport, requests = recording_transport(responder)
        client = gemini_client(mock_config, transport)

        response = await client.request(frame, "", (), FocusMode.GENERAL, VoiceOption.FEMALE)

        assert response.audio_base64 == pcm
        assert len(requests) == 2
        tts_body = json.loads(requests[1].content)
        assert requests[1].url.path.endswith("/models/gemini-2.5-flash-preview-tts:generateContent")
        assert tts_body["contents"][0]["parts"][0]["text"] == response.data.verbal
        assert tts_body["generationConfig"]["responseModalities"] == ["AUDIO"]
        voice = tts_body["generationConfig"]["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]
        assert voice == {"voiceName": "Kore"}

    @pytest.mark.asyncio
    async def test_speech_failure_is_not_fatal(
        self, mock_config: Config, frame, analysis_payload, gemini_body, recording_transport
    ):
        def responder(request: httpx.Request) -> httpx.Response:
            if "tts" in request.url.path:
                return httpx.Response(500, json={"error": {"message": "quota"}})
            return httpx.Response(200, json=gemini_body(analysis_payload))

        transport, _ = recording_transport(responder)
        client = gemini_client(mock_config, transport)

        response = await client.request(frame, "", (), FocusMode.GENERAL, VoiceOption.MALE)
        assert len(response.data.roi) == 3
        assert response.audio_base64 is None

    @pytest.mark.asyncio
    async def test_no_speech_call_after_failed_analysis(self, mock_config: Config, frame, recording_transport):
        transport, requests = recording_transport(lambda r: httpx.Response(503, text="unavailable"))
        client = gemini_client(mock_config, transport)

        with pytest.raises(ServiceError) as exc_info:
            await client.request(frame, "", (), FocusMode.GENERAL, VoiceOption.MALE)

        assert exc_info.value.status_code == 503
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_transport_error_is_network_error(self, mock_config: Config, frame):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = gemini_client(mock_config, httpx.MockTransport(handler))
        with pytest.raises(NetworkError):
            await client.request(frame, "", (), FocusMode.GENERAL, VoiceOption.MALE)

    @pytest.mark.asyncio
    async def test_timeout_is_network_error(self, mock_config: Config, frame):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = gemini_client(mock_config, httpx.MockTransport(handler))
        with pytest.raises(NetworkError):
            await client.request(frame, "", (), FocusMode.GENERAL, VoiceOption.MALE)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"candidates": []},
            {"candidates": [{"content": {"parts": []}}]},
            {"candidates": [{"content": {"parts": [{"text": "not json"}]}}]},
            {"candidates": [{"content": {"parts": [{"text": "{\"verbal\": \"x\"}"}]}}]},
        ],
    )
    async def test_bad_bodies_are_schema_errors(self, mock_config: Config, frame, recording_transport, body):
        mock_config.analysis.speech_enabled = False
        transport, _ = recording_transport(lambda r: httpx.Response(200, json=body))
        client = gemini_client(mock_config, transport)

        with pytest.raises(SchemaError):
            await client.request(frame, "", (), FocusMode.GENERAL, VoiceOption.MALE)

    @pytest.mark.asyncio
    async def test_non_json_body_is_schema_error(self, mock_config: Config, frame, recording_transport):
        transport, _ = recording_transport(lambda r: httpx.Response(200, text="<html>proxy</html>"))
        client = gemini_client(mock_config, transport)

        with pytest.raises(SchemaError):
            await client.request(frame, "", (), FocusMode.GENERAL, VoiceOption.MALE)

    @pytest.mark.asyncio
    async def test_thought_parts_ignored(self, mock_config: Config, recording_transport, analysis_payload):
        body = {
            "candidates": [
                {
                    "content": {
                        "parts": [
                            {"text": "Reasoning about the desk...", "thought": True},
                            {"text": json.dumps(analysis_payload)},
                        ]
                    }
                }
            ]
        }
        transport, _ = recording_transport(lambda r: httpx.Response(200, json=body))
        provider = GeminiAnalysisProvider(mock_config, transport)

        request = AnalysisRequest("aGk=", "", (), FocusMode.GENERAL, VoiceOption.MALE)
        reply = await provider.analyze(request)
        assert json.loads(reply.payload) == analysis_payload


class TestRelayProvider:
    @pytest.mark.asyncio
    async def test_relay_round_trip(self, mock_config: Config, frame, analysis_payload, recording_transport):
        mock_config.mock_mode = False
        mock_config.analysis.provider = "relay"
        pcm = base64.b64encode(b"\x00\x00" * 10).decode()
        transport, requests = recording_transport(
            lambda r: httpx.Response(200, json={"data": analysis_payload, "audioBase64": pcm})
        )
        client = AnalysisClient(mock_config, transport=transport)
        assert isinstance(client.provider, RelayAnalysisProvider)

        response = await client.request(frame, "Scan", HISTORY, FocusMode.WELLNESS, VoiceOption.MALE)

        assert response.audio_base64 == pcm
        assert str(requests[0].url) == mock_config.analysis.relay_endpoint
        body = json.loads(requests[0].content)
        assert body["prompt"] == "Scan"
        assert body["focusMode"] == "WELLNESS"
        assert body["voice"] == "MALE"
        assert body["history"] == [turn.to_content() for turn in HISTORY]
        assert base64.b64decode(body["image"])[:2] == b"\xff\xd8"

    @pytest.mark.asyncio
    async def test_relay_error_payload(self, mock_config: Config, frame, recording_transport):
        mock_config.mock_mode = False
        mock_config.analysis.provider = "relay"
        transport, _ = recording_transport(lambda r: httpx.Response(200, json={"error": "Neural link failure"}))
        client = AnalysisClient(mock_config, transport=transport)

        with pytest.raises(ServiceError, match="Neural link failure"):
            await client.request(frame, "", (), FocusMode.GENERAL, VoiceOption.MALE)

    @pytest.mark.asyncio
    async def test_relay_without_audio_falls_back_to_provider_speech(
        self, mock_config: Config, frame, analysis_payload, recording_transport
    ):
        mock_config.mock_mode = False
        mock_config.analysis.provider = "relay"
        transport, requests = recording_transport(lambda r: httpx.Response(200, json={"data": analysis_payload}))
        client = AnalysisClient(mock_config, transport=transport)

        response = await client.request(frame, "", (), FocusMode.GENERAL, VoiceOption.MALE)
        assert response.audio_base64 is None
        assert len(requests) == 1


class TestMockProvider:
    @pytest.mark.asyncio
    async def test_mock_mode_selects_mock_provider(self, mock_config: Config, frame):
        client = AnalysisClient(mock_config)
        assert isinstance(client.provider, MockAnalysisProvider)

        response = await client.request(frame, "", (), FocusMode.GENERAL, VoiceOption.MALE)
        assert len(response.data.roi) == 3
        assert response.audio_base64

    @pytest.mark.asyncio
    async def test_records_requests(self, client: AnalysisClient, provider: MockAnalysisProvider, frame):
        await client.request(frame, "Check the mug", HISTORY, FocusMode.HOME_SAFETY, VoiceOption.MALE)

        request = provider.requests[0]
        assert request.prompt == "Check the mug"
        assert request.commanded
        assert request.history == HISTORY
        assert request.focus_mode is FocusMode.HOME_SAFETY

    @pytest.mark.asyncio
    async def test_invalid_canned_payload(self, mock_config: Config, frame):
        client = AnalysisClient(mock_config, provider=MockAnalysisProvider(payload={"verbal": "x"}))
        with pytest.raises(SchemaError):
            await client.request(frame, "", (), FocusMode.GENERAL, VoiceOption.MALE)

    @pytest.mark.asyncio
    async def test_speech_disabled(self, mock_config: Config, frame):
        mock_config.analysis.speech_enabled = False
        client = AnalysisClient(mock_config)

        response = await client.request(frame, "", (), FocusMode.GENERAL, VoiceOption.MALE)
        assert response.audio_base64 is None

    @pytest.mark.asyncio
    async def test_provider_audio_skips_synthesis(self, mock_config: Config, frame, analysis_payload):
        class AudioProvider(MockAnalysisProvider):
            async def analyze(self, request):
                return ProviderReply(payload=analysis_payload, audio_base64="AAA=")

            async def synthesize(self, text, voice):
                raise AssertionError("synthesize should not run")

        client = AnalysisClient(mock_config, provider=AudioProvider())
        response = await client.request(frame, "", (), FocusMode.GENERAL, VoiceOption.MALE)
        assert response.audio_base64 == "AAA="
