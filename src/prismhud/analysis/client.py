"""Analysis client for the remote vision-language service."""

from __future__ import annotations

import asyncio
import base64
import time
from dataclasses import dataclass
from typing import Any, Sequence

import httpx
from pydantic import ValidationError

from prismhud.analysis.models import (
    AnalysisResponse,
    AnalysisResult,
    ConversationTurn,
    FocusMode,
    VoiceOption,
)
from prismhud.analysis.prompts import AUTONOMOUS_PROMPT, RESPONSE_SCHEMA, build_system_instruction
from prismhud.audio.pcm import tone
from prismhud.capture import Frame
from prismhud.common import NetworkError, PrismError, SchemaError, ServiceError, get_logger
from prismhud.config import Config


@dataclass(frozen=True)
class AnalysisRequest:
    """Everything sent to the service for one cycle."""

    image_base64: str
    prompt: str
    history: tuple[ConversationTurn, ...]
    focus_mode: FocusMode
    voice: VoiceOption

    @property
    def commanded(self) -> bool:
        return bool(self.prompt.strip())

    @property
    def effective_prompt(self) -> str:
        return self.prompt if self.commanded else AUTONOMOUS_PROMPT


@dataclass(frozen=True)
class ProviderReply:
    """Unvalidated provider output."""

    payload: Any
    audio_base64: str | None = None


def parse_analysis(payload: Any) -> AnalysisResult:
    """Decode and validate a service payload (JSON text or parsed object).

    Raises:
        SchemaError: Malformed JSON or any schema violation.
    """
    try:
        if isinstance(payload, (str, bytes)):
            return AnalysisResult.model_validate_json(payload)
        return AnalysisResult.model_validate(payload)
    except ValidationError as e:
        raise SchemaError(
            f"Analysis response failed validation ({e.error_count()} errors)",
            detail=str(e),
        ) from e


async def post_json(
    url: str,
    payload: dict[str, Any],
    *,
    headers: dict[str, str] | None = None,
    timeout: float = 60.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Any:
    """POST JSON and return the decoded body, mapping failures onto the error taxonomy."""
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        try:
            response = await client.post(url, headers=headers, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ServiceError(
                f"Service returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
                detail=e.response.text[:500],
            ) from e
        except httpx.TransportError as e:
            raise NetworkError(f"Service unreachable: {e}") from e

    try:
        return response.json()
    except ValueError as e:
        raise SchemaError("Service response is not JSON") from e


class AnalysisProvider:
    """Abstract vision-language provider."""

    async def analyze(self, request: AnalysisRequest) -> ProviderReply:
        """Run the scene analysis call."""
        raise NotImplementedError

    async def synthesize(self, text: str, voice: VoiceOption) -> str | None:
        """Synthesize speech for text; base64 raw PCM or None if unsupported."""
        return None


class MockAnalysisProvider(AnalysisProvider):
    """Canned provider for development and tests."""

    def __init__(self, payload: dict[str, Any] | None = None, audio: bool = True) -> None:
        self.payload = payload
        self.audio = audio
        self.requests: list[AnalysisRequest] = []

    async def analyze(self, request: AnalysisRequest) -> ProviderReply:
        self.requests.append(request)
        await asyncio.sleep(0.01)
        return ProviderReply(payload=self.payload if self.payload is not None else mock_payload(request))

    async def synthesize(self, text: str, voice: VoiceOption) -> str | None:
        if not self.audio:
            return None
        frequency = 180.0 if voice is VoiceOption.MALE else 260.0
        return base64.b64encode(tone(frequency)).decode("ascii")


def mock_payload(request: AnalysisRequest) -> dict[str, Any]:
    """Build a schema-valid response for a request."""
    verbal = (
        f"Directive acknowledged: {request.prompt.strip()[:40]}. Three assets tagged."
        if request.commanded
        else "Sector mapped. Three assets tagged, perimeter nominal."
    )
    return {
        "verbal": verbal,
        "summaryRationale": f"{request.focus_mode.value} sweep of a workspace sector.",
        "ambientScore": 72,
        "moodDescriptor": "Focused",
        "roi": [
            {
                "label": "Dell 4K Monitor",
                "x": 50,
                "y": 40,
                "description": "Primary display, screen brightness elevated.",
                "safetyRating": "SECURE",
                "category": "ELECTRONIC",
                "confidence": 94,
                "rationale": ["Thin bezel rectangular panel", "Brand badge on lower bezel"],
                "whyItMatters": "Main visual workload surface.",
                "recommendation": "Lower brightness by 20 percent to cut eye strain.",
            },
            {
                "label": "Ceramic Coffee Mug",
                "x": 82,
                "y": 71,
                "description": "Open container near keyboard edge.",
                "safetyRating": "ADVISORY",
                "category": "UNKNOWN",
                "confidence": 88,
                "rationale": ["Glazed cylindrical body", "Handle on right side"],
                "whyItMatters": "Spill risk over electronics.",
                "recommendation": "Move the mug 30 cm away from the keyboard.",
            },
            {
                "label": "Power Strip",
                "x": 6,
                "y": 95,
                "description": "Daisy-chained outlet strip on the floor.",
                "safetyRating": "ATTENTION",
                "category": "ELECTRONIC",
                "confidence": 76,
                "rationale": ["Row of outlet sockets", "Multiple plugs inserted"],
                "whyItMatters": "Overload and tripping hazard.",
                "recommendation": "Unplug the chained strip and route cables along the wall.",
            },
        ],
    }


class GeminiAnalysisProvider(AnalysisProvider):
    """Direct REST calls to the Gemini generateContent API."""

    def __init__(
        self,
        config: Config,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.endpoint = config.analysis.endpoint.rstrip("/")
        self._transport = transport
        self.logger = get_logger("gemini_provider")

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.analysis.api_key:
            headers["x-goog-api-key"] = self.config.analysis.api_key
        return headers

    async def _generate(self, model: str, payload: dict[str, Any]) -> Any:
        body = await post_json(
            f"{self.endpoint}/models/{model}:generateContent",
            payload,
            headers=self._headers(),
            timeout=self.config.analysis.timeout_seconds,
            transport=self._transport,
        )
        if not isinstance(body, dict):
            raise SchemaError("generateContent body is not an object")
        if "error" in body:
            error = body["error"]
            message = error.get("message", "") if isinstance(error, dict) else str(error)
            raise ServiceError(f"Service error: {message}")
        return body

    async def analyze(self, request: AnalysisRequest) -> ProviderReply:
        payload = {
            "systemInstruction": {
                "parts": [{"text": build_system_instruction(request.focus_mode, request.commanded)}]
            },
            "contents": [
                *(turn.to_content() for turn in request.history),
                {
                    "role": "user",
                    "parts": [
                        {"text": request.effective_prompt},
                        {"inlineData": {"mimeType": "image/jpeg", "data": request.image_base64}},
                    ],
                },
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
                "thinkingConfig": {"thinkingBudget": 0},
            },
        }

        body = await self._generate(self.config.analysis.model, payload)
        parts = _first_candidate_parts(body)
        # Thought parts carry reasoning text, not the JSON answer
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict) and not p.get("thought"))
        if not text:
            raise SchemaError("Analysis candidate has no text")
        return ProviderReply(payload=text)

    async def synthesize(self, text: str, voice: VoiceOption) -> str | None:
        payload = {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice.voice_name}}
                },
            },
        }

        body = await self._generate(self.config.analysis.tts_model, payload)
        for part in _first_candidate_parts(body):
            data = part.get("inlineData", {}).get("data") if isinstance(part, dict) else None
            if data:
                return data
        return None


def _first_candidate_parts(body: dict[str, Any]) -> list[Any]:
    try:
        parts = body["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError) as e:
        raise SchemaError("Response has no candidate content") from e
    if not isinstance(parts, list):
        raise SchemaError("Candidate parts is not a list")
    return parts


class RelayAnalysisProvider(AnalysisProvider):
    """Server-side relay that wraps the service and returns ``{data, audioBase64}``."""

    def __init__(
        self,
        config: Config,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._transport = transport

    async def analyze(self, request: AnalysisRequest) -> ProviderReply:
        body = await post_json(
            self.config.analysis.relay_endpoint,
            {
                "image": request.image_base64,
                "prompt": request.prompt,
                "history": [turn.to_content() for turn in request.history],
                "focusMode": request.focus_mode.value,
                "voice": request.voice.value,
            },
            timeout=self.config.analysis.timeout_seconds,
            transport=self._transport,
        )
        if not isinstance(body, dict):
            raise SchemaError("Relay body is not an object")
        if body.get("error"):
            raise ServiceError(f"Relay error: {body['error']}")

        audio = body.get("audioBase64")
        return ProviderReply(payload=body.get("data"), audio_base64=audio if isinstance(audio, str) else None)


class AnalysisClient:
    """Analysis client.

    Responsibilities:
    - Encode the frame and build the request
    - One provider call per cycle, validated against the analysis schema
    - Optional, non-fatal speech synthesis for the verbal report
    """

    def __init__(
        self,
        config: Config,
        provider: AnalysisProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._provider = provider or self._create_provider(transport)
        self.logger = get_logger("analysis_client")

    def _create_provider(self, transport: httpx.AsyncBaseTransport | None) -> AnalysisProvider:
        name = "mock" if self.config.mock_mode else self.config.analysis.provider
        if name == "mock":
            return MockAnalysisProvider()
        if name == "relay":
            return RelayAnalysisProvider(self.config, transport)
        return GeminiAnalysisProvider(self.config, transport)

    @property
    def provider(self) -> AnalysisProvider:
        return self._provider

    async def request(
        self,
        frame: Frame,
        prompt: str,
        transcript: Sequence[ConversationTurn],
        mode: FocusMode,
        voice: VoiceOption,
    ) -> AnalysisResponse:
        """Analyze a frame.

        Args:
            frame: Captured frame.
            prompt: User command; empty means autonomous sweep.
            transcript: Prior turns, oldest first.
            mode: Focus mode.
            voice: Voice for the synthesized report.

        Returns:
            Validated result with optional base64 PCM audio.

        Raises:
            NetworkError: Service unreachable.
            ServiceError: Service returned an error.
            SchemaError: Response did not match the schema.
        """
        start_time = time.time()
        image_data = await asyncio.to_thread(frame.encode, "JPEG", self.config.capture.jpeg_quality)

        request = AnalysisRequest(
            image_base64=base64.b64encode(image_data).decode("ascii"),
            prompt=prompt,
            history=tuple(transcript),
            focus_mode=mode,
            voice=voice,
        )

        self.logger.info(
            "analysis_requested",
            frame_id=frame.frame_id,
            commanded=request.commanded,
            focus_mode=mode.value,
            history=len(request.history),
            image_bytes=len(image_data),
        )

        try:
            reply = await self._provider.analyze(request)
            result = parse_analysis(reply.payload)
        except PrismError as e:
            self.logger.warning("analysis_failed", kind=e.kind, error=str(e), detail=e.detail)
            raise

        audio = reply.audio_base64
        if audio is None and self.config.analysis.speech_enabled:
            audio = await self._synthesize(result.verbal, voice)

        latency_ms = int((time.time() - start_time) * 1000)
        self.logger.info(
            "analysis_completed",
            roi_count=len(result.roi),
            ambient_score=result.ambient_score,
            has_audio=audio is not None,
            latency_ms=latency_ms,
        )
        return AnalysisResponse(data=result, audio_base64=audio, latency_ms=latency_ms)

    async def _synthesize(self, text: str, voice: VoiceOption) -> str | None:
        try:
            return await self._provider.synthesize(text, voice)
        except Exception as e:
            self.logger.warning("speech_synthesis_skipped", error=str(e))
            return None

