"""Typed analysis results and conversation turns."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

ROI_MIN_COUNT = 1
ROI_MAX_COUNT = 5
RATIONALE_LENGTH = 2

# Labels that do not name a specific object
GENERIC_LABELS = frozenset(
    {
        "object",
        "item",
        "thing",
        "unknown",
        "unknown object",
        "subject",
        "primary subject",
        "background",
        "neutral backdrop",
        "backdrop",
    }
)


class Category(str, Enum):
    """ROI category."""

    ELECTRONIC = "ELECTRONIC"
    ORGANIC = "ORGANIC"
    STRUCTURAL = "STRUCTURAL"
    TOOL = "TOOL"
    UNKNOWN = "UNKNOWN"


class SafetyRating(str, Enum):
    """Ordered three-level severity."""

    SECURE = "SECURE"
    ADVISORY = "ADVISORY"
    ATTENTION = "ATTENTION"

    @property
    def severity(self) -> int:
        """Position on the scale, 0 (secure) to 2 (attention)."""
        return _SEVERITY[self]


_SEVERITY = {SafetyRating.SECURE: 0, SafetyRating.ADVISORY: 1, SafetyRating.ATTENTION: 2}

# threatLevel naming of the same scale
THREAT_LEVEL_ALIASES = {
    "MINIMAL": SafetyRating.SECURE,
    "CAUTION": SafetyRating.ADVISORY,
    "HAZARD": SafetyRating.ATTENTION,
}


class FocusMode(str, Enum):
    """Analysis focus selected by the user."""

    GENERAL = "GENERAL"
    HOME_SAFETY = "HOME_SAFETY"
    WELLNESS = "WELLNESS"
    HOBBY_HELP = "HOBBY_HELP"
    WORKSPACE = "WORKSPACE"


class VoiceOption(str, Enum):
    """Synthesized voice gender."""

    MALE = "MALE"
    FEMALE = "FEMALE"

    @property
    def voice_name(self) -> str:
        """Prebuilt voice used by the speech model."""
        return "Puck" if self is VoiceOption.MALE else "Kore"


class Role(str, Enum):
    """Conversation role."""

    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class ConversationTurn:
    """One immutable transcript entry."""

    role: Role
    text: str

    def to_content(self) -> dict[str, Any]:
        """Wire form used in request history."""
        return {"role": self.role.value, "parts": [{"text": self.text}]}


class ROI(BaseModel):
    """Region of interest detected in a frame."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    label: str = Field(min_length=1)
    x: float = Field(ge=0, le=100, strict=True, allow_inf_nan=False)
    y: float = Field(ge=0, le=100, strict=True, allow_inf_nan=False)
    category: Category
    confidence: float = Field(ge=0, le=100, strict=True, allow_inf_nan=False)
    safety_rating: SafetyRating = Field(
        validation_alias=AliasChoices("safetyRating", "threatLevel", "safety_rating"),
        serialization_alias="safetyRating",
    )
    description: str
    recommendation: str
    why_it_matters: str = Field(alias="whyItMatters")
    rationale: tuple[str, ...] = Field(min_length=RATIONALE_LENGTH, max_length=RATIONALE_LENGTH)
    uncertainty_factors: tuple[str, ...] = Field(default=(), alias="uncertaintyFactors")
    thumbnail: bytes | None = Field(default=None, exclude=True)

    @field_validator("label")
    @classmethod
    def _specific_label(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("label must not be blank")
        if value.strip().lower() in GENERIC_LABELS:
            raise ValueError(f"label {value!r} is generic")
        return value

    @field_validator("thumbnail", mode="before")
    @classmethod
    def _ignore_input_thumbnail(cls, value: Any) -> None:
        # Thumbnails are set only through with_thumbnail
        return None

    @field_validator("safety_rating", mode="before")
    @classmethod
    def _map_threat_level(cls, value: Any) -> Any:
        if isinstance(value, str) and value in THREAT_LEVEL_ALIASES:
            return THREAT_LEVEL_ALIASES[value]
        return value

    def with_thumbnail(self, thumbnail: bytes) -> ROI:
        """Return a copy carrying the thumbnail. A thumbnail is set only once."""
        if self.thumbnail is not None:
            raise ValueError(f"ROI {self.label!r} already has a thumbnail")
        return self.model_copy(update={"thumbnail": thumbnail})


class AnalysisResult(BaseModel):
    """Validated scene analysis."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    verbal: str = Field(min_length=1)
    roi: tuple[ROI, ...] = Field(min_length=ROI_MIN_COUNT, max_length=ROI_MAX_COUNT)
    ambient_score: float = Field(alias="ambientScore", ge=0, le=100, strict=True, allow_inf_nan=False)
    mood_descriptor: str = Field(alias="moodDescriptor")
    summary_rationale: str = Field(default="", alias="summaryRationale")

    @property
    def highest_severity(self) -> SafetyRating:
        return max((r.safety_rating for r in self.roi), key=lambda s: s.severity)


@dataclass(frozen=True)
class AnalysisResponse:
    """Analysis result plus optional synthesized speech (base64 raw PCM)."""

    data: AnalysisResult
    audio_base64: str | None = None
    latency_ms: int = 0
