"""Immutable pipeline state."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from prismhud.analysis.models import ROI, AnalysisResult, FocusMode, VoiceOption
from prismhud.capture import Facing

READY_MESSAGE = "PRISM // STANDBY"
LISTENING_MESSAGE = "PRISM // LISTENING..."
CAPTURING_MESSAGE = "PRISM // ACQUIRING OPTICAL LOCK..."
AWAITING_MESSAGE = "PRISM // NEURAL_SYNC IN PROGRESS..."
RENDERING_MESSAGE = "PRISM // RENDERING TACTICAL OVERLAY"


class PipelineStatus(str, Enum):
    """Orchestrator state."""

    IDLE = "IDLE"
    LISTENING = "LISTENING"
    CAPTURING = "CAPTURING"
    AWAITING_RESULT = "AWAITING_RESULT"
    RENDERING = "RENDERING"


@dataclass(frozen=True)
class PipelineState:
    """Snapshot read by presentation. Replaced whole on every transition."""

    status: PipelineStatus = PipelineStatus.IDLE
    message: str = READY_MESSAGE
    result: AnalysisResult | None = None
    rois: tuple[ROI, ...] = ()
    transcript_length: int = 0
    command: str = ""
    facing: Facing = Facing.BACK
    focus_mode: FocusMode = FocusMode.GENERAL
    voice: VoiceOption = VoiceOption.MALE
    audio_enabled: bool = True
    error: str | None = None
    device_error: str | None = None
    cycle: int = 0

    @property
    def busy(self) -> bool:
        return self.status is not PipelineStatus.IDLE

    def to_dict(self) -> dict[str, Any]:
        """Event payload; results are dumped by wire alias, thumbnails omitted."""
        return {
            "status": self.status.value,
            "message": self.message,
            "result": self.result.model_dump(mode="json", by_alias=True) if self.result else None,
            "rois": [roi.label for roi in self.rois],
            "transcript_length": self.transcript_length,
            "command": self.command,
            "facing": self.facing.value,
            "focus_mode": self.focus_mode.value,
            "voice": self.voice.value,
            "audio_enabled": self.audio_enabled,
            "error": self.error,
            "device_error": self.device_error,
            "cycle": self.cycle,
        }
