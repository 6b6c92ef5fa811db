"""Scene analysis pipeline."""

from prismhud.pipeline.conversation import Conversation
from prismhud.pipeline.crops import CropBox, crop_box, generate_crops
from prismhud.pipeline.orchestrator import PipelineOrchestrator
from prismhud.pipeline.state import PipelineState, PipelineStatus

__all__ = [
    "Conversation",
    "CropBox",
    "crop_box",
    "generate_crops",
    "PipelineOrchestrator",
    "PipelineState",
    "PipelineStatus",
]
