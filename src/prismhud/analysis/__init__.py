"""Scene analysis client and result types."""

from prismhud.analysis.client import (
    AnalysisClient,
    AnalysisProvider,
    AnalysisRequest,
    GeminiAnalysisProvider,
    MockAnalysisProvider,
    ProviderReply,
    RelayAnalysisProvider,
    parse_analysis,
)
from prismhud.analysis.models import (
    ROI,
    AnalysisResponse,
    AnalysisResult,
    Category,
    ConversationTurn,
    FocusMode,
    Role,
    SafetyRating,
    VoiceOption,
)

__all__ = [
    "AnalysisClient",
    "AnalysisProvider",
    "AnalysisRequest",
    "GeminiAnalysisProvider",
    "MockAnalysisProvider",
    "ProviderReply",
    "RelayAnalysisProvider",
    "parse_analysis",
    "ROI",
    "AnalysisResponse",
    "AnalysisResult",
    "Category",
    "ConversationTurn",
    "FocusMode",
    "Role",
    "SafetyRating",
    "VoiceOption",
]
