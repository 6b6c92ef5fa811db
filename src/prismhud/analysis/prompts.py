"""Prompt text and response schema for the vision-language service."""

from __future__ import annotations

from prismhud.analysis.models import RATIONALE_LENGTH, FocusMode

AUTONOMOUS_PROMPT = "Initialize full spectrum tactical scan."

# USER turn recorded in the transcript for an autonomous sweep
SWEEP_TRANSCRIPT_TEXT = "Execute sector sweep."

FOCUS_INSTRUCTIONS: dict[FocusMode, str] = {
    FocusMode.GENERAL: "Analyze the scene holistically. Identify specific objects and their tactical relevance.",
    FocusMode.HOME_SAFETY: "Focus on safety: detect tripping hazards, electrical risks, sharp edges, or unsecured items.",
    FocusMode.WELLNESS: "Focus on mental well-being: analyze lighting quality, plant health, and ergonomic comfort.",
    FocusMode.HOBBY_HELP: "Focus on tools and creativity: identify specific hardware or materials and suggest improvements.",
    FocusMode.WORKSPACE: "Focus on productivity: analyze desk ergonomics, screen placement, and clutter management.",
}

_SYSTEM_TEMPLATE = """SYSTEM: You are PRISM, an advanced 'Environmental Intelligence' tactical interface.
PERSONALITY: Elite, cinematic, and data-driven. Your analysis is sharp and decisive.
FOCUS: {focus}
MODE: {mode}

CRITICAL INSTRUCTIONS:
1. NO GENERIC LABELS: Do not use labels like "Primary Subject", "Neutral Backdrop", or "Object". You MUST identify the specific noun (e.g., "Herman Miller Chair", "Dell 4K Monitor", "Ceramic Coffee Mug").
2. TACTICAL RECOMMENDATIONS: Every recommendation must be a specific ACTION the user should take based on the {focus_name} mode.
3. LOGIC TRACE: Provide a technical {rationale_length}-part rationale for how you identified the object.

OUTPUT PROTOCOL:
Return a JSON object with:
- "verbal": A cinematic tactical report (max 15 words).
- "summaryRationale": A brief tactical overview.
- "ambientScore": 0-100 environmental efficiency.
- "moodDescriptor": One sophisticated word for the atmosphere.
- "roi": An array of exactly 3 tactical points.

Each ROI must include:
- "label": Specific name of the item.
- "x", "y": Normalized coordinates (0-100) of the item's center.
- "description": Tactical summary.
- "safetyRating": SECURE, ADVISORY, or ATTENTION.
- "category": ELECTRONIC, ORGANIC, STRUCTURAL, TOOL, or UNKNOWN.
- "confidence": percentage (0-100).
- "rationale": {rationale_length} specific logic points.
- "whyItMatters": Contextual significance.
- "recommendation": A specific ACTIONABLE instruction."""


def build_system_instruction(focus_mode: FocusMode, commanded: bool) -> str:
    """Build the system instruction for one request."""
    return _SYSTEM_TEMPLATE.format(
        focus=FOCUS_INSTRUCTIONS[focus_mode],
        focus_name=focus_mode.value,
        mode="COMMANDED" if commanded else "AUTONOMOUS",
        rationale_length=RATIONALE_LENGTH,
    )


_ROI_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "label": {"type": "STRING"},
        "x": {"type": "NUMBER"},
        "y": {"type": "NUMBER"},
        "description": {"type": "STRING"},
        "safetyRating": {"type": "STRING", "enum": ["SECURE", "ADVISORY", "ATTENTION"]},
        "category": {
            "type": "STRING",
            "enum": ["ELECTRONIC", "ORGANIC", "STRUCTURAL", "TOOL", "UNKNOWN"],
        },
        "confidence": {"type": "NUMBER"},
        "rationale": {"type": "ARRAY", "items": {"type": "STRING"}},
        "whyItMatters": {"type": "STRING"},
        "recommendation": {"type": "STRING"},
    },
    "required": [
        "label",
        "x",
        "y",
        "description",
        "safetyRating",
        "category",
        "confidence",
        "rationale",
        "whyItMatters",
        "recommendation",
    ],
}

RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "verbal": {"type": "STRING"},
        "summaryRationale": {"type": "STRING"},
        "ambientScore": {"type": "NUMBER"},
        "moodDescriptor": {"type": "STRING"},
        "roi": {"type": "ARRAY", "items": _ROI_SCHEMA},
    },
    "required": ["verbal", "roi", "ambientScore", "moodDescriptor"],
}
