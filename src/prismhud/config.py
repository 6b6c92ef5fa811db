"""Configuration management for PRISM HUD."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeviceConfig(BaseModel):
    """Device configuration."""

    name: str = "prismhud"
    mode: Literal["production", "development"] = "development"
    log_level: str = "INFO"


class CaptureConfig(BaseModel):
    """Camera capture configuration."""

    resolution: list[int] = [1280, 720]
    target_width: int = 1280
    jpeg_quality: int = Field(default=85, ge=1, le=100)
    default_facing: Literal["FRONT", "BACK"] = "BACK"
    front_device_index: int = 1
    back_device_index: int = 0
    # Hardware workaround: some cameras fail to reopen immediately after release.
    settle_delay_seconds: float = Field(default=0.8, ge=0.0)
    warmup_reads: int = 0


class CropConfig(BaseModel):
    """Thumbnail crop configuration."""

    fraction: float = Field(default=0.35, gt=0.0, le=1.0)
    thumbnail_size: int = Field(default=512, gt=0)
    thumbnail_quality: int = Field(default=90, ge=1, le=100)


class ConversationConfig(BaseModel):
    """Conversation transcript configuration."""

    history_limit: int = 2

    @field_validator("history_limit")
    @classmethod
    def _paired_limit(cls, value: int) -> int:
        if value < 2 or value % 2:
            raise ValueError("history_limit must be an even number >= 2")
        return value


class AnalysisConfig(BaseModel):
    """Vision-language service configuration."""

    provider: Literal["gemini", "relay", "mock"] = "gemini"
    endpoint: str = "https://generativelanguage.googleapis.com/v1beta"
    relay_endpoint: str = "http://localhost:3000/api/gemini"
    api_key: str | None = None
    model: str = "gemini-3-flash-preview"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    timeout_seconds: float = 60.0
    speech_enabled: bool = True
    focus_mode: Literal["GENERAL", "HOME_SAFETY", "WELLNESS", "HOBBY_HELP", "WORKSPACE"] = "GENERAL"
    voice: Literal["MALE", "FEMALE"] = "MALE"


class AudioConfig(BaseModel):
    """Speech playback configuration."""

    playback_enabled: bool = True
    sample_rate: int = 24000
    channels: int = 1


class SpeechConfig(BaseModel):
    """Speech recognition configuration."""

    stt_model: str = "tiny"
    stt_language: str = "en"
    mic_sample_rate: int = 16000
    listen_seconds: float = 5.0


class PipelineConfig(BaseModel):
    """Orchestrator configuration."""

    autonomous_interval_seconds: float | None = None


class Config(BaseSettings):
    """Main configuration for PRISM HUD."""

    model_config = SettingsConfigDict(
        env_prefix="PRISMHUD_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    device: DeviceConfig = Field(default_factory=DeviceConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    crops: CropConfig = Field(default_factory=CropConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    speech: SpeechConfig = Field(default_factory=SpeechConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    # Mock devices and a canned analysis provider for development
    mock_mode: bool = False

    @classmethod
    def from_yaml(cls, path: Path | str) -> Config:
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False)


def load_config(
    config_path: Path | str | None = None,
    env_override: bool = True,
) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Path to config file. If None, searches standard locations.
        env_override: Whether to allow environment variables to override config.

    Returns:
        Loaded configuration.
    """
    search_paths = [
        Path("/etc/prismhud/config.yaml"),
        Path.home() / ".config" / "prismhud" / "config.yaml",
        Path("config.yaml"),
        Path("configs/prismhud.yaml"),
    ]

    if config_path:
        search_paths.insert(0, Path(config_path))

    config_file = next((path for path in search_paths if path.exists()), None)
    config = Config.from_yaml(config_file) if config_file else Config()

    if env_override:
        api_key = os.environ.get("PRISMHUD_ANALYSIS_API_KEY") or os.environ.get("GEMINI_API_KEY")
        if api_key:
            config.analysis.api_key = api_key

        if os.environ.get("PRISMHUD_MOCK_MODE", "").lower() in ("1", "true", "yes"):
            config.mock_mode = True

    return config


def get_default_config() -> dict[str, Any]:
    """Get default configuration as dictionary."""
    return Config().model_dump()
