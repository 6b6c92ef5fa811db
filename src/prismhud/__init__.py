"""PRISM HUD - scene analysis pipeline for an augmented-reality tactical HUD."""

__version__ = "0.1.0"
__author__ = "PRISM HUD Team"

from prismhud.config import Config, load_config

__all__ = ["Config", "load_config", "__version__"]
