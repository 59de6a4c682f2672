"""AI layer - image inference and prompt configurations."""

from src.ai.inference import InferenceClient
from src.ai.prompts import AI_ALT_TEXT_CONFIG, AI_TAGS_CONFIG
from src.ai.types import InferenceConfig, InferenceInput

__all__ = [
    "InferenceClient",
    "AI_TAGS_CONFIG",
    "AI_ALT_TEXT_CONFIG",
    "InferenceConfig",
    "InferenceInput",
]
