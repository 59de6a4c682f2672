"""
Shared AI types for image inference.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class InferenceConfig:
    """Fixed prompt/size configuration for one inference task."""
    prompt: str
    max_tokens: int = 512


@dataclass(frozen=True)
class InferenceInput:
    """Payload submitted to the inference capability."""
    image: bytes
    prompt: str
    max_tokens: int
