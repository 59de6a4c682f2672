"""
Prompt configurations for the two AI branches of the image workflow.
"""

from src.ai.types import InferenceConfig

AI_TAGS_CONFIG = InferenceConfig(
    prompt=(
        "Give me 5 different single word description tags for the image. "
        "Return them as a comma separated list with only the tags, no other text."
    ),
    max_tokens=512,
)

AI_ALT_TEXT_CONFIG = InferenceConfig(
    prompt=(
        "Give me an alt text description for this image, return this as a single "
        "sentence with only the alt text description, no other text"
    ),
    max_tokens=512,
)
