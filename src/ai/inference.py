"""
Image inference client.

Sends an image plus a prompt to a vision-capable chat model and returns the
model's text as {"description": ...}. When no OpenAI key is configured the
client answers from a deterministic stub so the workflow still runs end to
end in development and tests.
"""

import base64
import time
from typing import Any, Dict, Optional

from src.ai.types import InferenceInput
from src.config import Settings, get_settings
from src.errors import UpstreamFailure
from src.logging_config import get_logger

logger = get_logger(__name__)

_STUB_TAGS = "image, photo, upload, picture, visual"
_STUB_ALT_TEXT = "An uploaded image awaiting a real description."

# (magic prefix, mime type)
_IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def sniff_mime_type(data: bytes) -> str:
    """Best-effort image MIME type from magic bytes (defaults to JPEG)."""
    for prefix, mime in _IMAGE_SIGNATURES:
        if data.startswith(prefix):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


def to_data_url(data: bytes) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{sniff_mime_type(data)};base64,{encoded}"


def _is_placeholder_key(key: str) -> bool:
    return not key or key.startswith("sk-your-")


class InferenceClient:
    """Runs image+prompt inference against the configured model."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client = None

    @property
    def is_stub(self) -> bool:
        return _is_placeholder_key((self.settings.openai_api_key or "").strip())

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.request_timeout_seconds * 6,
            )
        return self._client

    async def run(self, model: str, inputs: InferenceInput) -> Dict[str, Any]:
        """
        Describe an image.

        Args:
            model: Model name (ignored by the stub)
            inputs: Image bytes, prompt and token budget

        Returns:
            {"description": <model text>}

        Raises:
            UpstreamFailure: If the model call fails or returns no text
        """
        if self.is_stub:
            logger.warning("OPENAI_API_KEY not set; using stub inference")
            return {"description": self._stub_generate(inputs)}

        start = time.perf_counter()
        try:
            response = await self._get_client().chat.completions.create(
                model=model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": inputs.prompt},
                            {"type": "image_url", "image_url": {"url": to_data_url(inputs.image)}},
                        ],
                    }
                ],
                max_tokens=inputs.max_tokens,
            )
        except Exception as e:
            raise UpstreamFailure(f"Inference call failed: {e}", model=model) from e

        content = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not content:
            raise UpstreamFailure("Inference returned no description", model=model)

        logger.info(
            "Inference completed",
            extra={"model": model, "duration_ms": round((time.perf_counter() - start) * 1000, 1)},
        )
        return {"description": content}

    def _stub_generate(self, inputs: InferenceInput) -> str:
        """STUB: canned output picked by prompt wording."""
        if "tags" in inputs.prompt.lower():
            return _STUB_TAGS
        return _STUB_ALT_TEXT
