"""Shared test doubles and async wait helpers."""

import asyncio
from typing import List, Optional

import pytest

from src.ai.prompts import AI_TAGS_CONFIG
from src.ai.types import InferenceInput
from src.errors import UpstreamFailure

# Smallest valid PNG header; enough for MIME sniffing
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

CAT_TAGS = "cat, orange, fur, pet, indoor"
CAT_ALT_TEXT = "An orange cat curled up on a sofa."


class FakeInference:
    """Inference stand-in answering by prompt, optionally failing first."""

    def __init__(self, tags: str = CAT_TAGS, alt_text: str = CAT_ALT_TEXT, failures: int = 0):
        self.tags = tags
        self.alt_text = alt_text
        self.failures = failures
        self.prompts: List[str] = []

    async def run(self, model: str, inputs: InferenceInput) -> dict:
        self.prompts.append(inputs.prompt)
        if self.failures:
            self.failures -= 1
            raise UpstreamFailure("Inference unavailable", model=model)
        if inputs.prompt == AI_TAGS_CONFIG.prompt:
            return {"description": self.tags}
        return {"description": self.alt_text}

    @property
    def tag_calls(self) -> int:
        return sum(1 for p in self.prompts if p == AI_TAGS_CONFIG.prompt)

    @property
    def alt_text_calls(self) -> int:
        return len(self.prompts) - self.tag_calls


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> None:
    """Poll a sync predicate until it holds or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(interval)


async def wait_for_stage(engine, instance_id: str, stage: str, timeout: float = 5.0) -> None:
    """Wait until an instance reports the given stage."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        current: Optional[str] = (await engine.get_status(instance_id)).stage
        if current == stage:
            return
        if loop.time() > deadline:
            pytest.fail(f"instance stayed at stage {current!r}, expected {stage!r}")
        await asyncio.sleep(0.01)
