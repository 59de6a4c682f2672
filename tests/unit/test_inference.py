"""
Unit tests for the image inference client.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.ai.inference import InferenceClient, sniff_mime_type, to_data_url
from src.ai.prompts import AI_ALT_TEXT_CONFIG, AI_TAGS_CONFIG
from src.ai.types import InferenceInput
from src.errors import UpstreamFailure
from tests.support import PNG_BYTES


def _input(config=AI_TAGS_CONFIG, image: bytes = PNG_BYTES) -> InferenceInput:
    return InferenceInput(image=image, prompt=config.prompt, max_tokens=config.max_tokens)


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def keyed_settings(settings):
    return settings.model_copy(update={"openai_api_key": "sk-test-123"})


class TestMimeSniffing:

    def test_known_signatures(self):
        assert sniff_mime_type(PNG_BYTES) == "image/png"
        assert sniff_mime_type(b"\xff\xd8\xff\xe0rest") == "image/jpeg"
        assert sniff_mime_type(b"GIF89a...") == "image/gif"
        assert sniff_mime_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"

    def test_unknown_defaults_to_jpeg(self):
        assert sniff_mime_type(b"not an image") == "image/jpeg"

    def test_data_url(self):
        assert to_data_url(b"GIF89a").startswith("data:image/gif;base64,")


class TestStub:

    @pytest.mark.asyncio
    async def test_stub_without_key(self, settings):
        client = InferenceClient(settings)
        assert client.is_stub

        tags = await client.run("gpt-4o-mini", _input(AI_TAGS_CONFIG))
        alt = await client.run("gpt-4o-mini", _input(AI_ALT_TEXT_CONFIG))

        assert len(tags["description"].split(", ")) == 5
        assert alt["description"].endswith(".")

    def test_placeholder_key_is_stub(self, settings):
        client = InferenceClient(settings.model_copy(update={"openai_api_key": "sk-your-key-here"}))
        assert client.is_stub


class TestOpenAI:

    @pytest.mark.asyncio
    async def test_sends_prompt_and_image(self, keyed_settings):
        create = AsyncMock(return_value=_completion("  cat, orange, fur, pet, indoor \n"))
        fake = MagicMock()
        fake.chat.completions.create = create

        with patch("openai.AsyncOpenAI", return_value=fake):
            client = InferenceClient(keyed_settings)
            result = await client.run("gpt-4o-mini", _input())

        assert result == {"description": "cat, orange, fur, pet, indoor"}
        kwargs = create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 512
        content = kwargs["messages"][0]["content"]
        assert content[0] == {"type": "text", "text": AI_TAGS_CONFIG.prompt}
        assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")

    @pytest.mark.asyncio
    async def test_call_failure_is_upstream_failure(self, keyed_settings):
        fake = MagicMock()
        fake.chat.completions.create = AsyncMock(side_effect=RuntimeError("connection reset"))

        with patch("openai.AsyncOpenAI", return_value=fake):
            with pytest.raises(UpstreamFailure, match="connection reset"):
                await InferenceClient(keyed_settings).run("gpt-4o-mini", _input())

    @pytest.mark.asyncio
    async def test_empty_answer_is_upstream_failure(self, keyed_settings):
        fake = MagicMock()
        fake.chat.completions.create = AsyncMock(return_value=_completion(None))

        with patch("openai.AsyncOpenAI", return_value=fake):
            with pytest.raises(UpstreamFailure, match="no description"):
                await InferenceClient(keyed_settings).run("gpt-4o-mini", _input())
