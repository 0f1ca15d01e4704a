"""Tests for LLM service: StreamChunk, adapters and the adapter registry."""

import base64
from unittest.mock import AsyncMock, MagicMock, patch

import orjson
import pytest

from fala.core.exceptions import GenerationError, GenerationErrorKind
from fala.services.llm import (
    GeminiAdapter,
    LLMService,
    OpenAIAdapter,
    StreamChunk,
)
from fala.services.models import Example, TutorLine

# ---------------------------------------------------------------------------
# StreamChunk
# ---------------------------------------------------------------------------

class TestStreamChunk:
    def test_defaults(self):
        c = StreamChunk(content="oi")
        assert c.content == "oi"
        assert c.is_final is False
        assert c.model == ""
        assert c.provider == ""
        assert c.finish_reason is None

    def test_final_chunk(self):
        c = StreamChunk(content="", is_final=True, finish_reason="stop")
        assert c.is_final is True
        assert c.finish_reason == "stop"


# ---------------------------------------------------------------------------
# GeminiAdapter
# ---------------------------------------------------------------------------

class TestGeminiAdapter:
    @pytest.fixture
    def adapter(self):
        with patch("fala.services.llm.genai.Client"):
            return GeminiAdapter(api_key="test-key")

    def test_provider_name(self, adapter):
        assert adapter.provider_name == "gemini"

    async def test_generate_json_requests_schema(self, adapter):
        adapter.client.aio.models.generate_content = AsyncMock(
            return_value=MagicMock(text=' {"portuguese": "Oi", "english": "Hi"} ')
        )

        raw = await adapter.generate_json("prompt", model="gemini-2.5-flash", response_type=TutorLine, temperature=0.9)

        assert raw == '{"portuguese": "Oi", "english": "Hi"}'
        config = adapter.client.aio.models.generate_content.call_args.kwargs["config"]
        assert config.response_mime_type == "application/json"
        assert config.temperature == 0.9

    async def test_stream_yields_text_then_final(self, adapter):
        async def fake_stream():
            for text in ["Que ", None, "bom!"]:
                yield MagicMock(text=text)

        adapter.client.aio.models.generate_content_stream = AsyncMock(return_value=fake_stream())

        chunks = [
            c async for c in adapter.stream_text(
                [{"role": "user", "content": "Oi"}], model="gemini-2.5-flash"
            )
        ]

        assert [c.content for c in chunks] == ["Que ", "bom!", ""]
        assert chunks[-1].is_final is True

    async def test_speech_is_base64(self, adapter):
        part = MagicMock()
        part.inline_data.data = b"\x00\x01pcm"
        response = MagicMock()
        response.candidates = [MagicMock()]
        response.candidates[0].content.parts = [part]
        adapter.client.aio.models.generate_content = AsyncMock(return_value=response)

        audio = await adapter.synthesize_speech("Olá", model="tts", voice="Kore")

        assert base64.b64decode(audio) == b"\x00\x01pcm"
        assert adapter.client.aio.models.generate_content.call_args.kwargs["contents"] == '"Olá"'

    async def test_speech_without_audio_raises(self, adapter):
        response = MagicMock()
        response.candidates = []
        adapter.client.aio.models.generate_content = AsyncMock(return_value=response)

        with pytest.raises(GenerationError):
            await adapter.synthesize_speech("Olá", model="tts", voice="Kore")

    async def test_missing_key_is_invalid_credential(self):
        settings = MagicMock(gemini_api_key="")
        with (
            patch("fala.services.llm.genai.Client"),
            patch("fala.services.llm.get_settings", return_value=settings),
        ):
            adapter = GeminiAdapter()

        with pytest.raises(GenerationError) as exc_info:
            await adapter.generate_text("prompt", model="gemini-2.5-flash")
        assert exc_info.value.classification is GenerationErrorKind.INVALID_CREDENTIAL


# ---------------------------------------------------------------------------
# OpenAIAdapter
# ---------------------------------------------------------------------------

def _completion(content: str) -> MagicMock:
    completion = MagicMock()
    completion.choices = [MagicMock()]
    completion.choices[0].message.content = content
    return completion


class TestOpenAIAdapter:
    @pytest.fixture
    def adapter(self):
        with patch("fala.services.llm.AsyncOpenAI"):
            return OpenAIAdapter(api_key="test-key")

    def test_provider_name(self, adapter):
        assert adapter.provider_name == "openai"

    def test_gemini_model_ids_are_mapped(self, adapter):
        assert adapter._model("gemini-2.5-flash") == "gpt-4o-mini"
        assert adapter._model("gpt-4o") == "gpt-4o"

    async def test_object_schema_returned_as_is(self, adapter):
        adapter.client.chat.completions.create = AsyncMock(
            return_value=_completion('{"portuguese": "Oi", "english": "Hi"}')
        )

        raw = await adapter.generate_json("prompt", model="gemini-2.5-flash", response_type=TutorLine)

        assert orjson.loads(raw) == {"portuguese": "Oi", "english": "Hi"}
        kwargs = adapter.client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["model"] == "gpt-4o-mini"

    async def test_list_schema_is_unwrapped(self, adapter):
        adapter.client.chat.completions.create = AsyncMock(
            return_value=_completion('{"items": [{"portuguese": "Oi", "english": "Hi"}]}')
        )

        raw = await adapter.generate_json("prompt", model="gpt-4o-mini", response_type=list[Example])

        assert orjson.loads(raw) == [{"portuguese": "Oi", "english": "Hi"}]

    async def test_unwrap_failure_returns_raw(self, adapter):
        adapter.client.chat.completions.create = AsyncMock(return_value=_completion("not json"))

        raw = await adapter.generate_json("prompt", model="gpt-4o-mini", response_type=list[Example])

        assert raw == "not json"

    def test_system_prompt_comes_first(self, adapter):
        messages = adapter._to_messages([{"role": "user", "content": "Oi"}], "Be nice")
        assert messages[0] == {"role": "system", "content": "Be nice"}
        assert messages[1] == {"role": "user", "content": "Oi"}

    async def test_close_closes_client(self, adapter):
        adapter.client.close = AsyncMock()
        await adapter.close()
        adapter.client.close.assert_awaited_once()


# ---------------------------------------------------------------------------
# LLMService
# ---------------------------------------------------------------------------

class TestLLMService:
    @pytest.fixture
    def settings(self):
        return MagicMock(default_llm_provider="gemini", gemini_api_key="g-key", openai_api_key="")

    def test_default_provider(self, settings):
        with (
            patch("fala.services.llm.get_settings", return_value=settings),
            patch("fala.services.llm.genai.Client"),
        ):
            adapter = LLMService().get_adapter()
        assert isinstance(adapter, GeminiAdapter)

    def test_adapter_is_reused(self, settings):
        with (
            patch("fala.services.llm.get_settings", return_value=settings),
            patch("fala.services.llm.AsyncOpenAI"),
        ):
            service = LLMService()
            assert service.get_adapter("openai") is service.get_adapter("openai")

    def test_unknown_provider(self, settings):
        with patch("fala.services.llm.get_settings", return_value=settings):
            with pytest.raises(ValueError, match="Unknown LLM provider"):
                LLMService().get_adapter("anthropic")

    def test_prewarm_only_configured_providers(self, settings):
        with (
            patch("fala.services.llm.get_settings", return_value=settings),
            patch("fala.services.llm.genai.Client"),
            patch("fala.services.llm.AsyncOpenAI"),
        ):
            service = LLMService()
            service.prewarm_adapters()
        assert set(service._adapters) == {"gemini"}

    async def test_close_clears_adapters(self):
        service = LLMService()
        adapter = MagicMock()
        adapter.close = AsyncMock(side_effect=RuntimeError("already closed"))
        service._adapters["openai"] = adapter

        await service.close()

        adapter.close.assert_awaited_once()
        assert service._adapters == {}

    def test_get_providers(self):
        assert LLMService().get_providers() == ["gemini", "openai"]
