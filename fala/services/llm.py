"""LLM provider adapters with a unified interface.

Supports multiple providers behind one contract:
- Google Gemini (default, also used for speech synthesis)
- OpenAI

Adapters are thin transports: they return raw model text (JSON text for
structured calls) and let provider exceptions propagate so the generation
gateway can classify them.
"""

import base64
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import orjson
from google import genai
from google.genai import types as genai_types
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletionMessageParam
from pydantic import TypeAdapter

from fala.core.config import get_settings
from fala.core.exceptions import GenerationError, GenerationErrorKind
from fala.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class StreamChunk:
    """A single chunk from a streaming LLM response."""

    content: str
    is_final: bool = False
    model: str = ""
    provider: str = ""
    finish_reason: str | None = None


def _missing_key(provider: str) -> GenerationError:
    return GenerationError(
        GenerationErrorKind.INVALID_CREDENTIAL,
        f"{provider} API key not configured",
    )


class LLMAdapter(ABC):
    """Abstract base class for LLM provider adapters."""

    provider_name: str = "base"

    @abstractmethod
    async def generate_json(
        self,
        prompt: str,
        *,
        model: str,
        response_type: Any,
        temperature: float | None = None,
    ) -> str:
        """Generate JSON text conforming to ``response_type``."""
        ...

    @abstractmethod
    async def generate_text(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float | None = None,
    ) -> str:
        """Generate free text."""
        ...

    @abstractmethod
    def stream_text(
        self,
        messages: list[dict[str, str]],
        *,
        model: str,
        system_prompt: str | None = None,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a chat reply."""
        ...

    @abstractmethod
    async def synthesize_speech(self, text: str, *, model: str, voice: str) -> str:
        """Return base64-encoded audio for ``text``."""
        ...

    async def close(self) -> None:
        """Release HTTP connections."""
        return None


class GeminiAdapter(LLMAdapter):
    """Adapter for Google Gemini models."""

    provider_name = "gemini"

    def __init__(self, api_key: str | None = None):
        settings = get_settings()
        self.api_key = api_key or settings.gemini_api_key

        if not self.api_key:
            logger.warning("Gemini API key not configured")

        self.client = genai.Client(api_key=self.api_key or "unset")

    def _to_contents(self, messages: list[dict[str, str]]) -> list[genai_types.Content]:
        """Convert chat messages to Gemini content format."""
        return [
            genai_types.Content(
                role="model" if msg["role"] == "assistant" else "user",
                parts=[genai_types.Part.from_text(text=msg["content"])],
            )
            for msg in messages
        ]

    async def generate_json(
        self,
        prompt: str,
        *,
        model: str,
        response_type: Any,
        temperature: float | None = None,
    ) -> str:
        if not self.api_key:
            raise _missing_key("gemini")

        response = await self.client.aio.models.generate_content(
            model=model,
            contents=prompt,
            config=genai_types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=response_type,
                temperature=temperature,
            ),
        )
        return (response.text or "").strip()

    async def generate_text(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float | None = None,
    ) -> str:
        if not self.api_key:
            raise _missing_key("gemini")

        response = await self.client.aio.models.generate_content(
            model=model,
            contents=prompt,
            config=genai_types.GenerateContentConfig(temperature=temperature),
        )
        return (response.text or "").strip()

    async def stream_text(
        self,
        messages: list[dict[str, str]],
        *,
        model: str,
        system_prompt: str | None = None,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamChunk]:
        if not self.api_key:
            raise _missing_key("gemini")

        stream = await self.client.aio.models.generate_content_stream(
            model=model,
            contents=self._to_contents(messages),
            config=genai_types.GenerateContentConfig(
                temperature=temperature,
                system_instruction=system_prompt,
            ),
        )

        async for chunk in stream:
            if chunk.text:
                yield StreamChunk(content=chunk.text, model=model, provider=self.provider_name)

        yield StreamChunk(
            content="",
            is_final=True,
            model=model,
            provider=self.provider_name,
            finish_reason="stop",
        )

    async def synthesize_speech(self, text: str, *, model: str, voice: str) -> str:
        if not self.api_key:
            raise _missing_key("gemini")

        response = await self.client.aio.models.generate_content(
            model=model,
            # Quoting gives the TTS model more natural pauses
            contents=f'"{text}"',
            config=genai_types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=genai_types.SpeechConfig(
                    voice_config=genai_types.VoiceConfig(
                        prebuilt_voice_config=genai_types.PrebuiltVoiceConfig(voice_name=voice),
                    ),
                ),
            ),
        )

        try:
            audio = response.candidates[0].content.parts[0].inline_data.data
        except (AttributeError, IndexError, TypeError):
            audio = None
        if not audio:
            raise GenerationError(GenerationErrorKind.UNCLASSIFIED, "No audio data received from API")
        return base64.b64encode(audio).decode()


class OpenAIAdapter(LLMAdapter):
    """Adapter for OpenAI models."""

    provider_name = "openai"

    DEFAULT_MODEL = "gpt-4o-mini"
    DEFAULT_TTS_MODEL = "gpt-4o-mini-tts"
    DEFAULT_VOICE = "alloy"

    def __init__(self, api_key: str | None = None):
        settings = get_settings()
        self.api_key = api_key or settings.openai_api_key

        if not self.api_key:
            logger.warning("OpenAI API key not configured")

        self.client = AsyncOpenAI(api_key=self.api_key or "unset")

    def _model(self, model: str) -> str:
        # Settings default to Gemini model ids
        return self.DEFAULT_MODEL if model.startswith("gemini") else model

    def _to_messages(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
    ) -> list[ChatCompletionMessageParam]:
        """Convert messages to OpenAI format."""
        result: list[ChatCompletionMessageParam] = []

        if system_prompt:
            result.append({"role": "system", "content": system_prompt})

        for msg in messages:
            result.append({
                "role": msg["role"],  # type: ignore
                "content": msg["content"],
            })

        return result

    async def generate_json(
        self,
        prompt: str,
        *,
        model: str,
        response_type: Any,
        temperature: float | None = None,
    ) -> str:
        if not self.api_key:
            raise _missing_key("openai")

        json_schema = TypeAdapter(response_type).json_schema()
        # json_object mode requires a top-level object
        wrapped = json_schema.get("type") != "object"
        shape = {"type": "object", "properties": {"items": json_schema}} if wrapped else json_schema

        completion = await self.client.chat.completions.create(
            model=self._model(model),
            messages=[
                {
                    "role": "system",
                    "content": (
                        "Return ONLY a JSON object matching this JSON schema:\n"
                        + orjson.dumps(shape).decode()
                    ),
                },
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            temperature=temperature,
        )
        raw = completion.choices[0].message.content or ""
        if not wrapped:
            return raw.strip()

        try:
            return orjson.dumps(orjson.loads(raw)["items"]).decode()
        except (orjson.JSONDecodeError, KeyError, TypeError):
            # Let the gateway report the malformed payload
            return raw.strip()

    async def generate_text(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float | None = None,
    ) -> str:
        if not self.api_key:
            raise _missing_key("openai")

        completion = await self.client.chat.completions.create(
            model=self._model(model),
            messages=[{"role": "user", "content": prompt}],
            temperature=temperature,
        )
        return (completion.choices[0].message.content or "").strip()

    async def stream_text(
        self,
        messages: list[dict[str, str]],
        *,
        model: str,
        system_prompt: str | None = None,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamChunk]:
        if not self.api_key:
            raise _missing_key("openai")

        model = self._model(model)
        stream = await self.client.chat.completions.create(
            model=model,
            messages=self._to_messages(messages, system_prompt),
            temperature=temperature,
            stream=True,
        )

        async for chunk in stream:
            if chunk.choices and chunk.choices[0].delta.content:
                yield StreamChunk(
                    content=chunk.choices[0].delta.content,
                    model=model,
                    provider=self.provider_name,
                )

        yield StreamChunk(
            content="",
            is_final=True,
            model=model,
            provider=self.provider_name,
            finish_reason="stop",
        )

    async def synthesize_speech(self, text: str, *, model: str, voice: str) -> str:
        if not self.api_key:
            raise _missing_key("openai")

        response = await self.client.audio.speech.create(
            model=self.DEFAULT_TTS_MODEL if model.startswith("gemini") else model,
            voice=self.DEFAULT_VOICE,
            input=text,
            response_format="pcm",
        )
        return base64.b64encode(response.content).decode()

    async def close(self) -> None:
        await self.client.close()


class LLMService:
    """Service class to manage LLM adapters.

    Supports pre-warming adapters on startup to eliminate
    first-request latency for adapter initialization.
    """

    def __init__(self) -> None:
        self._adapters: dict[str, LLMAdapter] = {}

    def get_adapter(self, provider: str | None = None) -> LLMAdapter:
        """Get or create an adapter for the specified (or default) provider."""
        provider = provider or get_settings().default_llm_provider

        if provider not in self._adapters:
            if provider == "gemini":
                self._adapters[provider] = GeminiAdapter()
            elif provider == "openai":
                self._adapters[provider] = OpenAIAdapter()
            else:
                raise ValueError(f"Unknown LLM provider: {provider}")

        return self._adapters[provider]

    def prewarm_adapters(self) -> None:
        """Pre-initialize adapters for every configured provider."""
        settings = get_settings()

        for provider, key in (("gemini", settings.gemini_api_key), ("openai", settings.openai_api_key)):
            if not key:
                continue
            try:
                self.get_adapter(provider)
                logger.info("Pre-warmed LLM adapter", provider=provider)
            except Exception as e:
                logger.warning("Failed to pre-warm LLM adapter", provider=provider, error=str(e))

    async def close(self) -> None:
        """Close every adapter's HTTP client."""
        for provider, adapter in list(self._adapters.items()):
            try:
                await adapter.close()
            except Exception as e:
                logger.warning("Failed to close LLM adapter", provider=provider, error=str(e))
        self._adapters.clear()

    def get_providers(self) -> list[str]:
        """Get list of available providers."""
        return ["gemini", "openai"]


# Global LLM service instance
_llm_service: LLMService | None = None


def get_llm_service() -> LLMService:
    """Get or create the global LLM service instance."""
    global _llm_service

    if _llm_service is None:
        _llm_service = LLMService()

    return _llm_service
