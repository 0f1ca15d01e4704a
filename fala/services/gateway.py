"""Generation gateway.

Single choke point for every call to the generation providers. Adds a
per-call timeout, parses structured output, and classifies failures into
``GenerationErrorKind``. It never reads or writes the content caches.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Collection, Mapping
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from fala.core.config import Settings, get_settings
from fala.core.exceptions import GenerationError, GenerationErrorKind
from fala.core.logging import get_logger
from fala.services.llm import LLMAdapter, LLMService
from fala.services.prompts import ContentKind, GenerationRequest, build_request

logger = get_logger(__name__)

_QUOTA_MARKERS = ("quota", "rate limit", "rate_limit", "resource_exhausted", "too many requests")
_CREDENTIAL_MARKERS = ("api key", "api_key", "permission", "unauthenticated", "credential")
_TIMEOUT_MARKERS = ("timeout", "timed out", "deadline")


def _status_code(exc: BaseException) -> int | None:
    # openai errors carry status_code, google-genai errors carry code
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_error(exc: BaseException) -> GenerationErrorKind:
    """Derive an advisory classification from a provider failure."""
    if isinstance(exc, GenerationError):
        return exc.classification
    if isinstance(exc, (TimeoutError, httpx.TimeoutException)):
        return GenerationErrorKind.TIMEOUT

    code = _status_code(exc)
    if code == 429:
        return GenerationErrorKind.QUOTA_EXCEEDED
    if code in (401, 403):
        return GenerationErrorKind.INVALID_CREDENTIAL
    if code in (408, 504):
        return GenerationErrorKind.TIMEOUT

    message = str(exc).lower()
    if any(marker in message for marker in _QUOTA_MARKERS):
        return GenerationErrorKind.QUOTA_EXCEEDED
    if any(marker in message for marker in _CREDENTIAL_MARKERS):
        return GenerationErrorKind.INVALID_CREDENTIAL
    if any(marker in message for marker in _TIMEOUT_MARKERS):
        return GenerationErrorKind.TIMEOUT
    return GenerationErrorKind.UNCLASSIFIED


_FRIENDLY_MESSAGES = {
    GenerationErrorKind.QUOTA_EXCEEDED: "The content service is busy right now. Please try again in a moment.",
    GenerationErrorKind.INVALID_CREDENTIAL: "The content service rejected our credentials. Please check the API key.",
    GenerationErrorKind.TIMEOUT: "The content service took too long to respond. Please try again.",
    GenerationErrorKind.UNCLASSIFIED: "Could not generate content. Please try again.",
}


def to_generation_error(exc: BaseException, kind: ContentKind | None = None) -> GenerationError:
    """Wrap any failure as a classified ``GenerationError``."""
    if isinstance(exc, GenerationError):
        return exc
    classification = classify_error(exc)
    return GenerationError(
        classification,
        _FRIENDLY_MESSAGES[classification],
        kind=kind.value if kind else None,
    )


class GenerationGateway:
    """Uniform ``fetch(kind, params, exclude)`` over the LLM providers."""

    def __init__(
        self,
        llm: LLMService,
        settings: Settings | None = None,
        provider: str | None = None,
    ) -> None:
        self._llm = llm
        self._settings = settings or get_settings()
        self._provider = provider

    @property
    def adapter(self) -> LLMAdapter:
        return self._llm.get_adapter(self._provider)

    async def fetch(
        self,
        kind: ContentKind,
        params: Mapping[str, Any],
        exclude: Collection[str] | None = None,
    ) -> Any:
        """Generate one piece of content.

        Returns the parsed value declared for ``kind`` (a pydantic model or
        list of models for JSON kinds, ``str`` for text and speech).

        Raises:
            GenerationError: The call failed or returned malformed output.
        """
        request = build_request(kind, params, exclude)
        start = time.perf_counter()

        try:
            raw = await asyncio.wait_for(
                self._call(request),
                timeout=self._settings.generation_timeout_seconds,
            )
        except Exception as e:
            error = to_generation_error(e, kind)
            logger.warning(
                "Generation failed",
                kind=kind.value,
                classification=error.classification.value,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                error=str(e),
            )
            raise error from e

        value = self._parse(request, raw)
        logger.info(
            "Generation completed",
            kind=kind.value,
            excluded=len(exclude or ()),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return value

    async def _call(self, request: GenerationRequest) -> str:
        adapter = self.adapter
        settings = self._settings

        if request.output == "speech":
            return await adapter.synthesize_speech(
                request.prompt,
                model=settings.tts_model,
                voice=settings.tts_voice,
            )
        if request.output == "text":
            return await adapter.generate_text(
                request.prompt,
                model=settings.content_model,
                temperature=request.temperature,
            )

        return await adapter.generate_json(
            request.prompt,
            model=settings.content_model,
            response_type=request.response_type,
            temperature=request.temperature,
        )

    def _parse(self, request: GenerationRequest, raw: str) -> Any:
        if not raw:
            raise GenerationError(
                GenerationErrorKind.UNCLASSIFIED,
                "The content service returned an empty response. Please try again.",
                kind=request.kind.value,
            )
        if request.schema is None:
            return raw

        try:
            return request.schema.validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(
                "Malformed generation output",
                kind=request.kind.value,
                errors=e.error_count(),
            )
            raise GenerationError(
                GenerationErrorKind.UNCLASSIFIED,
                "The content service returned an unexpected response. Please try again.",
                kind=request.kind.value,
            ) from e

    async def stream_text(
        self,
        messages: list[dict[str, str]],
        *,
        system_prompt: str | None = None,
    ) -> AsyncIterator[str]:
        """Stream reply text chunks.

        The timeout applies to the wait for each chunk, not the whole reply.

        Raises:
            GenerationError: The stream failed at any point.
        """
        stream = self.adapter.stream_text(
            messages,
            model=self._settings.content_model,
            system_prompt=system_prompt,
        )
        timeout = self._settings.generation_timeout_seconds

        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(anext(stream), timeout=timeout)
                except StopAsyncIteration:
                    return
                except Exception as e:
                    error = to_generation_error(e)
                    logger.warning(
                        "Reply stream failed",
                        classification=error.classification.value,
                        error=str(e),
                    )
                    raise error from e

                if chunk.content:
                    yield chunk.content
        finally:
            await stream.aclose()
