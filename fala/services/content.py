"""Content service.

Applies the cache policy for each content kind on top of the prefetch
coordinator and generation gateway:

- A request with no exclusion requirement goes through ``ensure`` and is
  served from, or written to, the kind's cache.
- A request that must avoid earlier content (regenerate, "get more",
  excluded words) bypasses the cache and calls the gateway directly.
- Kinds with no stable key (validation, custom domains, grammar paragraphs,
  theory and drills, pronunciation feedback) are never cached.
"""

import asyncio
from collections.abc import Sequence
from typing import Any

from fala.core.exceptions import GenerationError
from fala.core.logging import get_logger
from fala.services.cache import ContentCaches
from fala.services.gateway import GenerationGateway
from fala.services.keys import (
    conjugation_key,
    example_key,
    general_examples_key,
    scene_key,
    speech_key,
    vocabulary_key,
)
from fala.services.models import (
    ConjugationData,
    Example,
    FunctionalDomain,
    FunctionalScene,
    GrammarParagraph,
    GrammarTheory,
    VerbValidation,
    VocabularyItem,
    WrittenDrill,
)
from fala.services.prefetch import PrefetchCoordinator
from fala.services.prompts import ContentKind

logger = get_logger(__name__)

VERB_VALIDATION_UNAVAILABLE = "Could not verify the verb at this time. Please try again."


class ContentService:
    """Facade the HTTP layer talks to for every non-chat content kind."""

    def __init__(
        self,
        caches: ContentCaches,
        gateway: GenerationGateway,
        coordinator: PrefetchCoordinator,
    ) -> None:
        self.caches = caches
        self.gateway = gateway
        self.coordinator = coordinator

    # ========== Conjugations ==========

    async def _generate_conjugations(self, verb: str) -> ConjugationData:
        return await self.gateway.fetch(ContentKind.CONJUGATIONS, {"verb": verb})

    async def get_conjugations(self, verb: str) -> ConjugationData:
        return await self.coordinator.ensure(
            self.caches.conjugations,
            conjugation_key(verb),
            lambda: self._generate_conjugations(verb),
        )

    async def select_verb(self, verbs: Sequence[str], verb: str) -> ConjugationData:
        """Conjugations for ``verb`` plus a look-ahead warm of the verbs after it."""
        self.coordinator.warm_following(
            self.caches.conjugations,
            verbs,
            verb,
            conjugation_key,
            self._generate_conjugations,
        )
        return await self.get_conjugations(verb)

    def warm_initial_verbs(self, verbs: Sequence[str], active: str | None = None) -> asyncio.Task[Any]:
        """Schedule the delayed startup warm-up of the verb list."""
        return self.coordinator.warm_startup(
            self.caches.conjugations,
            verbs,
            conjugation_key,
            self._generate_conjugations,
            active=active,
        )

    async def validate_verb(self, verb: str) -> VerbValidation:
        """Never raises; a failed check reads as an invalid verb."""
        try:
            return await self.gateway.fetch(ContentKind.VERB_VALIDATION, {"verb": verb})
        except GenerationError as e:
            logger.warning("Verb validation failed", verb=verb, classification=e.classification.value)
            return VerbValidation(is_valid=False, reason=VERB_VALIDATION_UNAVAILABLE)

    # ========== Example sentences ==========

    async def get_examples(
        self,
        verb: str,
        form: str,
        existing: Sequence[Example] | None = None,
    ) -> list[Example]:
        params = {"verb": verb, "form": form}
        if existing:
            examples = await self.gateway.fetch(
                ContentKind.EXAMPLES, params, {ex.portuguese for ex in existing}
            )
        else:
            examples = await self.coordinator.ensure(
                self.caches.examples,
                example_key(verb, form),
                lambda: self.gateway.fetch(ContentKind.EXAMPLES, params),
            )

        self.warm_speech([ex.portuguese for ex in examples])
        return examples

    async def get_general_examples(
        self,
        verb: str,
        existing: Sequence[Example] | None = None,
    ) -> list[Example]:
        params = {"verb": verb}
        if existing:
            examples = await self.gateway.fetch(
                ContentKind.GENERAL_EXAMPLES, params, {ex.portuguese for ex in existing}
            )
        else:
            examples = await self.coordinator.ensure(
                self.caches.examples,
                general_examples_key(verb),
                lambda: self.gateway.fetch(ContentKind.GENERAL_EXAMPLES, params),
            )

        self.warm_speech([ex.portuguese for ex in examples])
        return examples

    async def get_grammar_examples(
        self,
        topic: str,
        count: int,
        existing: Sequence[Example] | None = None,
    ) -> list[Example]:
        # Learners translate from English, so repeats are judged on the English side
        exclude = {ex.english for ex in existing or ()}
        return await self.gateway.fetch(
            ContentKind.GRAMMAR_EXAMPLES,
            {"topic": topic, "count": count},
            exclude or None,
        )

    async def get_grammar_paragraph(self, topic: str, theme: str = "") -> GrammarParagraph:
        return await self.gateway.fetch(ContentKind.GRAMMAR_PARAGRAPH, {"topic": topic, "theme": theme})

    async def get_grammar_theory(self, topic: str) -> GrammarTheory:
        return await self.gateway.fetch(ContentKind.GRAMMAR_THEORY, {"topic": topic})

    async def get_written_drills(self, topic: str, count: int) -> list[WrittenDrill]:
        return await self.gateway.fetch(ContentKind.WRITTEN_DRILLS, {"topic": topic, "count": count})

    # ========== Vocabulary ==========

    async def get_vocabulary(
        self,
        category: str,
        existing_words: Sequence[VocabularyItem] | None = None,
        exclude: Sequence[str] | None = None,
    ) -> list[VocabularyItem]:
        exclusion = {item.portuguese_word for item in existing_words or ()} | set(exclude or ())
        params = {"category": category}

        if exclusion:
            return await self.gateway.fetch(ContentKind.VOCABULARY, params, exclusion)

        return await self.coordinator.ensure(
            self.caches.vocabulary,
            vocabulary_key(category),
            lambda: self.gateway.fetch(ContentKind.VOCABULARY, params),
        )

    # ========== Functional language ==========

    async def get_scene(
        self,
        domain: str,
        subtopic: str,
        function_name: str,
        existing_scene: FunctionalScene | None = None,
    ) -> FunctionalScene:
        params: dict[str, Any] = {"domain": domain, "subtopic": subtopic, "function": function_name}

        if existing_scene is not None:
            params["previous_title"] = existing_scene.scene_title
            params["previous_description"] = existing_scene.scene_description
            exclude = {phrase.portuguese for phrase in existing_scene.phrases}
            exclude.add(existing_scene.scene_title)
            return await self.gateway.fetch(ContentKind.SCENE, params, exclude)

        return await self.coordinator.ensure(
            self.caches.scenes,
            scene_key(domain, subtopic, function_name),
            lambda: self.gateway.fetch(ContentKind.SCENE, params),
        )

    async def generate_functional_domain(self, topic: str) -> FunctionalDomain:
        return await self.gateway.fetch(ContentKind.FUNCTIONAL_DOMAIN, {"topic": topic})

    # ========== Speech ==========

    async def _generate_speech(self, text: str) -> str:
        return await self.gateway.fetch(ContentKind.SPEECH, {"text": text})

    async def get_speech(self, text: str) -> str:
        """Base64 PCM audio for ``text``."""
        return await self.coordinator.ensure(
            self.caches.speech,
            speech_key(text),
            lambda: self._generate_speech(text),
        )

    def warm_speech(self, texts: Sequence[str]) -> list[str]:
        return self.coordinator.warm_batch(
            self.caches.speech,
            texts,
            self._generate_speech,
            key_fn=speech_key,
        )

    async def drill_step(self, sentences: Sequence[str], index: int) -> str:
        """Audio for sentence ``index`` while the next one warms up."""
        if not 0 <= index < len(sentences):
            raise IndexError(f"Drill index {index} out of range")

        self.coordinator.warm_next(
            self.caches.speech,
            sentences,
            index,
            speech_key,
            self._generate_speech,
        )
        return await self.get_speech(sentences[index])

    async def get_pronunciation_feedback(self, original: str, attempt: str) -> str:
        return await self.gateway.fetch(
            ContentKind.PRONUNCIATION_FEEDBACK,
            {"original": original, "attempt": attempt},
        )
