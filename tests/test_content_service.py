"""Tests for the content service cache policy."""

import pytest

from fala.core.exceptions import GenerationError, GenerationErrorKind
from fala.services.content import VERB_VALIDATION_UNAVAILABLE
from fala.services.models import Example, VocabularyItem
from fala.services.prompts import ContentKind
from tests.conftest import SAMPLE_EXAMPLES, SAMPLE_SCENE, SAMPLE_VOCABULARY

pytestmark = pytest.mark.asyncio


# =============================================================================
# Conjugations
# =============================================================================

class TestConjugations:

    async def test_second_request_is_a_cache_hit(self, content_service, fake_gateway):
        first = await content_service.get_conjugations("Falar")
        second = await content_service.get_conjugations("Falar")

        assert first == second
        assert len(fake_gateway.calls_for(ContentKind.CONJUGATIONS)) == 1

    async def test_select_verb_warms_following(self, content_service, fake_gateway, coordinator, caches):
        verbs = ["Ser", "Estar", "Ter", "Ir", "Vir"]

        await content_service.select_verb(verbs, "Estar")
        await coordinator.wait_idle()

        generated = [params["verb"] for _, params, _ in fake_gateway.calls_for(ContentKind.CONJUGATIONS)]
        assert sorted(generated) == ["Estar", "Ir", "Ter"]
        assert caches.conjugations.get("Vir") is None

    async def test_warm_initial_verbs_skips_active(self, content_service, fake_gateway, coordinator):
        await content_service.warm_initial_verbs(["Ser", "Estar", "Ter"], active="Ser")
        await coordinator.wait_idle()

        generated = {params["verb"] for _, params, _ in fake_gateway.calls_for(ContentKind.CONJUGATIONS)}
        assert generated == {"Estar", "Ter"}

    async def test_validate_verb(self, content_service):
        assert (await content_service.validate_verb("Falar")).is_valid is True

    async def test_validate_verb_failure_reads_as_invalid(self, content_service, fake_gateway):
        fake_gateway.responses[ContentKind.VERB_VALIDATION] = GenerationError(
            GenerationErrorKind.TIMEOUT, "slow"
        )

        result = await content_service.validate_verb("Falar")

        assert result.is_valid is False
        assert result.reason == VERB_VALIDATION_UNAVAILABLE


# =============================================================================
# Examples
# =============================================================================

class TestExamples:

    async def test_examples_cached_by_verb_and_form(self, content_service, fake_gateway, caches, coordinator):
        await content_service.get_examples("Falar", "falo")
        await content_service.get_examples("Falar", "falo")
        await coordinator.wait_idle()

        assert len(fake_gateway.calls_for(ContentKind.EXAMPLES)) == 1
        assert caches.examples.get("Falar:falo") == SAMPLE_EXAMPLES

    async def test_examples_warm_speech_for_every_sentence(self, content_service, caches, coordinator):
        await content_service.get_examples("Falar", "falo")
        await coordinator.wait_idle()

        for example in SAMPLE_EXAMPLES:
            assert caches.speech.get(example.portuguese) == f"pcm:{example.portuguese}"

    async def test_more_examples_bypass_cache(self, content_service, fake_gateway, caches):
        existing = [Example(portuguese="Eu falo alto.", english="I speak loudly.")]

        await content_service.get_examples("Falar", "falo", existing)

        _, _, exclude = fake_gateway.calls_for(ContentKind.EXAMPLES)[0]
        assert exclude == {"Eu falo alto."}
        assert caches.examples.get("Falar:falo") is None

    async def test_general_examples_key(self, content_service, caches, coordinator):
        await content_service.get_general_examples("Falar")
        await coordinator.wait_idle()

        assert caches.examples.get("Falar") == SAMPLE_EXAMPLES

    async def test_form_named_general_does_not_hit_general_examples(self, content_service, fake_gateway):
        await content_service.get_general_examples("Falar")
        await content_service.get_examples("Falar", "general")

        assert len(fake_gateway.calls_for(ContentKind.GENERAL_EXAMPLES)) == 1
        assert len(fake_gateway.calls_for(ContentKind.EXAMPLES)) == 1

    async def test_grammar_examples_exclude_english_and_never_cache(self, content_service, fake_gateway, caches):
        existing = [Example(portuguese="Se eu fosse rico...", english="If I were rich...")]

        await content_service.get_grammar_examples("Subjunctive", 3, existing)
        await content_service.get_grammar_examples("Subjunctive", 3)

        calls = fake_gateway.calls_for(ContentKind.GRAMMAR_EXAMPLES)
        assert calls[0][1] == {"topic": "Subjunctive", "count": 3}
        assert calls[0][2] == {"If I were rich..."}
        assert calls[1][2] is None
        assert len(caches.examples) == 0


class TestGrammar:

    async def test_paragraph_passes_topic_and_theme(self, content_service, fake_gateway):
        paragraph = await content_service.get_grammar_paragraph("Present Subjunctive", "planning a party")

        assert paragraph.highlighted_words == ["venha", "faça"]
        assert fake_gateway.calls_for(ContentKind.GRAMMAR_PARAGRAPH)[0][1] == {
            "topic": "Present Subjunctive",
            "theme": "planning a party",
        }

    async def test_theory_is_never_cached(self, content_service, fake_gateway, caches):
        await content_service.get_grammar_theory("Present Subjunctive")
        await content_service.get_grammar_theory("Present Subjunctive")

        assert len(fake_gateway.calls_for(ContentKind.GRAMMAR_THEORY)) == 2
        assert all(len(cache) == 0 for cache in caches.all())

    async def test_written_drills_count(self, content_service, fake_gateway):
        drills = await content_service.get_written_drills("Present Subjunctive", 3)

        assert len(drills) == 3
        assert all("___" in drill.sentence_with_blank for drill in drills)
        assert fake_gateway.calls_for(ContentKind.WRITTEN_DRILLS)[0][1]["count"] == 3


# =============================================================================
# Vocabulary
# =============================================================================

class TestVocabulary:

    async def test_plain_request_is_cached(self, content_service, fake_gateway, caches):
        await content_service.get_vocabulary("Food")
        await content_service.get_vocabulary("Food")

        assert len(fake_gateway.calls_for(ContentKind.VOCABULARY)) == 1
        assert caches.vocabulary.get("Food") == SAMPLE_VOCABULARY

    async def test_exclusion_bypasses_cache_every_time(self, content_service, fake_gateway, caches):
        """Two requests for "Food" excluding {"pão"} both reach the gateway."""
        await content_service.get_vocabulary("Food", exclude=["pão"])
        await content_service.get_vocabulary("Food", exclude=["pão"])

        calls = fake_gateway.calls_for(ContentKind.VOCABULARY)
        assert len(calls) == 2
        assert all(exclude == {"pão"} for _, _, exclude in calls)
        assert caches.vocabulary.get("Food") is None

    async def test_existing_words_join_the_exclusion(self, content_service, fake_gateway):
        existing = [
            VocabularyItem(
                portuguese_word="feijão",
                english_translation="beans",
                word_type="noun (masculine)",
                example_sentence="Eu gosto de feijão.",
                example_translation="I like beans.",
            )
        ]

        await content_service.get_vocabulary("Food", existing_words=existing, exclude=["pão"])

        _, _, exclude = fake_gateway.calls_for(ContentKind.VOCABULARY)[0]
        assert exclude == {"feijão", "pão"}

    async def test_cached_set_untouched_by_bypass(self, content_service, fake_gateway, caches):
        await content_service.get_vocabulary("Food")
        fake_gateway.responses[ContentKind.VOCABULARY] = []

        await content_service.get_vocabulary("Food", exclude=["arroz"])

        assert caches.vocabulary.get("Food") == SAMPLE_VOCABULARY


# =============================================================================
# Scenes & domains
# =============================================================================

class TestScenes:

    async def test_scene_cached_by_domain_subtopic_function(self, content_service, fake_gateway, caches):
        await content_service.get_scene("Restaurant", "Ordering", "Asking for the bill")
        await content_service.get_scene("Restaurant", "Ordering", "Asking for the bill")

        assert len(fake_gateway.calls_for(ContentKind.SCENE)) == 1
        assert caches.scenes.get("Restaurant:Ordering:Asking for the bill") == SAMPLE_SCENE

    async def test_custom_scene_key(self, content_service, caches):
        await content_service.get_scene("Custom", "ignored", "Returning a phone")
        assert caches.scenes.get("custom:Returning a phone") == SAMPLE_SCENE

    async def test_regenerate_passes_previous_scene(self, content_service, fake_gateway, caches):
        await content_service.get_scene("Restaurant", "Ordering", "Asking for the bill", SAMPLE_SCENE)

        _, params, exclude = fake_gateway.calls_for(ContentKind.SCENE)[0]
        assert params["previous_title"] == SAMPLE_SCENE.scene_title
        assert exclude == {"Um café, por favor.", "Com açúcar?", "Ordering Coffee"}
        assert len(caches.scenes) == 0

    async def test_functional_domain_is_not_cached(self, content_service, fake_gateway):
        await content_service.generate_functional_domain("Airport")
        await content_service.generate_functional_domain("Airport")

        assert len(fake_gateway.calls_for(ContentKind.FUNCTIONAL_DOMAIN)) == 2


# =============================================================================
# Speech
# =============================================================================

class TestSpeech:

    async def test_speech_is_cached(self, content_service, fake_gateway):
        await content_service.get_speech("Olá")
        audio = await content_service.get_speech("Olá")

        assert audio == "pcm:Olá"
        assert len(fake_gateway.calls_for(ContentKind.SPEECH)) == 1

    async def test_drill_step_warms_next_sentence(self, content_service, caches, coordinator):
        sentences = ["Um.", "Dois.", "Três."]

        audio = await content_service.drill_step(sentences, 0)
        await coordinator.wait_idle()

        assert audio == "pcm:Um."
        assert caches.speech.get("Dois.") == "pcm:Dois."
        assert caches.speech.get("Três.") is None

    async def test_drill_step_out_of_range(self, content_service):
        with pytest.raises(IndexError):
            await content_service.drill_step(["Um."], 1)

    async def test_speech_failure_caches_nothing(self, content_service, fake_gateway, caches):
        fake_gateway.responses[ContentKind.SPEECH] = GenerationError(GenerationErrorKind.QUOTA_EXCEEDED, "busy")

        with pytest.raises(GenerationError):
            await content_service.get_speech("Olá")

        assert caches.speech.get("Olá") is None

    async def test_pronunciation_feedback(self, content_service, fake_gateway):
        feedback = await content_service.get_pronunciation_feedback("Obrigado", "Obrigada")

        assert feedback == "Excellent! That's perfect."
        _, params, _ = fake_gateway.calls_for(ContentKind.PRONUNCIATION_FEEDBACK)[0]
        assert params == {"original": "Obrigado", "attempt": "Obrigada"}
