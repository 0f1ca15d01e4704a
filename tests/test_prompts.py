"""Tests for per-kind generation requests."""

import pytest

from fala.services.models import CorrectionCheck, FunctionalScene, GrammarTheory, WrittenDrill
from fala.services.prompts import (
    ContentKind,
    build_request,
    exclusion_clause,
    tutor_system_prompt,
)

_PARAMS = {
    ContentKind.CONJUGATIONS: {"verb": "Falar"},
    ContentKind.EXAMPLES: {"verb": "Falar", "form": "falo"},
    ContentKind.GENERAL_EXAMPLES: {"verb": "Falar"},
    ContentKind.VOCABULARY: {"category": "Food"},
    ContentKind.SCENE: {"domain": "Restaurant", "subtopic": "Ordering", "function": "Asking for the bill"},
    ContentKind.SPEECH: {"text": "Olá, tudo bem?"},
    ContentKind.VERB_VALIDATION: {"verb": "Falar"},
    ContentKind.FUNCTIONAL_DOMAIN: {"topic": "Going to the dentist"},
    ContentKind.GRAMMAR_EXAMPLES: {"topic": "Subjunctive", "count": 5},
    ContentKind.GRAMMAR_PARAGRAPH: {"topic": "Present Subjunctive", "theme": "planning a party"},
    ContentKind.GRAMMAR_THEORY: {"topic": "Present Subjunctive"},
    ContentKind.WRITTEN_DRILLS: {"topic": "Present Subjunctive", "count": 4},
    ContentKind.PRONUNCIATION_FEEDBACK: {"original": "Obrigado", "attempt": "Obrigada"},
    ContentKind.CHAT_OPENING: {"topic": "Football"},
    ContentKind.CHAT_SUGGESTION: {"transcript": "Tutor: Oi!"},
    ContentKind.CHAT_CORRECTION: {"text": "Eu gosta de café"},
    ContentKind.CHAT_TRANSLATION: {"text": "Que bom!"},
}


class TestBuildRequest:

    def test_every_kind_has_a_builder(self):
        assert set(_PARAMS) == set(ContentKind)

    @pytest.mark.parametrize("kind", list(ContentKind), ids=lambda k: k.value)
    def test_builds_non_empty_prompt(self, kind):
        request = build_request(kind, _PARAMS[kind])
        assert request.kind is kind
        assert request.prompt

    def test_structured_kind_declares_schema(self):
        request = build_request(ContentKind.CHAT_CORRECTION, _PARAMS[ContentKind.CHAT_CORRECTION])
        assert request.output == "json"
        assert request.response_type is CorrectionCheck
        assert request.schema is not None
        assert request.temperature == 0.2

    def test_text_kind_has_no_schema(self):
        request = build_request(ContentKind.CHAT_TRANSLATION, {"text": "Oi"})
        assert request.output == "text"
        assert request.schema is None

    def test_speech_prompt_is_the_text(self):
        request = build_request(ContentKind.SPEECH, {"text": "Olá"}, {"ignored"})
        assert request.output == "speech"
        assert request.prompt == "Olá"

    def test_missing_parameter_raises(self):
        with pytest.raises(KeyError):
            build_request(ContentKind.EXAMPLES, {"verb": "Falar"})

    def test_no_exclusion_without_exclude(self):
        request = build_request(ContentKind.VOCABULARY, {"category": "Food"}, set())
        assert "Do not repeat" not in request.prompt

    def test_exclusion_appended(self):
        request = build_request(ContentKind.VOCABULARY, {"category": "Food"}, {"pão", "arroz"})
        assert request.prompt.endswith(exclusion_clause({"arroz", "pão"}))


class TestExclusionClause:

    def test_items_sorted_and_quoted(self):
        clause = exclusion_clause({"pão", "arroz"})
        assert clause == '\n\nIMPORTANT: Do not repeat any of the following: ["arroz","pão"]'


class TestScenePrompt:

    def test_custom_domain_uses_situation(self):
        request = build_request(
            ContentKind.SCENE,
            {"domain": "Custom", "subtopic": "", "function": "Returning a broken phone"},
        )
        assert 'Situation: "Returning a broken phone"' in request.prompt
        assert "Subtopic" not in request.prompt

    def test_regeneration_mentions_previous_scene(self):
        request = build_request(
            ContentKind.SCENE,
            {**_PARAMS[ContentKind.SCENE], "previous_title": "Paying Up", "previous_description": "At a bar."},
        )
        assert '"Paying Up"' in request.prompt
        assert "significantly different" in request.prompt

    def test_scene_schema(self):
        assert build_request(ContentKind.SCENE, _PARAMS[ContentKind.SCENE]).response_type is FunctionalScene


class TestGrammarPrompts:

    def test_paragraph_defaults_theme(self):
        request = build_request(ContentKind.GRAMMAR_PARAGRAPH, {"topic": "Present Subjunctive", "theme": ""})
        assert "Theme: a daily life situation" in request.prompt

    def test_written_drills_parse_into_models(self):
        request = build_request(ContentKind.WRITTEN_DRILLS, _PARAMS[ContentKind.WRITTEN_DRILLS])
        raw = '[{"sentence_with_blank": "Eu ___ feliz.", "correct_answer": "estou", "english_hint": "I am happy."}]'

        drills = request.schema.validate_json(raw)

        assert drills == [WrittenDrill(sentence_with_blank="Eu ___ feliz.", correct_answer="estou", english_hint="I am happy.")]
        assert "exactly 4 distinct exercises" in request.prompt

    def test_theory_schema(self):
        request = build_request(ContentKind.GRAMMAR_THEORY, _PARAMS[ContentKind.GRAMMAR_THEORY])
        assert request.response_type is GrammarTheory
        assert request.temperature == 0.3


def test_tutor_system_prompt_mentions_topic():
    assert '"Football"' in tutor_system_prompt("Football")
