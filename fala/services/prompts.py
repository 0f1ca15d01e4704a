"""Per-kind generation requests.

Each ``ContentKind`` maps to a builder that turns request parameters into a
prompt and declares the shape the response must have. Builders never touch
the caches; exclusion sets are appended as a best-effort instruction.
"""

from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

import orjson
from pydantic import TypeAdapter

from fala.services.keys import CUSTOM_DOMAIN
from fala.services.models import (
    ConjugationData,
    CorrectionCheck,
    Example,
    FunctionalDomain,
    FunctionalScene,
    GrammarParagraph,
    GrammarTheory,
    TutorLine,
    VerbValidation,
    VocabularyItem,
    WrittenDrill,
)


class ContentKind(str, Enum):
    """Every kind of content the generation gateway can produce."""

    CONJUGATIONS = "conjugations"
    EXAMPLES = "examples"
    GENERAL_EXAMPLES = "general_examples"
    VOCABULARY = "vocabulary"
    SCENE = "scene"
    SPEECH = "speech"
    VERB_VALIDATION = "verb_validation"
    FUNCTIONAL_DOMAIN = "functional_domain"
    GRAMMAR_EXAMPLES = "grammar_examples"
    GRAMMAR_PARAGRAPH = "grammar_paragraph"
    GRAMMAR_THEORY = "grammar_theory"
    WRITTEN_DRILLS = "written_drills"
    PRONUNCIATION_FEEDBACK = "pronunciation_feedback"
    CHAT_OPENING = "chat_opening"
    CHAT_SUGGESTION = "chat_suggestion"
    CHAT_CORRECTION = "chat_correction"
    CHAT_TRANSLATION = "chat_translation"


OutputMode = Literal["json", "text", "speech"]


@dataclass(frozen=True)
class GenerationRequest:
    """A fully built request for one generation call."""

    kind: ContentKind
    prompt: str
    output: OutputMode
    response_type: Any = None
    schema: TypeAdapter[Any] | None = None
    temperature: float | None = None


@dataclass(frozen=True)
class _KindConfig:
    build: Callable[[Mapping[str, Any]], str]
    output: OutputMode
    response_type: Any = None
    temperature: float | None = None


def exclusion_clause(exclude: Collection[str]) -> str:
    """Instruction asking the model not to repeat prior items."""
    items = orjson.dumps(sorted(exclude)).decode()
    return f"\n\nIMPORTANT: Do not repeat any of the following: {items}"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _conjugations(p: Mapping[str, Any]) -> str:
    return (
        f"Generate the main conjugations for the Brazilian Portuguese verb '{p['verb']}'. "
        "Include: Presente, Pretérito Perfeito, Pretérito Imperfeito, Pretérito Perfeito "
        "Composto (using the verb 'ter'), Futuro do Presente, Futuro do Pretérito, "
        "Presente do Subjuntivo, and Imperfeito do Subjuntivo. For each tense, provide the "
        "forms for 'eu', 'você/ele/ela', 'nós', and 'vocês/eles/elas'."
    )


def _examples(p: Mapping[str, Any]) -> str:
    return (
        f"Provide 5 example sentences in Brazilian Portuguese using the verb '{p['verb']}' "
        f"in the form '{p['form']}'. Ensure the sentences have a mix of difficulty, from "
        "simple to more complex. Also, showcase different meanings or use cases of the verb "
        "where applicable. For each sentence, also provide the English translation."
    )


def _general_examples(p: Mapping[str, Any]) -> str:
    return (
        f"Provide 5 diverse example sentences for the Brazilian Portuguese verb '{p['verb']}'. "
        "The examples should cover a range of common tenses (like present, past, and future) "
        "and subjects (like 'eu', 'você', 'nós'). For each sentence, also provide the English "
        "translation."
    )


def _vocabulary(p: Mapping[str, Any]) -> str:
    return f"""
You are a Brazilian Portuguese language expert creating a vocabulary list for a student.
Generate a list of 15-20 essential and practical vocabulary items for one category.

Category: "{p['category']}"

Instructions:
1. Generate a diverse list of words and short phrases, including nouns, verbs, and adjectives.
2. For each item provide the Portuguese word, its English translation, the grammatical type
   (e.g. "noun (masculine)", "noun (feminine)", "verb", "adjective", "phrase"), a natural
   example sentence in Brazilian Portuguese and the English translation of that sentence.
""".strip()


def _scene(p: Mapping[str, Any]) -> str:
    if p["domain"] == CUSTOM_DOMAIN:
        context = f'Situation: "{p["function"]}"'
        title_hint = 'a concise, catchy summary of the situation (e.g. "Making Small Talk at a Party")'
    else:
        context = (
            f'Domain: "{p["domain"]}"\n'
            f'Subtopic: "{p["subtopic"]}"\n'
            f'Language Function: "{p["function"]}"'
        )
        title_hint = 'a short summary of the situation (e.g. "Booking a Table")'

    prompt = f"""
You are a Brazilian Portuguese language expert creating a micro-lesson for a language learner.
Generate a short, realistic conversation scene or a pack of practical phrases.

{context}

Instructions:
1. The scene title should be {title_hint}.
2. The scene description is one sentence of context for the learner.
3. Provide 8-12 conversational turns, each with the speaker, the Portuguese phrase and its
   English translation.
4. The dialogue should be natural, modern, informal Brazilian Portuguese.
""".strip()

    if p.get("previous_title"):
        prompt += (
            "\n\nYou are generating a new version of an existing scene. Provide a significantly "
            f"different scenario. The previous scene was titled \"{p['previous_title']}\" and "
            f"described as \"{p.get('previous_description', '')}\"."
        )
    return prompt


def _speech(p: Mapping[str, Any]) -> str:
    return p["text"]


def _verb_validation(p: Mapping[str, Any]) -> str:
    return (
        f'Is the word "{p["verb"]}" a valid infinitive verb in Brazilian Portuguese? '
        "Please provide a user-friendly reason if it is not."
    )


def _functional_domain(p: Mapping[str, Any]) -> str:
    return f"""
You are a language curriculum designer. Break a user-provided topic down into a structured,
practical learning module for Brazilian Portuguese.

User Topic: "{p['topic']}"

Instructions:
1. Generate a concise, title-cased name for the topic.
2. Choose a single relevant emoji for the topic.
3. Create 3 to 5 logical subtopics, each a key stage or aspect of the topic.
4. For each subtopic list 3 to 5 practical functions (e.g. "Asking for the price").
""".strip()


def _grammar_examples(p: Mapping[str, Any]) -> str:
    count = p["count"]
    return f"""
You are a language teacher creating practice exercises for a student learning Brazilian Portuguese.
Generate {count} new and unique practice sentence pairs.

Grammar Topic to Test: "{p['topic']}"

Instructions:
1. Each English sentence MUST require the "{p['topic']}" concept in its Portuguese translation.
2. Provide the correct and natural Brazilian Portuguese translation.
3. Mix simple, intermediate and complex sentence structures.
4. Ensure all {count} examples are different from each other.
""".strip()


def _grammar_paragraph(p: Mapping[str, Any]) -> str:
    theme = p.get("theme") or "a daily life situation"
    return f"""
You are an expert in teaching Brazilian Portuguese. Create a short, natural and informal
paragraph that helps a learner understand one grammar point.

Grammar Topic: {p['topic']}
Theme: {theme}

Instructions:
1. Write 3-5 sentences in modern, informal Brazilian Portuguese about the theme.
2. The paragraph MUST prominently feature several examples of the grammar topic.
3. Provide a clear English translation.
4. List the exact words or short phrases in the Portuguese paragraph that are examples of the
   grammar topic. For "Present Subjunctive" and "planning a party", "Espero que você venha
   para a minha festa. Tomara que faça sol..." would highlight ["venha", "faça"].
""".strip()


def _grammar_theory(p: Mapping[str, Any]) -> str:
    return f"""
You are an expert Portuguese language teacher. Explain one grammar topic clearly and concisely
for an intermediate learner.

Grammar Topic: "{p['topic']}"

Instructions:
1. Give a main explanation: what it is, when to use it, and important rules or exceptions.
   Use \\n for newlines to create paragraphs.
2. Provide 3-4 distinct examples, each with the Portuguese sentence, the English translation
   and an optional brief explanation of how the topic applies in that sentence.
""".strip()


def _written_drills(p: Mapping[str, Any]) -> str:
    count = p["count"]
    return f"""
You are a language teacher creating written exercises for a student learning Brazilian Portuguese.
Generate {count} unique sentences that test one grammar point. Each sentence has a blank ('___')
where the student fills in the correct word or phrase.

Grammar Topic to Test: "{p['topic']}"

Instructions:
1. Return exactly {count} distinct exercises.
2. For each exercise give the Portuguese sentence with '___' (exactly three underscores) as the
   placeholder, the exact word(s) that fill the blank, and an English translation of the
   complete sentence as a hint.
3. Keep the difficulty intermediate and vary verbs, vocabulary and sentence structure.
4. The blank should ideally hold one or two words.
""".strip()


def _pronunciation_feedback(p: Mapping[str, Any]) -> str:
    return f"""
You are a Brazilian Portuguese pronunciation coach giving feedback to a language learner.
The student was asked to say: "{p['original']}"
The student said: "{p['attempt']}"

Give brief, encouraging and constructive feedback in English (1-2 sentences). If the attempt is
close, praise it. Otherwise point out the single most important thing to improve.
""".strip()


def _chat_opening(p: Mapping[str, Any]) -> str:
    return (
        "You are a friendly Brazilian Portuguese conversation partner. Start a casual "
        f'conversation about "{p["topic"]}" with one short opening line in Brazilian '
        "Portuguese, and give its English translation."
    )


def _chat_suggestion(p: Mapping[str, Any]) -> str:
    return (
        "A student is practising Brazilian Portuguese in this conversation:\n\n"
        f"{p['transcript']}\n\n"
        "Suggest a natural, simple next reply the student could send, in Brazilian "
        "Portuguese, with its English translation."
    )


def _chat_correction(p: Mapping[str, Any]) -> str:
    return (
        "You are a Brazilian Portuguese teacher. Check the student's message for grammar "
        "or vocabulary mistakes.\n\n"
        f'Student message: "{p["text"]}"\n\n'
        "If it is already correct and natural, set needs_correction to false. Otherwise set "
        "it to true and give the corrected Portuguese sentence and its English translation."
    )


def _chat_translation(p: Mapping[str, Any]) -> str:
    return (
        "Translate this Brazilian Portuguese text into natural English. Reply with the "
        f'translation only.\n\n"{p["text"]}"'
    )


_KINDS: dict[ContentKind, _KindConfig] = {
    ContentKind.CONJUGATIONS: _KindConfig(_conjugations, "json", ConjugationData, 0.2),
    ContentKind.EXAMPLES: _KindConfig(_examples, "json", list[Example], 0.7),
    ContentKind.GENERAL_EXAMPLES: _KindConfig(_general_examples, "json", list[Example], 0.7),
    ContentKind.VOCABULARY: _KindConfig(_vocabulary, "json", list[VocabularyItem], 0.6),
    ContentKind.SCENE: _KindConfig(_scene, "json", FunctionalScene, 0.8),
    ContentKind.SPEECH: _KindConfig(_speech, "speech"),
    ContentKind.VERB_VALIDATION: _KindConfig(_verb_validation, "json", VerbValidation, 0.0),
    ContentKind.FUNCTIONAL_DOMAIN: _KindConfig(_functional_domain, "json", FunctionalDomain, 0.5),
    ContentKind.GRAMMAR_EXAMPLES: _KindConfig(_grammar_examples, "json", list[Example], 0.8),
    ContentKind.GRAMMAR_PARAGRAPH: _KindConfig(_grammar_paragraph, "json", GrammarParagraph, 0.7),
    ContentKind.GRAMMAR_THEORY: _KindConfig(_grammar_theory, "json", GrammarTheory, 0.3),
    ContentKind.WRITTEN_DRILLS: _KindConfig(_written_drills, "json", list[WrittenDrill], 0.7),
    ContentKind.PRONUNCIATION_FEEDBACK: _KindConfig(_pronunciation_feedback, "text", None, 0.4),
    ContentKind.CHAT_OPENING: _KindConfig(_chat_opening, "json", TutorLine, 0.9),
    ContentKind.CHAT_SUGGESTION: _KindConfig(_chat_suggestion, "json", TutorLine, 0.7),
    ContentKind.CHAT_CORRECTION: _KindConfig(_chat_correction, "json", CorrectionCheck, 0.2),
    ContentKind.CHAT_TRANSLATION: _KindConfig(_chat_translation, "text", None, 0.2),
}

_adapters: dict[ContentKind, TypeAdapter[Any]] = {
    kind: TypeAdapter(entry.response_type)
    for kind, entry in _KINDS.items()
    if entry.response_type is not None
}


def build_request(
    kind: ContentKind,
    params: Mapping[str, Any],
    exclude: Collection[str] | None = None,
) -> GenerationRequest:
    """Build the request for ``kind``.

    Raises:
        KeyError: A parameter the kind needs is missing.
    """
    entry = _KINDS[kind]
    prompt = entry.build(params)
    if exclude and entry.output != "speech":
        prompt += exclusion_clause(exclude)

    return GenerationRequest(
        kind=kind,
        prompt=prompt,
        output=entry.output,
        response_type=entry.response_type,
        schema=_adapters.get(kind),
        temperature=entry.temperature,
    )


def tutor_system_prompt(topic: str) -> str:
    """System instruction for the streamed tutor reply."""
    return (
        "You are a friendly Brazilian Portuguese conversation partner helping a learner "
        f'practise. The conversation topic is "{topic}". Reply only in Brazilian Portuguese, '
        "with one to three short, natural sentences, and keep the conversation going with a "
        "question when it fits. Never include English or translations in your reply."
    )
