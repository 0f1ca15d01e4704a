"""Generated content value types.

These double as response schemas for structured generation and as the
shapes stored in the content caches.
"""

from typing import Literal

from pydantic import BaseModel, Field


class ConjugationForms(BaseModel):
    """Forms for eu, você/ele/ela, nós and vocês/eles/elas."""

    eu: str
    voce: str
    nos: str
    voces: str


class ConjugationData(BaseModel):
    """Main indicative and subjunctive tenses of one verb."""

    presente: ConjugationForms
    preterito_perfeito: ConjugationForms
    preterito_imperfeito: ConjugationForms
    preterito_perfeito_composto: ConjugationForms
    futuro_do_presente: ConjugationForms
    futuro_do_preterito: ConjugationForms
    presente_do_subjuntivo: ConjugationForms
    imperfeito_do_subjuntivo: ConjugationForms


class Example(BaseModel):
    portuguese: str
    english: str


class GrammarParagraph(BaseModel):
    """A short themed paragraph showcasing one grammar point."""

    portuguese_paragraph: str
    english_translation: str
    highlighted_words: list[str] = Field(
        description="Words or short phrases in the paragraph that use the grammar point"
    )


class GrammarTheoryExample(BaseModel):
    portuguese: str
    english: str
    explanation: str | None = None


class GrammarTheory(BaseModel):
    topic: str
    explanation: str
    examples: list[GrammarTheoryExample]


class WrittenDrill(BaseModel):
    """A fill-in-the-blank exercise; the blank is exactly ``___``."""

    sentence_with_blank: str
    correct_answer: str
    english_hint: str


class VocabularyItem(BaseModel):
    portuguese_word: str
    english_translation: str
    word_type: str = Field(description='e.g. "noun (masculine)", "verb", "adjective"')
    example_sentence: str
    example_translation: str


class FunctionalPhrase(BaseModel):
    portuguese: str
    english: str
    speaker: str | None = None


class FunctionalScene(BaseModel):
    scene_title: str
    scene_description: str
    phrases: list[FunctionalPhrase]


class FunctionalSubtopic(BaseModel):
    name: str
    functions: list[str]


class FunctionalDomain(BaseModel):
    """A learner-defined topic broken into subtopics and communicative functions."""

    name: str
    emoji: str
    subtopics: list[FunctionalSubtopic]


class VerbValidation(BaseModel):
    is_valid: bool
    reason: str | None = None


class Correction(BaseModel):
    """Corrected form of a learner's message with its English meaning."""

    portuguese: str
    english: str


class CorrectionCheck(BaseModel):
    """Raw correction verdict returned by the model."""

    needs_correction: bool
    corrected_portuguese: str | None = None
    english_translation: str | None = None

    def to_correction(self) -> Correction | None:
        if not self.needs_correction or not self.corrected_portuguese:
            return None
        return Correction(
            portuguese=self.corrected_portuguese,
            english=self.english_translation or "",
        )


class TutorLine(BaseModel):
    """A complete tutor utterance (opening line or suggested reply)."""

    portuguese: str
    english: str


class ChatMessage(BaseModel):
    id: int
    sender: Literal["user", "ai"]
    portuguese: str
    english: str = ""
    correction: Correction | None = None
