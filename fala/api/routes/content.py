"""Content API endpoints: conjugations, examples, vocabulary, scenes, speech."""

from fastapi import APIRouter

from fala.api.deps import Caches, Content
from fala.api.schemas import (
    CacheStats,
    ClearCacheResponse,
    ConjugationResponse,
    DomainRequest,
    DrillStepRequest,
    ExamplesRequest,
    ExamplesResponse,
    GrammarExamplesRequest,
    GrammarParagraphRequest,
    GrammarTheoryRequest,
    PronunciationRequest,
    PronunciationResponse,
    SceneRequest,
    SpeechRequest,
    SpeechResponse,
    VerbSelectRequest,
    VerbValidateRequest,
    VocabularyRequest,
    VocabularyResponse,
    WrittenDrillsRequest,
    WrittenDrillsResponse,
)
from fala.core.exceptions import NotFoundError, ValidationError
from fala.core.logging import get_logger
from fala.services.models import (
    FunctionalDomain,
    FunctionalScene,
    GrammarParagraph,
    GrammarTheory,
    VerbValidation,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/content", tags=["Content"])

_GENERATION_ERRORS = {
    429: {"description": "Content service quota exceeded"},
    502: {"description": "Content generation failed"},
    504: {"description": "Content generation timed out"},
}


# ============================================================
# Verbs
# ============================================================

@router.get(
    "/conjugations/{verb}",
    response_model=ConjugationResponse,
    summary="Get a verb's conjugation table",
    responses=_GENERATION_ERRORS,
)
async def get_conjugations(verb: str, content: Content) -> ConjugationResponse:
    """Served from the cache after the first request for ``verb``."""
    return ConjugationResponse(verb=verb, conjugations=await content.get_conjugations(verb))


@router.post(
    "/verbs/select",
    response_model=ConjugationResponse,
    summary="Select a verb from the list",
    responses=_GENERATION_ERRORS,
)
async def select_verb(request: VerbSelectRequest, content: Content) -> ConjugationResponse:
    """
    Get conjugations for the selected verb.

    The next verbs in `verbs` are warmed in the background so moving down the
    list is instant.
    """
    conjugations = await content.select_verb(request.verbs, request.verb)
    return ConjugationResponse(verb=request.verb, conjugations=conjugations)


@router.post(
    "/verbs/validate",
    response_model=VerbValidation,
    summary="Check a learner-added verb",
)
async def validate_verb(request: VerbValidateRequest, content: Content) -> VerbValidation:
    return await content.validate_verb(request.verb)


# ============================================================
# Sentences & vocabulary
# ============================================================

@router.post(
    "/examples",
    response_model=ExamplesResponse,
    summary="Get example sentences for a verb",
    responses=_GENERATION_ERRORS,
)
async def get_examples(request: ExamplesRequest, content: Content) -> ExamplesResponse:
    """
    Example sentences for one conjugated form, or general examples when
    `form` is omitted.

    Passing `existing` asks for a fresh batch that avoids those sentences;
    such batches are never cached.
    """
    if request.form:
        examples = await content.get_examples(request.verb, request.form, request.existing)
    else:
        examples = await content.get_general_examples(request.verb, request.existing)
    return ExamplesResponse(examples=examples)


@router.post(
    "/vocabulary",
    response_model=VocabularyResponse,
    summary="Get a vocabulary set for a category",
    responses=_GENERATION_ERRORS,
)
async def get_vocabulary(request: VocabularyRequest, content: Content) -> VocabularyResponse:
    items = await content.get_vocabulary(request.category, request.existing_words, request.exclude)
    return VocabularyResponse(category=request.category, items=items)


@router.post(
    "/grammar/examples",
    response_model=ExamplesResponse,
    summary="Generate grammar practice sentences",
    responses=_GENERATION_ERRORS,
)
async def get_grammar_examples(request: GrammarExamplesRequest, content: Content) -> ExamplesResponse:
    examples = await content.get_grammar_examples(request.topic, request.count, request.existing)
    return ExamplesResponse(examples=examples)


@router.post(
    "/grammar/paragraph",
    response_model=GrammarParagraph,
    summary="Generate a themed paragraph for a grammar point",
    responses=_GENERATION_ERRORS,
)
async def get_grammar_paragraph(request: GrammarParagraphRequest, content: Content) -> GrammarParagraph:
    return await content.get_grammar_paragraph(request.topic, request.theme)


@router.post(
    "/grammar/theory",
    response_model=GrammarTheory,
    summary="Explain a grammar topic",
    responses=_GENERATION_ERRORS,
)
async def get_grammar_theory(request: GrammarTheoryRequest, content: Content) -> GrammarTheory:
    return await content.get_grammar_theory(request.topic)


@router.post(
    "/grammar/drills",
    response_model=WrittenDrillsResponse,
    summary="Generate fill-in-the-blank exercises",
    responses=_GENERATION_ERRORS,
)
async def get_written_drills(request: WrittenDrillsRequest, content: Content) -> WrittenDrillsResponse:
    """Each sentence has exactly one `___` blank."""
    drills = await content.get_written_drills(request.topic, request.count)
    return WrittenDrillsResponse(drills=drills)


# ============================================================
# Functional language
# ============================================================

@router.post(
    "/scenes",
    response_model=FunctionalScene,
    summary="Get a conversation scene",
    responses=_GENERATION_ERRORS,
)
async def get_scene(request: SceneRequest, content: Content) -> FunctionalScene:
    """Use domain `Custom` with a free-form `function` for learner-described situations."""
    return await content.get_scene(
        request.domain,
        request.subtopic,
        request.function,
        request.existing_scene,
    )


@router.post(
    "/domains",
    response_model=FunctionalDomain,
    summary="Build a learning module from a topic",
    responses=_GENERATION_ERRORS,
)
async def generate_domain(request: DomainRequest, content: Content) -> FunctionalDomain:
    return await content.generate_functional_domain(request.topic)


# ============================================================
# Speech
# ============================================================

@router.post(
    "/speech",
    response_model=SpeechResponse,
    summary="Synthesize a sentence",
    responses=_GENERATION_ERRORS,
)
async def get_speech(request: SpeechRequest, content: Content) -> SpeechResponse:
    return SpeechResponse(text=request.text, audio=await content.get_speech(request.text))


@router.post(
    "/speech/drill",
    response_model=SpeechResponse,
    summary="Audio for the current drill sentence",
    responses=_GENERATION_ERRORS,
)
async def drill_step(request: DrillStepRequest, content: Content) -> SpeechResponse:
    """Returns audio for `sentences[index]` and warms the next sentence."""
    if request.index >= len(request.sentences):
        raise ValidationError(
            "Drill index out of range",
            {"index": request.index, "sentences": len(request.sentences)},
        )
    text = request.sentences[request.index]
    return SpeechResponse(text=text, audio=await content.drill_step(request.sentences, request.index))


@router.post(
    "/pronunciation",
    response_model=PronunciationResponse,
    summary="Feedback on a spoken attempt",
    responses=_GENERATION_ERRORS,
)
async def get_pronunciation_feedback(request: PronunciationRequest, content: Content) -> PronunciationResponse:
    feedback = await content.get_pronunciation_feedback(request.original, request.attempt)
    return PronunciationResponse(feedback=feedback)


# ============================================================
# Cache administration
# ============================================================

@router.get(
    "/cache",
    response_model=dict[str, CacheStats],
    summary="Cache namespace sizes",
)
async def get_cache_stats(caches: Caches) -> dict[str, CacheStats]:
    return {name: CacheStats(**stats) for name, stats in caches.stats().items()}


@router.delete(
    "/cache/{namespace}",
    response_model=ClearCacheResponse,
    summary="Clear one cache namespace",
    responses={404: {"description": "Unknown namespace"}},
)
async def clear_cache(namespace: str, caches: Caches) -> ClearCacheResponse:
    cache = caches.by_namespace(namespace)
    if cache is None:
        raise NotFoundError("Cache namespace")

    cleared = len(cache)
    await cache.clear()
    logger.info("Cache namespace cleared", namespace=namespace, cleared=cleared)
    return ClearCacheResponse(namespace=namespace, cleared=cleared)
