"""Chat Tutor Service - Streamed, multi-phase tutor replies.

A reply to a learner message arrives in three ordered phases:
- correction: the learner's sentence corrected (or null when it was fine)
- chunks: the tutor's Portuguese reply, streamed as it is generated
- translation: the English translation of the full reply

``ReplySequencer`` enforces that order and forwards each phase to a
``RenderSink``. ``ChatTutor`` owns the in-memory conversations and produces
the phases through the generation gateway.

Uses Server-Sent Events (SSE) for real-time streaming.
"""

import asyncio
import time
import uuid
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

import orjson

from fala.core.exceptions import GenerationError, GenerationErrorKind, NotFoundError, StreamBusyError, StreamFailure
from fala.core.logging import get_logger, log_context
from fala.services.gateway import GenerationGateway
from fala.services.models import ChatMessage, Correction, CorrectionCheck, TutorLine
from fala.services.prompts import ContentKind, tutor_system_prompt

logger = get_logger(__name__)

TRANSLATION_PLACEHOLDER = "(Translating...)"
STREAM_ERROR_MESSAGE = "An error occurred during the conversation. Please try sending your message again."


def sse_event(event_type: str, data: dict[str, Any]) -> str:
    """Format a Server-Sent Event."""
    return f"event: {event_type}\ndata: {orjson.dumps(data).decode()}\n\n"


# ============================================================
# Reply protocol
# ============================================================

class ReplyState(str, Enum):
    AWAITING_FIRST_EVENT = "awaiting_first_event"
    CORRECTION_KNOWN = "correction_known"
    RECEIVING_CHUNKS = "receiving_chunks"
    TRANSLATED = "translated"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class CorrectionEvent:
    correction: Correction | None


@dataclass(frozen=True)
class ChunkEvent:
    text: str


@dataclass(frozen=True)
class TranslationEvent:
    english: str


ReplyEvent = CorrectionEvent | ChunkEvent | TranslationEvent


@dataclass
class StreamedReply:
    """A tutor answer as it is assembled."""

    correction: Correction | None = None
    text: str = ""
    translation: str = TRANSLATION_PLACEHOLDER
    chunks: int = 0
    state: ReplyState = ReplyState.AWAITING_FIRST_EVENT


class RenderSink(Protocol):
    """Consumer of reply phases, called in protocol order."""

    def on_correction(self, correction: Correction | None) -> None: ...

    def on_chunk(self, text: str) -> None: ...

    def on_translation(self, english: str) -> None: ...

    def on_stream_error(self, error: StreamFailure) -> None: ...


class ReplySequencer:
    """State machine for one outstanding learner message."""

    def __init__(self) -> None:
        self._reply = StreamedReply()

    @property
    def state(self) -> ReplyState:
        return self._reply.state

    def _violation(self, event: ReplyEvent) -> StreamFailure:
        return StreamFailure(
            f"Unexpected {type(event).__name__} in state {self._reply.state.value}"
        )

    def _apply(self, event: ReplyEvent, sink: RenderSink) -> None:
        reply = self._reply

        if isinstance(event, CorrectionEvent):
            if reply.state is not ReplyState.AWAITING_FIRST_EVENT:
                raise self._violation(event)
            reply.correction = event.correction
            reply.state = ReplyState.CORRECTION_KNOWN
            sink.on_correction(event.correction)

        elif isinstance(event, ChunkEvent):
            if reply.state not in (ReplyState.CORRECTION_KNOWN, ReplyState.RECEIVING_CHUNKS):
                raise self._violation(event)
            reply.text += event.text
            reply.chunks += 1
            reply.state = ReplyState.RECEIVING_CHUNKS
            sink.on_chunk(event.text)

        elif isinstance(event, TranslationEvent):
            if reply.state is not ReplyState.RECEIVING_CHUNKS:
                raise self._violation(event)
            reply.translation = event.english
            reply.state = ReplyState.TRANSLATED
            sink.on_translation(event.english)

        else:
            raise StreamFailure(f"Unknown reply event {event!r}")

    async def run(self, events: AsyncIterator[ReplyEvent], sink: RenderSink) -> StreamedReply | None:
        """Drive ``events`` into ``sink``.

        Returns the finished reply, or None after reporting a failure to
        ``sink.on_stream_error``.
        """
        try:
            async with aclosing(events) as stream:
                async for event in stream:
                    self._apply(event, sink)

            if self._reply.state is not ReplyState.TRANSLATED:
                raise StreamFailure(
                    f"Reply stream ended in state {self._reply.state.value}"
                )
        except Exception as e:
            failure = e if isinstance(e, StreamFailure) else StreamFailure(STREAM_ERROR_MESSAGE, cause=e)
            logger.warning(
                "Reply stream failed",
                state=self._reply.state.value,
                error=str(e),
                classification=failure.details.get("classification"),
            )
            self._reply = StreamedReply(state=ReplyState.FAILED)
            sink.on_stream_error(failure)
            return None

        self._reply.state = ReplyState.DONE
        reply, self._reply = self._reply, StreamedReply(state=ReplyState.DONE)
        return reply


class SSERenderSink:
    """Turns sink callbacks into SSE frames on a queue.

    ``frames()`` yields until ``close()`` is called.
    """

    def __init__(self, retry_text: str | None = None) -> None:
        self.retry_text = retry_text
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._chunks = 0

    def on_correction(self, correction: Correction | None) -> None:
        self._queue.put_nowait(sse_event("correction", {
            "correction": correction.model_dump() if correction else None,
        }))

    def on_chunk(self, text: str) -> None:
        # First chunk creates the tutor message, the rest append to it
        self._queue.put_nowait(sse_event("chunk", {"content": text, "first": self._chunks == 0}))
        self._chunks += 1

    def on_translation(self, english: str) -> None:
        self._queue.put_nowait(sse_event("translation", {"english": english}))

    def on_stream_error(self, error: StreamFailure) -> None:
        self._queue.put_nowait(sse_event("error", {
            "message": error.message,
            "classification": error.details.get("classification"),
            "retry_text": self.retry_text,
        }))

    def on_done(self, message: ChatMessage, user_message: ChatMessage) -> None:
        self._queue.put_nowait(sse_event("done", {
            "message": message.model_dump(),
            "user_message": user_message.model_dump(),
        }))

    def close(self) -> None:
        self._queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[str]:
        while (frame := await self._queue.get()) is not None:
            yield frame


# ============================================================
# Conversations
# ============================================================

@dataclass
class ChatSession:
    """One tutor conversation, kept in memory for the process lifetime."""

    topic: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    messages: list[ChatMessage] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    streaming: bool = False
    _next_id: int = 1

    def add(self, sender: str, portuguese: str, english: str = "") -> ChatMessage:
        message = ChatMessage(id=self._next_id, sender=sender, portuguese=portuguese, english=english)
        self._next_id += 1
        self.messages.append(message)
        return message

    def remove(self, message_id: int) -> None:
        self.messages = [m for m in self.messages if m.id != message_id]

    def model_messages(self) -> list[dict[str, str]]:
        """History in the provider-neutral role/content format."""
        return [
            {"role": "assistant" if m.sender == "ai" else "user", "content": m.portuguese}
            for m in self.messages
        ]

    def transcript(self) -> str:
        return "\n".join(
            f"{'Tutor' if m.sender == 'ai' else 'Student'}: {m.portuguese}"
            for m in self.messages
        )


@dataclass
class ChatTurn:
    """A learner message accepted for a reply.

    The session stays claimed until the reply finishes, fails, or the turn
    is released without ever having started.
    """

    session: ChatSession
    user_message: ChatMessage
    started: bool = False
    released: bool = False

    def release(self) -> None:
        """Give back the claim of a turn whose reply never started."""
        if self.started or self.released:
            return
        self.released = True
        self.session.streaming = False
        self.session.remove(self.user_message.id)
        logger.info("Chat turn released before streaming", session_id=self.session.id)


class TurnStream:
    """The SSE frames of one turn.

    Closing the stream releases the turn, so a response torn down before
    its first frame never leaves the session busy.
    """

    def __init__(self, turn: ChatTurn, frames: AsyncGenerator[str, None]) -> None:
        self.turn = turn
        self._frames = frames

    def __aiter__(self) -> "TurnStream":
        return self

    async def __anext__(self) -> str:
        return await self._frames.__anext__()

    async def aclose(self) -> None:
        self.turn.release()
        await self._frames.aclose()


class ChatTutor:
    """Runs tutor conversations through the generation gateway."""

    def __init__(self, gateway: GenerationGateway) -> None:
        self.gateway = gateway
        self._sessions: dict[str, ChatSession] = {}

    def get_session(self, session_id: str) -> ChatSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError("Chat session")
        return session

    async def start_chat(self, topic: str) -> ChatSession:
        """Open a conversation with a generated first tutor line."""
        opening: TutorLine = await self.gateway.fetch(ContentKind.CHAT_OPENING, {"topic": topic})

        session = ChatSession(topic=topic)
        session.add("ai", opening.portuguese, opening.english)
        self._sessions[session.id] = session

        logger.info("Chat started", session_id=session.id, topic=topic)
        return session

    def begin_turn(self, session_id: str, text: str) -> ChatTurn:
        """Accept a learner message, or refuse while a reply is streaming.

        Synchronous so the busy check and the claim cannot interleave.

        Raises:
            NotFoundError: Unknown session.
            StreamBusyError: A reply is already being generated.
        """
        session = self.get_session(session_id)
        if session.streaming:
            raise StreamBusyError(session_id)

        session.streaming = True
        return ChatTurn(session=session, user_message=session.add("user", text))

    async def complete_turn(self, turn: ChatTurn, sink: RenderSink) -> StreamedReply | None:
        """Stream the tutor's reply to ``turn`` into ``sink``.

        On failure the learner's message is removed so it can be resent.
        """
        if turn.released:
            return None
        turn.started = True
        session, user_message = turn.session, turn.user_message
        start_time = time.monotonic()
        reply: StreamedReply | None = None

        try:
            with log_context(session_id=session.id):
                reply = await ReplySequencer().run(self._reply_events(session, user_message), sink)
        finally:
            session.streaming = False
            if reply is None:
                session.remove(user_message.id)

        if reply is None:
            return None

        user_message.correction = reply.correction
        session.add("ai", reply.text, reply.translation)

        logger.info(
            "Chat reply completed",
            session_id=session.id,
            chunks=reply.chunks,
            corrected=reply.correction is not None,
            duration_ms=round((time.monotonic() - start_time) * 1000, 2),
        )
        return reply

    async def send_message(self, session_id: str, text: str, sink: RenderSink) -> StreamedReply | None:
        return await self.complete_turn(self.begin_turn(session_id, text), sink)

    def stream_sse(self, turn: ChatTurn) -> TurnStream:
        """
        Run a turn and stream its SSE frames.

        Yields SSE formatted events:
        - event: correction  -> { correction: {portuguese, english} | null }
        - event: chunk       -> { content, first }
        - event: translation -> { english }
        - event: done        -> { message, user_message }
        - event: error       -> { message, classification, retry_text }
        """
        return TurnStream(turn, self._sse_frames(turn))

    async def _sse_frames(self, turn: ChatTurn) -> AsyncGenerator[str, None]:
        sink = SSERenderSink(retry_text=turn.user_message.portuguese)

        async def _produce() -> None:
            try:
                reply = await self.complete_turn(turn, sink)
                if reply is not None:
                    sink.on_done(turn.session.messages[-1], turn.user_message)
            finally:
                sink.close()

        task = asyncio.create_task(_produce(), name=f"chat-turn:{turn.session.id}")
        try:
            async for frame in sink.frames():
                yield frame
        finally:
            try:
                # Client went away mid-stream
                if not task.done():
                    task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            finally:
                # No-op unless the producer was cancelled before it ever ran
                turn.release()

    async def suggest_reply(self, session_id: str) -> TutorLine:
        session = self.get_session(session_id)
        return await self.gateway.fetch(
            ContentKind.CHAT_SUGGESTION,
            {"transcript": session.transcript()},
        )

    async def _reply_events(self, session: ChatSession, user_message: ChatMessage) -> AsyncIterator[ReplyEvent]:
        check: CorrectionCheck = await self.gateway.fetch(
            ContentKind.CHAT_CORRECTION,
            {"text": user_message.portuguese},
        )
        yield CorrectionEvent(check.to_correction())

        parts: list[str] = []
        async for text in self.gateway.stream_text(
            session.model_messages(),
            system_prompt=tutor_system_prompt(session.topic),
        ):
            parts.append(text)
            yield ChunkEvent(text)

        full_reply = "".join(parts).strip()
        if not full_reply:
            raise GenerationError(GenerationErrorKind.UNCLASSIFIED, "The tutor returned an empty reply.")

        english = await self.gateway.fetch(ContentKind.CHAT_TRANSLATION, {"text": full_reply})
        yield TranslationEvent(english)
