"""Chat tutor API endpoints with streaming support."""

from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from fala.api.deps import Tutor
from fala.api.schemas import (
    ChatMessageRequest,
    ChatSessionResponse,
    ChatStartRequest,
    SuggestionResponse,
)
from fala.core.logging import get_logger
from fala.services.chat import ChatSession, TurnStream

logger = get_logger(__name__)
router = APIRouter(prefix="/chat", tags=["Chat"])


class TurnStreamingResponse(StreamingResponse):
    """SSE response that always closes its turn stream.

    Starlette never touches the body iterator when the client disconnects
    before the first frame, which would leave the session claimed.
    """

    def __init__(self, stream: TurnStream, **kwargs: Any) -> None:
        super().__init__(stream, **kwargs)
        self.turn_stream = stream

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.turn_stream.aclose()


def _session_response(session: ChatSession) -> ChatSessionResponse:
    return ChatSessionResponse(
        id=session.id,
        topic=session.topic,
        created_at=session.created_at,
        streaming=session.streaming,
        messages=session.messages,
    )


@router.post(
    "/sessions",
    response_model=ChatSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a tutor conversation",
)
async def start_chat(request: ChatStartRequest, tutor: Tutor) -> ChatSessionResponse:
    """Opens a conversation on `topic` with a generated first tutor line."""
    return _session_response(await tutor.start_chat(request.topic))


@router.get(
    "/sessions/{session_id}",
    response_model=ChatSessionResponse,
    summary="Get a tutor conversation",
    responses={404: {"description": "Session not found"}},
)
async def get_session(session_id: str, tutor: Tutor) -> ChatSessionResponse:
    return _session_response(tutor.get_session(session_id))


@router.post(
    "/sessions/{session_id}/messages",
    summary="Send a message and receive the streamed reply",
    responses={
        200: {
            "description": "Server-Sent Events stream",
            "content": {"text/event-stream": {}},
        },
        404: {"description": "Session not found"},
        409: {"description": "A reply is already streaming for this session"},
    },
)
async def send_message(session_id: str, request: ChatMessageRequest, tutor: Tutor) -> TurnStreamingResponse:
    """
    Send a learner message and receive the tutor's reply as SSE.

    **SSE Event Types (in order):**
    - `correction`: The learner's sentence corrected, or null
    - `chunk`: Reply text; `first` marks the chunk that starts the message
    - `translation`: English translation of the whole reply
    - `done`: Final tutor message and the (possibly corrected) learner message
    - `error`: The reply failed; the learner message was dropped and
      `retry_text` holds it for resubmission
    """
    # Claimed before streaming starts so a busy session answers 409
    turn = tutor.begin_turn(session_id, request.text)

    return TurnStreamingResponse(
        tutor.stream_sse(turn),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.post(
    "/sessions/{session_id}/suggestion",
    response_model=SuggestionResponse,
    summary="Suggest the learner's next reply",
    responses={404: {"description": "Session not found"}},
)
async def suggest_reply(session_id: str, tutor: Tutor) -> SuggestionResponse:
    line = await tutor.suggest_reply(session_id)
    return SuggestionResponse(portuguese=line.portuguese, english=line.english)
