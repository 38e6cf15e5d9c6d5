"""API endpoints for the chat service."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Response

from chatloop import __version__
from chatloop.exceptions import ChatLoopError, ModelUnavailable, SessionBusy
from chatloop.models.conversation import (
    ConversationRequest,
    ConversationResponse,
    HealthResponse,
    HistoryResponse,
)
from chatloop.services.conversation import ConversationService, get_conversation_service
from chatloop.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


def conversation_service() -> ConversationService:
    """Resolve the shared service, reporting missing configuration as 503."""
    try:
        return get_conversation_service()
    except ValueError as e:
        logger.error(f"Conversation service is not configured: {e}")
        raise HTTPException(status_code=503, detail=f"Service not configured: {e}") from e


@router.post("/conversation", response_model=ConversationResponse, tags=["Conversation"])
async def handle_conversation(
    request: ConversationRequest,
    service: ConversationService = Depends(conversation_service),
) -> ConversationResponse:
    """Run one turn and return the model's final answer."""
    if request.session_id and not service.has_session(request.session_id):
        logger.warning(f"Invalid session ID provided: {request.session_id}")
        raise HTTPException(status_code=400, detail=f"Invalid session ID: {request.session_id}")

    try:
        result = await service.process_message(request.message, request.session_id)
    except ValueError as e:
        logger.warning(f"Message validation error: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    except SessionBusy as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ModelUnavailable as e:
        logger.error(f"Model unavailable: {e}")
        raise HTTPException(status_code=503, detail=str(e)) from e
    except ChatLoopError as e:
        logger.error(f"Turn failed: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=str(e)) from e

    logger.info(f"Generated response for session {result.session_id}: {result.answer[:50]}...")
    return ConversationResponse(response=result.answer, session_id=result.session_id, rounds=result.rounds)


@router.get("/conversation/{session_id}", response_model=HistoryResponse, tags=["Conversation"])
async def get_history(
    session_id: str,
    service: ConversationService = Depends(conversation_service),
) -> HistoryResponse:
    """Return the stored history of a session."""
    if not service.has_session(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown session ID: {session_id}")
    return HistoryResponse(session_id=session_id, messages=list(service.history(session_id)))


@router.delete("/conversation/{session_id}", status_code=204, tags=["Conversation"])
async def delete_conversation(
    session_id: str,
    service: ConversationService = Depends(conversation_service),
) -> Response:
    """Forget a session."""
    if not service.reset(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown session ID: {session_id}")
    return Response(status_code=204)


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
