"""Visitor-facing chat endpoints."""

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query

from app.core.logging import get_logger
from app.core.schemas_assistant import (
    AskRequest,
    AskResponse,
    ConversationTurnResponse,
    FeedbackRequest,
    FeedbackResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

UNAVAILABLE_MESSAGE = (
    "Sorry, I couldn't save our conversation just now. Please try again in a moment."
)


@router.post("/ask", response_model=AskResponse)
async def ask_endpoint(request: AskRequest, background_tasks: BackgroundTasks):
    """Answer a question; its evaluation runs after the response is sent."""
    from app.core.assistant import ask_question
    from app.core.evaluation_runner import evaluate_turn_with_retry

    def schedule(turn_id: str, context: str) -> None:
        background_tasks.add_task(evaluate_turn_with_retry, turn_id, context)

    try:
        return await ask_question(request.question, request.session_id, schedule=schedule)
    except Exception as e:
        logger.error(f"Failed to answer question for session {request.session_id}: {e}")
        raise HTTPException(status_code=503, detail=UNAVAILABLE_MESSAGE) from e


@router.get("/sessions/{session_id}/turns", response_model=list[ConversationTurnResponse])
async def list_session_turns_endpoint(
    session_id: str,
    limit: int | None = Query(None, ge=1, le=200),
):
    """Turns of one session, oldest first."""
    from app.db.conversations import list_session_turns

    return [ConversationTurnResponse(**t) for t in list_session_turns(session_id, limit=limit)]


@router.post("/feedback", response_model=FeedbackResponse)
async def feedback_endpoint(request: FeedbackRequest):
    """Record approve/disapprove feedback on a turn."""
    from app.core.assistant import submit_feedback
    from app.db.conversations import TurnNotFoundError

    try:
        return submit_feedback(request.turn_id, request.rating, request.comment)
    except TurnNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Failed to store feedback for turn {request.turn_id}: {e}")
        raise HTTPException(status_code=503, detail=UNAVAILABLE_MESSAGE) from e
