"""Visitor-facing entry points of the knowledge assistant."""

from typing import Callable

from app.core.evaluation_runner import schedule_evaluation
from app.core.logging import get_logger
from app.core.schemas_assistant import AskResponse, FeedbackRating, FeedbackResponse
from app.db.conversations import require_turn
from app.db.feedback import create_feedback
from app.graphs.ask_graph import run_ask_pipeline

logger = get_logger(__name__)


async def ask_question(
    question: str,
    session_id: str,
    schedule: Callable[[str, str], object] | None = None,
) -> AskResponse:
    """
    Answer a question and queue its evaluation without waiting for it.

    Args:
        question: Visitor question
        session_id: Visitor session the turn belongs to
        schedule: Callable receiving the new turn id and the context the
            answer was generated from; defaults to a detached asyncio task

    Returns:
        AskResponse. A gate rejection carries the redirect message and no turn id.

    Raises:
        Exception: If the turn cannot be written to the conversation store
    """
    state = await run_ask_pipeline(question, session_id)

    if not state.accepted:
        return AskResponse(answer=state.answer, turn_id=None, accepted=False)

    (schedule or schedule_evaluation)(state.turn_id, state.context)
    return AskResponse(answer=state.answer, turn_id=state.turn_id, accepted=True)


def submit_feedback(turn_id: str, rating: FeedbackRating, comment: str | None = None) -> FeedbackResponse:
    """
    Record a visitor's verdict on a turn.

    Raises:
        TurnNotFoundError: If the turn does not exist
    """
    turn = require_turn(turn_id)
    cleaned = comment.strip() if comment else None
    row = create_feedback(turn_id, turn["session_id"], rating, cleaned or None)
    logger.info(f"Feedback {FeedbackRating(rating).value} recorded for turn {turn_id}")
    return FeedbackResponse(**row)
