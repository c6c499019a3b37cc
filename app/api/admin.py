"""Administrative endpoints: corpus intake, evaluations, feedback, insights and the instruction."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from app.core.auth_middleware import require_admin
from app.core.logging import get_logger
from app.core.schemas_assistant import (
    ApproveSuggestionRequest,
    BatchEvaluationSummary,
    DeduplicationSummary,
    DocumentCreate,
    EvaluationStats,
    ExtractionSummary,
    FeedbackResponse,
    InsightResponse,
    InsightStats,
    InsightToggleRequest,
    InstructionStatus,
    InstructionSuggestion,
    InstructionTextRequest,
    TrainingPairCreate,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# =============================================================================
# Knowledge corpus
# =============================================================================


@router.post("/knowledge/documents", status_code=201)
async def create_document_endpoint(request: DocumentCreate) -> dict[str, Any]:
    """Store a document produced by the ingestion collaborator."""
    from app.db.documents import create_document

    return create_document(request.source_name, request.content)


@router.post("/knowledge/training-pairs", status_code=201)
async def create_training_pair_endpoint(request: TrainingPairCreate) -> dict[str, Any]:
    """Store an operator-authored question/answer pair."""
    from app.db.documents import create_training_pair

    return create_training_pair(request.question, request.answer, request.category)


# =============================================================================
# Evaluations
# =============================================================================


@router.get("/evaluations")
async def list_evaluations_endpoint(limit: int = Query(50, ge=1, le=200)) -> list[dict[str, Any]]:
    """Most recent evaluations."""
    from app.db.evaluations import list_evaluations

    return list_evaluations(limit=limit)


@router.get("/evaluations/stats", response_model=EvaluationStats)
async def evaluation_stats_endpoint():
    """Counts, per-criterion means and trailing-window means."""
    from app.db.evaluations import get_evaluation_stats

    return get_evaluation_stats()


@router.get("/evaluations/failures")
async def list_evaluation_failures_endpoint(
    limit: int = Query(50, ge=1, le=200),
) -> list[dict[str, Any]]:
    """Turns whose evaluation was abandoned after every retry."""
    from app.db.evaluations import list_evaluation_failures

    return list_evaluation_failures(limit=limit)


@router.get("/turns/{turn_id}/evaluations")
async def list_turn_evaluations_endpoint(turn_id: str) -> list[dict[str, Any]]:
    """Every evaluation recorded for one turn."""
    from app.db.conversations import get_turn
    from app.db.evaluations import list_evaluations_for_turn

    if not get_turn(turn_id):
        raise HTTPException(status_code=404, detail="Conversation turn not found")
    return list_evaluations_for_turn(turn_id)


@router.post("/turns/{turn_id}/evaluate")
async def evaluate_turn_endpoint(turn_id: str) -> dict[str, Any]:
    """Re-evaluate one turn now; each call stores a new evaluation row."""
    from app.core.evaluation_runner import evaluate_turn_with_retry
    from app.db.conversations import get_turn

    if not get_turn(turn_id):
        raise HTTPException(status_code=404, detail="Conversation turn not found")

    evaluation = await evaluate_turn_with_retry(turn_id)
    if evaluation is None:
        raise HTTPException(status_code=502, detail="Evaluation failed after every retry")
    return evaluation


@router.post("/evaluations/batch", response_model=BatchEvaluationSummary)
async def batch_evaluate_endpoint():
    """Evaluate every turn that has no evaluation yet."""
    from app.core.evaluation_runner import evaluate_unevaluated_turns

    try:
        return await evaluate_unevaluated_turns()
    except Exception as e:
        logger.error(f"Batch evaluation failed: {e}")
        raise HTTPException(status_code=500, detail=f"Batch evaluation failed: {e}") from e


# =============================================================================
# Feedback
# =============================================================================


@router.get("/feedback", response_model=list[FeedbackResponse])
async def list_feedback_endpoint(limit: int = Query(100, ge=1, le=500)):
    """Most recent visitor feedback."""
    from app.db.feedback import list_feedback

    return [FeedbackResponse(**row) for row in list_feedback(limit=limit)]


@router.get("/turns/{turn_id}/feedback", response_model=list[FeedbackResponse])
async def list_turn_feedback_endpoint(turn_id: str):
    """Feedback left on one turn, oldest first."""
    from app.db.conversations import get_turn
    from app.db.feedback import list_feedback_for_turn

    if not get_turn(turn_id):
        raise HTTPException(status_code=404, detail="Conversation turn not found")
    return [FeedbackResponse(**row) for row in list_feedback_for_turn(turn_id)]


# =============================================================================
# Insights
# =============================================================================


@router.get("/insights", response_model=list[InsightResponse])
async def list_insights_endpoint(active_only: bool = Query(False)):
    """Insights, highest importance first."""
    from app.db.insights import list_insights

    return [InsightResponse(**row) for row in list_insights(active_only=active_only)]


@router.get("/insights/stats", response_model=InsightStats)
async def insight_stats_endpoint():
    """Active insight counts by category."""
    from app.db.insights import get_insight_stats

    return get_insight_stats()


@router.patch("/insights/{insight_id}", response_model=InsightResponse)
async def toggle_insight_endpoint(insight_id: str, request: InsightToggleRequest):
    """Activate or retire an insight."""
    from app.db.insights import InsightNotFoundError, set_insight_active

    try:
        return InsightResponse(**set_insight_active(insight_id, request.is_active))
    except InsightNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.delete("/insights/{insight_id}", status_code=204)
async def delete_insight_endpoint(insight_id: str) -> Response:
    """Permanently delete an insight."""
    from app.db.insights import InsightNotFoundError, delete_insight

    try:
        delete_insight(insight_id)
    except InsightNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return Response(status_code=204)


@router.post("/insights/extract", response_model=ExtractionSummary)
async def run_extraction_endpoint():
    """Mine poor evaluations and commented disapprovals for new insights."""
    from app.core.learning_loop import run_extraction

    try:
        return await run_extraction()
    except Exception as e:
        logger.error(f"Insight extraction failed: {e}")
        raise HTTPException(status_code=500, detail=f"Insight extraction failed: {e}") from e


@router.post("/insights/deduplicate", response_model=DeduplicationSummary)
async def run_deduplication_endpoint():
    """Merge equivalent insights within each category."""
    from app.core.learning_loop import run_deduplication

    try:
        return await run_deduplication()
    except Exception as e:
        logger.error(f"Insight deduplication failed: {e}")
        raise HTTPException(status_code=500, detail=f"Insight deduplication failed: {e}") from e


# =============================================================================
# Instruction
# =============================================================================


@router.get("/instruction", response_model=InstructionStatus)
async def get_instruction_endpoint():
    """Live instruction, whether it is an override, and the suggestion state."""
    from app.core.instruction_workflow import get_instruction_status

    return get_instruction_status()


@router.get("/instruction/preview")
async def preview_instruction_endpoint() -> dict[str, str]:
    """Instruction as synthesized from active insights, ignoring any override."""
    from app.core.instruction_workflow import synthesize_from_insights

    return {"instruction": synthesize_from_insights()}


@router.put("/instruction/override", response_model=InstructionStatus)
async def set_override_endpoint(request: InstructionTextRequest):
    """Pin a manually edited instruction."""
    from app.core.instruction_workflow import set_override

    return set_override(request.text)


@router.delete("/instruction/override", response_model=InstructionStatus)
async def clear_override_endpoint():
    """Return to the synthesized instruction."""
    from app.core.instruction_workflow import clear_override

    return clear_override()


@router.put("/instruction/formatting-rules", response_model=InstructionStatus)
async def set_formatting_rules_endpoint(request: InstructionTextRequest):
    """Replace the formatting rules section."""
    from app.core.instruction_workflow import get_instruction_status
    from app.db.instructions import set_formatting_rules

    set_formatting_rules(request.text)
    return get_instruction_status()


@router.delete("/instruction/formatting-rules", response_model=InstructionStatus)
async def reset_formatting_rules_endpoint():
    """Restore the built-in formatting rules."""
    from app.core.instruction_workflow import get_instruction_status
    from app.db.instructions import clear_formatting_rules

    clear_formatting_rules()
    return get_instruction_status()


@router.post("/instruction/suggestion", response_model=InstructionSuggestion)
async def request_suggestion_endpoint():
    """Generate a candidate instruction for review."""
    from app.core.instruction_workflow import request_suggestion

    return await request_suggestion()


@router.post("/instruction/suggestion/approve", response_model=InstructionStatus)
async def approve_suggestion_endpoint(request: ApproveSuggestionRequest | None = None):
    """Approve the pending candidate, optionally with edits."""
    from app.core.instruction_workflow import SuggestionTransitionError, approve_suggestion

    try:
        return approve_suggestion(request.text if request else None)
    except SuggestionTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@router.post("/instruction/suggestion/reject", response_model=InstructionSuggestion)
async def reject_suggestion_endpoint():
    """Discard the pending candidate."""
    from app.core.instruction_workflow import SuggestionTransitionError, reject_suggestion

    try:
        return reject_suggestion()
    except SuggestionTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
