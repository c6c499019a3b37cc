"""Database access layer for answer evaluations and evaluation failures."""

from datetime import datetime, timedelta, timezone
from typing import Any

from app.core.logging import get_logger
from app.core.schemas_assistant import EvaluationResult, EvaluationStats
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


def _utc_now_iso() -> str:
    """Get current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# Evaluations
# =============================================================================


def create_evaluation(turn_id: str, result: EvaluationResult) -> dict[str, Any]:
    """Persist a scored evaluation. Each call creates a new row."""
    supabase = get_supabase()
    data = {
        "conversation_turn_id": str(turn_id),
        "criterion_scores": result.criterion_scores,
        "overall_score": result.overall_score,
        "feedback_text": result.feedback_text,
        "strengths": result.strengths,
        "improvements": result.improvements,
        "evaluated_at": _utc_now_iso(),
    }
    response = supabase.table("evaluations").insert(data).execute()
    if not response.data:
        raise ValueError("Failed to create evaluation")
    logger.info(f"Stored evaluation for turn {turn_id}: overall={result.overall_score:.2f}")
    return response.data[0]


def list_evaluations(limit: int = 50) -> list[dict[str, Any]]:
    """List the most recent evaluations."""
    supabase = get_supabase()
    response = (
        supabase.table("evaluations")
        .select("*")
        .order("evaluated_at", desc=True)
        .limit(limit)
        .execute()
    )
    return response.data or []


def list_evaluations_for_turn(turn_id: str) -> list[dict[str, Any]]:
    """List every evaluation recorded for one turn, oldest first."""
    supabase = get_supabase()
    response = (
        supabase.table("evaluations")
        .select("*")
        .eq("conversation_turn_id", str(turn_id))
        .order("evaluated_at")
        .execute()
    )
    return response.data or []


def list_evaluated_turn_ids() -> set[str]:
    """Ids of turns that have at least one evaluation."""
    supabase = get_supabase()
    response = supabase.table("evaluations").select("conversation_turn_id").execute()
    return {str(row["conversation_turn_id"]) for row in response.data or []}


def list_poor_evaluations(threshold: float) -> list[dict[str, Any]]:
    """List evaluations scoring strictly below ``threshold``, oldest first."""
    supabase = get_supabase()
    response = (
        supabase.table("evaluations")
        .select("*")
        .lt("overall_score", threshold)
        .order("evaluated_at")
        .execute()
    )
    return response.data or []


def get_evaluation_stats(now: datetime | None = None) -> EvaluationStats:
    """Aggregate stored evaluations: means per criterion and trailing windows."""
    supabase = get_supabase()
    response = (
        supabase.table("evaluations")
        .select("criterion_scores, overall_score, evaluated_at")
        .execute()
    )
    rows = response.data or []
    if not rows:
        return EvaluationStats()

    now = now or datetime.now(timezone.utc)

    per_criterion: dict[str, list[float]] = {}
    for row in rows:
        for name, score in (row.get("criterion_scores") or {}).items():
            per_criterion.setdefault(name, []).append(float(score))

    def _mean(values: list[float]) -> float | None:
        return round(sum(values) / len(values), 2) if values else None

    def _window(days: int) -> float | None:
        cutoff = now - timedelta(days=days)
        return _mean(
            [
                float(r.get("overall_score", 0))
                for r in rows
                if (ts := _parse_ts(r.get("evaluated_at"))) and ts >= cutoff
            ]
        )

    return EvaluationStats(
        count=len(rows),
        mean_overall=_mean([float(r.get("overall_score", 0)) for r in rows]),
        mean_per_criterion={name: _mean(scores) for name, scores in sorted(per_criterion.items())},
        last_week=_window(7),
        last_month=_window(30),
    )


# =============================================================================
# Terminal failures
# =============================================================================


def record_evaluation_failure(turn_id: str, attempts: int, error: str) -> dict[str, Any]:
    """Record that evaluating a turn was abandoned after ``attempts`` tries."""
    supabase = get_supabase()
    data = {
        "conversation_turn_id": str(turn_id),
        "attempts": attempts,
        "error": error[:2000],
        "failed_at": _utc_now_iso(),
    }
    response = supabase.table("evaluation_failures").insert(data).execute()
    if not response.data:
        raise ValueError("Failed to record evaluation failure")
    return response.data[0]


def list_evaluation_failures(limit: int = 50) -> list[dict[str, Any]]:
    """List recent terminal evaluation failures."""
    supabase = get_supabase()
    response = (
        supabase.table("evaluation_failures")
        .select("*")
        .order("failed_at", desc=True)
        .limit(limit)
        .execute()
    )
    return response.data or []
