"""Database access layer for learned insights and the extraction ledger."""

from datetime import datetime, timezone
from typing import Any

from app.core.logging import get_logger
from app.core.schemas_assistant import InsightCategory, InsightResponse, InsightStats, clamp_importance
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


class InsightNotFoundError(ValueError):
    """Raised when an insight id does not exist."""


def _utc_now_iso() -> str:
    """Get current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Insights
# =============================================================================


def list_insights(
    active_only: bool = True,
    category: InsightCategory | str | None = None,
) -> list[dict[str, Any]]:
    """List insights, highest importance first, oldest first within a tie."""
    supabase = get_supabase()
    query = supabase.table("insights").select("*")
    if active_only:
        query = query.eq("is_active", True)
    if category:
        query = query.eq("category", InsightCategory(category).value)
    response = query.order("importance", desc=True).order("created_at").execute()
    return response.data or []


def get_insight(insight_id: str) -> dict[str, Any] | None:
    """Get an insight by ID."""
    supabase = get_supabase()
    response = (
        supabase.table("insights")
        .select("*")
        .eq("id", str(insight_id))
        .limit(1)
        .execute()
    )
    return response.data[0] if response.data else None


def create_insight(
    category: InsightCategory | str,
    text: str,
    importance: int,
    examples: list[str] | None = None,
    source_evaluation_id: str | None = None,
    source_feedback_id: str | None = None,
) -> dict[str, Any]:
    """Insert a new active insight."""
    supabase = get_supabase()
    data = {
        "category": InsightCategory(category).value,
        "text": text,
        "examples": examples or [],
        "importance": clamp_importance(importance),
        "source_evaluation_id": str(source_evaluation_id) if source_evaluation_id else None,
        "source_feedback_id": str(source_feedback_id) if source_feedback_id else None,
        "is_active": True,
        "created_at": _utc_now_iso(),
    }
    response = supabase.table("insights").insert(data).execute()
    if not response.data:
        raise ValueError("Failed to create insight")
    logger.info(f"Created {data['category']} insight (importance {data['importance']})")
    return response.data[0]


def update_insight(insight_id: str, updates: dict[str, Any]) -> dict[str, Any]:
    """Overwrite fields of an insight in place."""
    if "importance" in updates:
        updates = {**updates, "importance": clamp_importance(updates["importance"])}
    supabase = get_supabase()
    response = (
        supabase.table("insights")
        .update(updates)
        .eq("id", str(insight_id))
        .execute()
    )
    if not response.data:
        raise InsightNotFoundError(f"Insight {insight_id} not found")
    return response.data[0]


def set_insight_active(insight_id: str, is_active: bool) -> dict[str, Any]:
    """Activate or retire an insight."""
    return update_insight(insight_id, {"is_active": is_active})


def delete_insight(insight_id: str) -> None:
    """Permanently delete an insight (operator action only)."""
    supabase = get_supabase()
    response = supabase.table("insights").delete().eq("id", str(insight_id)).execute()
    if not response.data:
        raise InsightNotFoundError(f"Insight {insight_id} not found")
    logger.info(f"Deleted insight {insight_id}")


def get_insight_stats(recent_limit: int = 5) -> InsightStats:
    """Counts of active insights by category plus the most recent few."""
    rows = list_insights(active_only=True)
    if not rows:
        return InsightStats(by_category={c.value: 0 for c in InsightCategory})

    by_category = {c.value: 0 for c in InsightCategory}
    for row in rows:
        by_category[row["category"]] = by_category.get(row["category"], 0) + 1

    recent = sorted(rows, key=lambda r: r.get("created_at") or "", reverse=True)[:recent_limit]
    return InsightStats(
        total=len(rows),
        by_category=by_category,
        avg_importance=round(sum(r["importance"] for r in rows) / len(rows), 2),
        recent=[InsightResponse(**r) for r in recent],
    )


# =============================================================================
# Extraction ledger
# =============================================================================


def list_processed_source_ids(source_type: str) -> set[str]:
    """IDs of evaluations or feedback rows already mined for insights."""
    supabase = get_supabase()
    response = (
        supabase.table("insight_extraction_log")
        .select("source_id")
        .eq("source_type", source_type)
        .execute()
    )
    return {str(row["source_id"]) for row in response.data or []}


def record_extraction(source_type: str, source_id: str, insights_created: int) -> dict[str, Any]:
    """Mark an evaluation or feedback row as mined."""
    supabase = get_supabase()
    data = {
        "source_type": source_type,
        "source_id": str(source_id),
        "insights_created": insights_created,
        "processed_at": _utc_now_iso(),
    }
    response = supabase.table("insight_extraction_log").insert(data).execute()
    if not response.data:
        raise ValueError("Failed to record extraction")
    return response.data[0]
