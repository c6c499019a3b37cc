"""Database access layer for end-user feedback on answers."""

from datetime import datetime, timezone
from typing import Any

from app.core.schemas_assistant import FeedbackRating
from app.db.supabase_client import get_supabase


def _utc_now_iso() -> str:
    """Get current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def create_feedback(
    turn_id: str,
    session_id: str,
    rating: FeedbackRating,
    comment: str | None = None,
) -> dict[str, Any]:
    """Append a feedback row for a turn."""
    supabase = get_supabase()
    data = {
        "conversation_turn_id": str(turn_id),
        "session_id": session_id,
        "rating": FeedbackRating(rating).value,
        "comment": comment,
        "created_at": _utc_now_iso(),
    }
    response = supabase.table("user_feedback").insert(data).execute()
    if not response.data:
        raise ValueError("Failed to create feedback")
    return response.data[0]


def list_commented_disapprovals() -> list[dict[str, Any]]:
    """List disapprovals that carry a non-blank comment, oldest first."""
    supabase = get_supabase()
    response = (
        supabase.table("user_feedback")
        .select("*")
        .eq("rating", FeedbackRating.DISAPPROVE.value)
        .order("created_at")
        .execute()
    )
    return [row for row in response.data or [] if (row.get("comment") or "").strip()]


def list_feedback_for_turn(turn_id: str) -> list[dict[str, Any]]:
    """List feedback rows attached to one turn."""
    supabase = get_supabase()
    response = (
        supabase.table("user_feedback")
        .select("*")
        .eq("conversation_turn_id", str(turn_id))
        .order("created_at")
        .execute()
    )
    return response.data or []


def list_feedback(limit: int = 100) -> list[dict[str, Any]]:
    """List the most recent feedback rows."""
    supabase = get_supabase()
    response = (
        supabase.table("user_feedback")
        .select("*")
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return response.data or []
