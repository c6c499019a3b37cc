"""Conversation turn database operations."""

from datetime import datetime, timezone
from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


class TurnNotFoundError(ValueError):
    """Raised when a turn id does not reference a stored conversation turn."""


def _utc_now_iso() -> str:
    """Get current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def create_turn(session_id: str, user_question: str, bot_response: str) -> dict[str, Any]:
    """
    Append a question/answer exchange to the conversation log.

    Args:
        session_id: Visitor session grouping the turn
        user_question: Question as asked
        bot_response: Answer returned (possibly the fallback text)

    Returns:
        Created turn row

    Raises:
        ValueError: If the insert returned no row
    """
    supabase = get_supabase()
    data = {
        "session_id": session_id,
        "user_question": user_question,
        "bot_response": bot_response,
        "created_at": _utc_now_iso(),
    }
    response = supabase.table("conversation_turns").insert(data).execute()
    if not response.data:
        raise ValueError("Failed to create conversation turn")
    return response.data[0]


def get_turn(turn_id: str) -> dict[str, Any] | None:
    """Get a conversation turn by ID."""
    supabase = get_supabase()
    response = (
        supabase.table("conversation_turns")
        .select("*")
        .eq("id", str(turn_id))
        .limit(1)
        .execute()
    )
    return response.data[0] if response.data else None


def require_turn(turn_id: str) -> dict[str, Any]:
    """Get a conversation turn or raise TurnNotFoundError."""
    turn = get_turn(turn_id)
    if not turn:
        raise TurnNotFoundError(f"Conversation turn {turn_id} not found")
    return turn


def list_session_turns(session_id: str, limit: int | None = None) -> list[dict[str, Any]]:
    """
    List turns for one session in chronological order.

    When ``limit`` is given only the most recent ``limit`` turns are
    returned, still oldest first.
    """
    supabase = get_supabase()
    query = (
        supabase.table("conversation_turns")
        .select("*")
        .eq("session_id", session_id)
        .order("created_at", desc=True)
    )
    if limit is not None:
        query = query.limit(limit)
    response = query.execute()
    return list(reversed(response.data or []))


def list_turns() -> list[dict[str, Any]]:
    """List every turn across sessions, oldest first."""
    supabase = get_supabase()
    response = supabase.table("conversation_turns").select("*").order("created_at").execute()
    return response.data or []
