"""Database access layer for the knowledge corpus (documents and training pairs)."""

from datetime import datetime, timezone
from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


def _utc_now_iso() -> str:
    """Get current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Documents
# =============================================================================


def create_document(source_name: str, content: str) -> dict[str, Any]:
    """Store an ingested reference document."""
    supabase = get_supabase()
    data = {
        "source_name": source_name,
        "content": content,
        "ingested_at": _utc_now_iso(),
    }
    response = supabase.table("documents").insert(data).execute()
    if not response.data:
        raise ValueError("Failed to create document")
    logger.info(f"Stored document from {source_name} ({len(content)} chars)")
    return response.data[0]


def list_documents() -> list[dict[str, Any]]:
    """List every stored document, oldest first."""
    supabase = get_supabase()
    response = (
        supabase.table("documents")
        .select("*")
        .order("ingested_at")
        .execute()
    )
    return response.data or []


# =============================================================================
# Training pairs
# =============================================================================


def create_training_pair(question: str, answer: str, category: str = "general") -> dict[str, Any]:
    """Store a question/answer pair used as corpus content."""
    supabase = get_supabase()
    data = {
        "question": question,
        "answer": answer,
        "category": category,
        "created_at": _utc_now_iso(),
    }
    response = supabase.table("training_pairs").insert(data).execute()
    if not response.data:
        raise ValueError("Failed to create training pair")
    return response.data[0]


def list_training_pairs() -> list[dict[str, Any]]:
    """List every training pair, oldest first."""
    supabase = get_supabase()
    response = (
        supabase.table("training_pairs")
        .select("*")
        .order("created_at")
        .execute()
    )
    return response.data or []
