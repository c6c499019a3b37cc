"""Key/value storage for instruction overrides, formatting rules and suggestions."""

from datetime import datetime, timezone
from typing import Any

from app.core.schemas_assistant import InstructionSuggestion, SuggestionState
from app.db.supabase_client import get_supabase

CUSTOM_INSTRUCTION_KEY = "custom_instruction"
FORMATTING_RULES_KEY = "formatting_rules"
SUGGESTION_KEY = "instruction_suggestion"


def _utc_now_iso() -> str:
    """Get current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def get_setting(key: str) -> dict[str, Any] | None:
    """Get one instruction setting row."""
    supabase = get_supabase()
    response = (
        supabase.table("instruction_settings")
        .select("*")
        .eq("key", key)
        .limit(1)
        .execute()
    )
    return response.data[0] if response.data else None


def upsert_setting(key: str, value: str | None, status: str | None = None) -> dict[str, Any]:
    """Create or replace one instruction setting row."""
    supabase = get_supabase()
    data = {"key": key, "value": value, "status": status, "updated_at": _utc_now_iso()}
    response = supabase.table("instruction_settings").upsert(data, on_conflict="key").execute()
    if not response.data:
        raise ValueError(f"Failed to save instruction setting {key}")
    return response.data[0]


def delete_setting(key: str) -> bool:
    """Remove a setting. Returns whether a row existed."""
    supabase = get_supabase()
    response = supabase.table("instruction_settings").delete().eq("key", key).execute()
    return bool(response.data)


# =============================================================================
# Typed accessors
# =============================================================================


def get_custom_instruction() -> str | None:
    row = get_setting(CUSTOM_INSTRUCTION_KEY)
    value = (row or {}).get("value")
    return value if value and value.strip() else None


def set_custom_instruction(text: str) -> dict[str, Any]:
    return upsert_setting(CUSTOM_INSTRUCTION_KEY, text)


def clear_custom_instruction() -> bool:
    return delete_setting(CUSTOM_INSTRUCTION_KEY)


def get_formatting_rules() -> str | None:
    row = get_setting(FORMATTING_RULES_KEY)
    value = (row or {}).get("value")
    return value if value and value.strip() else None


def set_formatting_rules(text: str) -> dict[str, Any]:
    return upsert_setting(FORMATTING_RULES_KEY, text)


def clear_formatting_rules() -> bool:
    return delete_setting(FORMATTING_RULES_KEY)


def get_suggestion() -> InstructionSuggestion:
    """Load the suggestion workflow state, idle when nothing is stored."""
    row = get_setting(SUGGESTION_KEY)
    if not row:
        return InstructionSuggestion()
    state, _, source = (row.get("status") or SuggestionState.IDLE.value).partition(":")
    return InstructionSuggestion(
        state=SuggestionState(state),
        candidate=row.get("value"),
        source=source or None,
        updated_at=row.get("updated_at"),
    )


def save_suggestion(suggestion: InstructionSuggestion) -> InstructionSuggestion:
    """Persist the suggestion workflow state."""
    status = suggestion.state.value
    if suggestion.source:
        status = f"{status}:{suggestion.source}"
    row = upsert_setting(SUGGESTION_KEY, suggestion.candidate, status=status)
    return suggestion.model_copy(update={"updated_at": row.get("updated_at")})
