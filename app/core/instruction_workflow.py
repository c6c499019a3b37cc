"""Live instruction resolution and the propose/approve suggestion workflow.

Resolution order for the instruction used by answer generation:
  1. operator override (verbatim, until cleared)
  2. template + formatting rules + active insights

Suggestion state machine:
  idle ──request──▶ suggested ──approve──▶ approved
                        │
                        └──reject───▶ rejected
  ``request`` is allowed from every state; ``approve``/``reject`` only from
  ``suggested``. Only ``approve`` changes the live instruction.
"""

from typing import Literal

from app.chains.synthesize_instruction import build_instruction, suggest_instruction
from app.core.logging import get_logger
from app.core.schemas_assistant import InstructionStatus, InstructionSuggestion, SuggestionState
from app.db import instructions as instruction_store
from app.db.insights import list_insights

logger = get_logger(__name__)

SuggestionEvent = Literal["request", "approve", "reject"]


class SuggestionTransitionError(Exception):
    """Raised when a suggestion event is not allowed in the current state."""


def next_suggestion_state(current: SuggestionState, event: SuggestionEvent) -> SuggestionState:
    """Pure transition function of the suggestion workflow."""
    if event == "request":
        return SuggestionState.SUGGESTED
    if current != SuggestionState.SUGGESTED:
        raise SuggestionTransitionError(
            f"Cannot {event} a suggestion while the workflow is {current.value}"
        )
    if event == "approve":
        return SuggestionState.APPROVED
    if event == "reject":
        return SuggestionState.REJECTED
    raise SuggestionTransitionError(f"Unknown suggestion event: {event}")


# =============================================================================
# Synthesis
# =============================================================================


def synthesize_from_insights() -> str:
    """Template text built from the current active insights, ignoring any override."""
    return build_instruction(
        list_insights(active_only=True),
        instruction_store.get_formatting_rules(),
    )


def synthesize() -> str:
    """The instruction in effect: the override verbatim if one is set."""
    override = instruction_store.get_custom_instruction()
    if override:
        return override
    return synthesize_from_insights()


def get_live_instruction() -> str:
    """Instruction for answer generation; degrades to the bare template if storage fails."""
    try:
        return synthesize()
    except Exception as e:
        logger.warning(f"Instruction storage unavailable, using base template: {e}")
        return build_instruction([])


def get_instruction_status() -> InstructionStatus:
    override = instruction_store.get_custom_instruction()
    return InstructionStatus(
        instruction=override or synthesize_from_insights(),
        is_override=override is not None,
        suggestion=instruction_store.get_suggestion(),
    )


def set_override(text: str) -> InstructionStatus:
    instruction_store.set_custom_instruction(text)
    logger.info("Instruction override saved")
    return get_instruction_status()


def clear_override() -> InstructionStatus:
    instruction_store.clear_custom_instruction()
    logger.info("Instruction override cleared")
    return get_instruction_status()


# =============================================================================
# Suggestion workflow
# =============================================================================


async def request_suggestion() -> InstructionSuggestion:
    """Generate a candidate instruction and park it for review."""
    current = instruction_store.get_suggestion()
    state = next_suggestion_state(current.state, "request")

    candidate, source = await suggest_instruction(synthesize_from_insights())
    logger.info(f"Instruction candidate proposed (source={source}, {len(candidate)} chars)")
    return instruction_store.save_suggestion(
        InstructionSuggestion(state=state, candidate=candidate, source=source)
    )


def approve_suggestion(text: str | None = None) -> InstructionStatus:
    """Make the pending candidate (or the operator's edit of it) the live instruction."""
    current = instruction_store.get_suggestion()
    state = next_suggestion_state(current.state, "approve")

    approved_text = (text or "").strip() or (current.candidate or "").strip()
    if not approved_text:
        raise SuggestionTransitionError("Suggestion has no candidate text to approve")

    instruction_store.set_custom_instruction(approved_text)
    instruction_store.save_suggestion(
        InstructionSuggestion(state=state, candidate=approved_text, source=current.source)
    )
    logger.info("Instruction suggestion approved and now live")
    return get_instruction_status()


def reject_suggestion() -> InstructionSuggestion:
    """Discard the pending candidate without touching the live instruction."""
    current = instruction_store.get_suggestion()
    state = next_suggestion_state(current.state, "reject")
    logger.info("Instruction suggestion rejected")
    return instruction_store.save_suggestion(current.model_copy(update={"state": state}))
