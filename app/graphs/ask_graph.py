"""LangGraph pipeline answering one visitor question.

Topology:
  check_topic ─┬─ rejected → END (redirect message, nothing persisted)
               └─ accepted → retrieve_context → load_history → load_instruction
                               → generate → persist_turn → END

Read steps degrade (empty context, empty history, base instruction).
Generation falls back to a fixed apology. Only persist_turn may raise.
"""

import logging
from dataclasses import dataclass
from typing import Any

from langgraph.graph import END, StateGraph

from app.core.config import get_settings
from app.core.logging import get_logger, log_with_context

logger = get_logger(__name__)


@dataclass
class AskState:
    """State for the ask pipeline graph."""

    # Input
    question: str = ""
    session_id: str = ""

    # Gate
    accepted: bool = True
    gate_confidence: float = 0.5

    # Prompt parts
    context: str = ""
    history: str = ""
    instruction: str = ""

    # Output
    answer: str = ""
    turn_id: str | None = None


async def check_topic(state: AskState) -> dict[str, Any]:
    """Run the acceptability gate; a rejection short-circuits with the redirect message."""
    from app.chains.check_topic import REJECTION_MESSAGE, check_topic_acceptability

    verdict = await check_topic_acceptability(state.question)
    update: dict[str, Any] = {"accepted": verdict.accepted, "gate_confidence": verdict.confidence}
    if not verdict.accepted:
        update["answer"] = REJECTION_MESSAGE
    return update


def route_after_gate(state: AskState) -> str:
    return "retrieve_context" if state.accepted else END


def retrieve_context(state: AskState) -> dict[str, Any]:
    """Exhaustive corpus retrieval, truncated per passage."""
    from app.core.retrieval import format_context, retrieve

    return {"context": format_context(retrieve(state.question))}


def load_history(state: AskState) -> dict[str, Any]:
    """Most recent HISTORY_TURNS turns of the session, oldest first."""
    from app.chains.generate_answer import format_history
    from app.db.conversations import list_session_turns

    settings = get_settings()
    try:
        turns = list_session_turns(state.session_id, limit=settings.HISTORY_TURNS)
    except Exception as e:
        logger.warning(f"Conversation history unavailable for session {state.session_id}: {e}")
        return {"history": ""}
    return {"history": format_history(turns)}


def load_instruction(state: AskState) -> dict[str, Any]:
    """Current synthesized (or overridden) instruction."""
    from app.core.instruction_workflow import get_live_instruction

    return {"instruction": get_live_instruction()}


async def generate(state: AskState) -> dict[str, Any]:
    from app.chains.generate_answer import generate_answer

    answer = await generate_answer(state.question, state.context, state.history, state.instruction)
    return {"answer": answer}


def persist_turn(state: AskState) -> dict[str, Any]:
    """Append the exchange to the conversation log (raises on storage failure)."""
    from app.db.conversations import create_turn
    from app.db.documents import create_training_pair

    turn = create_turn(state.session_id, state.question, state.answer)
    turn_id = str(turn["id"])

    if get_settings().LOG_TURNS_AS_TRAINING_PAIRS:
        try:
            create_training_pair(state.question, state.answer, category="conversation")
        except Exception as e:
            logger.warning(f"Failed to log turn {turn_id} as training pair: {e}")

    log_with_context(logger, logging.INFO, "Conversation turn stored", turn_id=turn_id, session_id=state.session_id)
    return {"turn_id": turn_id}


def build_ask_graph() -> StateGraph:
    """Construct the LangGraph for answering a question."""
    graph = StateGraph(AskState)

    graph.add_node("check_topic", check_topic)
    graph.add_node("retrieve_context", retrieve_context)
    graph.add_node("load_history", load_history)
    graph.add_node("load_instruction", load_instruction)
    graph.add_node("generate", generate)
    graph.add_node("persist_turn", persist_turn)

    graph.set_entry_point("check_topic")
    graph.add_conditional_edges("check_topic", route_after_gate)
    graph.add_edge("retrieve_context", "load_history")
    graph.add_edge("load_history", "load_instruction")
    graph.add_edge("load_instruction", "generate")
    graph.add_edge("generate", "persist_turn")
    graph.add_edge("persist_turn", END)

    return graph


_compiled_graph = None


def get_ask_graph():
    """Compiled graph, built once per process."""
    global _compiled_graph
    if _compiled_graph is None:
        _compiled_graph = build_ask_graph().compile()
    return _compiled_graph


async def run_ask_pipeline(question: str, session_id: str) -> AskState:
    """Run the graph and return the final state."""
    final_state = await get_ask_graph().ainvoke(AskState(question=question, session_id=session_id))

    # Handle both dict and object returns from LangGraph
    if isinstance(final_state, dict):
        return AskState(**final_state)
    return final_state
