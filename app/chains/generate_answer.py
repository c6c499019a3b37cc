"""Compose the answer prompt and call the chat model once."""

from typing import Any

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from app.core.config import get_settings
from app.core.llm import get_llm, response_text
from app.core.logging import get_logger

logger = get_logger(__name__)

FALLBACK_ANSWER = (
    "I'm experiencing technical difficulties. Please try asking your question again in a moment."
)

SAFETY_RULE = """TOPIC RULES:
- Answer anything reasonably related to Nick's professional life, and politely steer other questions back to it.
- If the context does not contain the answer, say you don't have that information rather than guessing.
- Never produce hateful, sexually explicit, or illegal content."""

PROMPT_TEMPLATE = """{instruction}

{safety_rule}

CONTEXT ABOUT NICK:
{context}

CONVERSATION HISTORY:
{history}

CRITICAL INSTRUCTIONS:
- Base every factual claim on the context above.
- Keep continuity with the conversation history.
- Respond directly to the question that follows."""


def format_history(turns: list[dict[str, Any]]) -> str:
    """Render prior turns (already oldest first) as a transcript."""
    lines = []
    for turn in turns:
        lines.append(f"User: {turn.get('user_question', '')}")
        lines.append(f"Assistant: {turn.get('bot_response', '')}")
    return "\n".join(lines)


def build_messages(question: str, context: str, history: str, instruction: str) -> list[BaseMessage]:
    """Fill the answer template."""
    system = PROMPT_TEMPLATE.format(
        instruction=instruction.strip(),
        safety_rule=SAFETY_RULE,
        context=context.strip() or "(no reference material available)",
        history=history.strip() or "(this is the start of the conversation)",
    )
    return [SystemMessage(content=system), HumanMessage(content=question)]


async def generate_answer(question: str, context: str, history: str, instruction: str) -> str:
    """
    Generate an answer, or the fixed fallback when the model call fails.

    Args:
        question: Visitor question
        context: Formatted retrieval context
        history: Formatted prior turns of the session
        instruction: Live system instruction

    Returns:
        Non-empty answer text
    """
    settings = get_settings()

    try:
        llm = get_llm(
            model=settings.CHAT_MODEL,
            temperature=settings.CHAT_TEMPERATURE,
            max_tokens=settings.CHAT_MAX_TOKENS,
        )
        response = await llm.ainvoke(build_messages(question, context, history, instruction))
        answer = response_text(response).strip()
    except Exception as e:
        logger.error(f"Answer generation failed, using fallback: {e}")
        return FALLBACK_ANSWER

    if not answer:
        logger.warning("Chat model returned an empty answer, using fallback")
        return FALLBACK_ANSWER
    return answer
