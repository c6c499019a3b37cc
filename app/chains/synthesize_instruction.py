"""Assemble the assistant's system instruction from its template and active insights.

``build_instruction`` is a pure function of (insights, formatting rules): the
same inputs always produce the same text. ``suggest_instruction`` asks the
model for a tightened rewrite that an operator reviews before it goes live.
"""

from typing import Any, Literal

from langchain_core.messages import HumanMessage, SystemMessage

from app.core.config import get_settings
from app.core.llm import get_llm, response_text
from app.core.logging import get_logger
from app.core.schemas_assistant import InsightCategory

logger = get_logger(__name__)

FACT_PREFIX = "FACT:"

BASE_IDENTITY = """You are Nack, the AI assistant on Nick Lanahan's portfolio website. You answer visitors' questions about Nick's professional background, skills, projects and experience.

ABOUT NICK:
- Manager in Product Management at EY, based in Columbus, Ohio
- Works at the intersection of product strategy, delivery and emerging technology

TONE:
- Friendly, confident and professional, like a knowledgeable colleague
- Speak about Nick in the third person
- Be accurate: only state what the provided context supports"""

DEFAULT_FORMATTING_RULES = """RESPONSE STYLE:
- Keep answers short and conversational: 2-3 sentences unless the visitor asks for detail
- Use plain paragraphs; no markdown headers
- Use a short bulleted list only when listing three or more items
- Lead with the direct answer, then one supporting detail"""

RESPONSE_GUIDELINES = """RESPONSE GUIDELINES:
1. Answer the question that was asked before adding anything else
2. Ground every claim in the provided context
3. If the information is not available, say so and suggest contacting Nick
4. Highlight concrete achievements and measurable outcomes when relevant
5. Keep a positive, professional tone
6. Do not invent dates, employers, titles or credentials
7. Invite a follow-up question when it helps the visitor"""

SECTION_HEADINGS = {
    InsightCategory.BEST_PRACTICE.value: "BEST PRACTICES TO FOLLOW:",
    InsightCategory.IMPROVEMENT.value: "AREAS TO IMPROVE:",
    InsightCategory.AVOID_PATTERN.value: "PATTERNS TO AVOID:",
}

SUGGESTION_PROMPT = """\
You edit system instructions for a portfolio website assistant. Rewrite the instruction below \
so it is shorter and clearer while keeping every fact, rule and lesson it contains. \
Merge overlapping lessons. Keep the identity section first. Output only the rewritten instruction."""


def _sort_key(insight: dict[str, Any]) -> tuple:
    return (-int(insight.get("importance") or 0), insight.get("created_at") or "", str(insight.get("id") or ""))


def _bullet(insight: dict[str, Any]) -> str:
    line = f"• {insight['text'].strip()}"
    examples = [e for e in insight.get("examples") or [] if e]
    if examples:
        line += f" (Examples: {'; '.join(examples)})"
    return line


def build_instruction(insights: list[dict[str, Any]], formatting_rules: str | None = None) -> str:
    """
    Render the instruction text.

    Args:
        insights: Insight rows; inactive rows are ignored
        formatting_rules: Configured rules, or None for the built-in default

    Returns:
        Instruction text
    """
    active = sorted((i for i in insights if i.get("is_active", True)), key=_sort_key)

    parts = [BASE_IDENTITY, (formatting_rules or DEFAULT_FORMATTING_RULES).strip()]

    facts = [i for i in active if i["text"].strip().upper().startswith(FACT_PREFIX)]
    if facts:
        parts.append(
            "IMPORTANT FACTS:\n"
            + "\n".join(f"• {i['text'].strip()[len(FACT_PREFIX):].strip()}" for i in facts)
        )

    sections = []
    for category, heading in SECTION_HEADINGS.items():
        rows = [i for i in active if i.get("category") == category]
        if rows:
            sections.append(heading + "\n" + "\n".join(_bullet(i) for i in rows))
    if sections:
        parts.append("LEARNING INSIGHTS:\n\n" + "\n\n".join(sections))

    parts.append(RESPONSE_GUIDELINES)
    return "\n\n".join(parts)


async def suggest_instruction(
    current_instruction: str,
) -> tuple[str, Literal["ai", "template"]]:
    """
    Propose a rewritten instruction for operator review.

    Falls back to the unmodified template text when the model is unavailable.
    """
    settings = get_settings()
    try:
        llm = get_llm(model=settings.JUDGE_MODEL, temperature=0.3)
        response = await llm.ainvoke(
            [SystemMessage(content=SUGGESTION_PROMPT), HumanMessage(content=current_instruction)]
        )
        candidate = response_text(response).strip()
    except Exception as e:
        logger.warning(f"Instruction suggestion model unavailable, proposing template text: {e}")
        return current_instruction, "template"

    if not candidate:
        return current_instruction, "template"
    return candidate, "ai"
