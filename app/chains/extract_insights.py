"""Turn poorly scored answers into short, reusable lessons.

Only failures are mined. The judge proposes 1-3 pattern-level insights per
evaluation; each is checked against the active insight set before insertion.
"""

import json
from typing import Any

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from app.core.config import get_settings
from app.core.llm import get_llm, parse_llm_json, response_text
from app.core.logging import get_logger
from app.core.schemas_assistant import ProposedInsight, ProposedInsights

logger = get_logger(__name__)

MAX_INSIGHTS_PER_EVALUATION = 3
EXAMPLE_CHARS = 200

SYSTEM_PROMPT = """\
You review answers from a portfolio website assistant that speaks on behalf of Nick Lanahan. \
The answer below scored poorly. Extract lessons that will improve FUTURE answers.

For each lesson provide:
- category: best_practice | improvement | avoid_pattern
- text: one concise, actionable sentence describing the general pattern (do not quote the answer)
- importance: integer 1-10 (10 = affects most answers)

Output ONLY valid JSON:
{
  "insights": [
    {"category": "improvement", "text": "...", "importance": 6}
  ]
}

Rules:
- 1 to 3 insights
- Generalize: describe the pattern, not this specific question
- Prefer "improvement" and "avoid_pattern" for failures
"""


def normalize_text(text: str) -> str:
    return " ".join(text.lower().split())


def is_near_duplicate(text: str, existing_texts: list[str]) -> bool:
    """Case-insensitive substring containment in either direction."""
    candidate = normalize_text(text)
    if not candidate:
        return True
    for other in existing_texts:
        other_norm = normalize_text(other)
        if other_norm and (candidate in other_norm or other_norm in candidate):
            return True
    return False


def build_example(question: str, answer: str) -> str:
    """Short Q/A excerpt attached to an insight as its example."""
    return f"Q: {question[:EXAMPLE_CHARS]} | A: {answer[:EXAMPLE_CHARS]}"


async def propose_insights(
    question: str,
    answer: str,
    evaluation: dict[str, Any],
) -> list[ProposedInsight]:
    """
    Ask the judge for lessons learned from one poorly scored turn.

    Args:
        question: Turn question
        answer: Turn answer
        evaluation: Stored evaluation row (scores, feedback, improvements)

    Returns:
        Up to three proposals; empty when the judge output is malformed

    Raises:
        Exception: If the judge call itself fails (caller retries next run)
    """
    settings = get_settings()
    llm = get_llm(model=settings.JUDGE_MODEL, temperature=0.2)

    user_text = f"""## Question
{question}

## Answer
{answer}

## Scores (0-1)
Overall: {evaluation.get("overall_score")}
{json.dumps(evaluation.get("criterion_scores") or {}, indent=2)}

## Evaluator feedback
{evaluation.get("feedback_text") or "(none)"}

## Improvements noted
{json.dumps(evaluation.get("improvements") or [])}"""

    response = await llm.ainvoke([SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=user_text)])

    try:
        parsed = parse_llm_json(response_text(response), ProposedInsights)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Malformed insight proposals for evaluation {evaluation.get('id')}: {e}")
        return []

    return parsed.insights[:MAX_INSIGHTS_PER_EVALUATION]
