"""Multi-criterion answer evaluation.

Judged criteria ask the judge model for a 1-5 rubric score; conciseness is
a pure function of word count. Every score is normalized to 0-1 (divide
by 5) and the overall score is the plain mean of the recorded criteria.

Failure handling per criterion:
  judge call raises      → 0.0 with an explanatory comment
  judge output malformed → 0.6 (mid-scale 3/5) with an explanatory comment
Neither aborts the other criteria.
"""

import asyncio
import json

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from app.core.config import get_settings
from app.core.llm import get_llm, parse_llm_json, response_text
from app.core.logging import get_logger
from app.core.schemas_assistant import CriterionJudgeOutput, CriterionResult, EvaluationResult

logger = get_logger(__name__)

RUBRIC_SCALE = 5
MID_SCALE_SCORE = 3
STRENGTH_THRESHOLD = 0.8
IMPROVEMENT_THRESHOLD = 0.6

RUBRICS = {
    "correctness": (
        "Correctness: are the answer's factual claims supported by the reference context? "
        "5 = fully supported, 3 = partly supported or vague, 1 = contradicts or invents facts."
    ),
    "helpfulness": (
        "Helpfulness: does the answer give the visitor what they need, including a useful "
        "next step when information is missing? 5 = fully, 1 = not at all."
    ),
    "relevance": (
        "Relevance: does the answer address the question that was asked without drifting? "
        "5 = on point, 1 = unrelated."
    ),
    "clarity": (
        "Clarity: is the answer easy to read and well organized for a website chat? "
        "5 = immediately clear, 1 = confusing."
    ),
    "professional_tone": (
        "Professional tone: is the answer friendly yet professional, suitable for a "
        "recruiter or hiring manager? 5 = polished, 1 = inappropriate."
    ),
}

DETERMINISTIC_CRITERIA = {"conciseness"}

SYSTEM_PROMPT = """You grade answers given by a portfolio website assistant that speaks about Nick Lanahan.

Grade ONE criterion only:
{rubric}

Reference context the assistant had:
{context}

Output valid JSON only:
{{"score": 1-5, "comment": "one sentence explaining the score"}}"""


# =============================================================================
# Deterministic criteria
# =============================================================================


def count_words(text: str) -> int:
    return len(text.split())


def score_conciseness(answer: str) -> tuple[int, str]:
    """Score answer length on the 1-5 rubric scale.

    50-150 words is the target band. Longer answers lose more than short ones.
    """
    words = count_words(answer)
    if 50 <= words <= 150:
        return 5, f"{words} words, within the 50-150 word target"
    if 20 <= words < 50 or 150 < words <= 200:
        return 4, f"{words} words, slightly outside the 50-150 word target"
    if 200 < words <= 300:
        return 2, f"{words} words, too long for a chat answer"
    if words > 300:
        return 1, f"{words} words, far too long for a chat answer"
    return 2, f"{words} words, too short to be informative"


# =============================================================================
# Judged criteria
# =============================================================================


def normalize(raw_score: float) -> float:
    """Clamp a 1-5 rubric score and map it to 0-1."""
    clamped = max(1.0, min(float(RUBRIC_SCALE), float(raw_score)))
    return round(clamped / RUBRIC_SCALE, 4)


async def judge_criterion(name: str, question: str, answer: str, context: str) -> CriterionResult:
    """Score one criterion. Never raises."""
    if name in DETERMINISTIC_CRITERIA:
        raw, comment = score_conciseness(answer)
        return CriterionResult(name=name, score=normalize(raw), comment=comment)

    settings = get_settings()
    prompt = SYSTEM_PROMPT.format(
        rubric=RUBRICS[name],
        context=context.strip() or "(no context)",
    )

    try:
        llm = get_llm(model=settings.JUDGE_MODEL, temperature=0)
        response = await llm.ainvoke(
            [
                SystemMessage(content=prompt),
                HumanMessage(content=f"Question: {question}\n\nAnswer: {answer}"),
            ]
        )
    except Exception as e:
        logger.warning(f"Judge failed for criterion {name}: {e}")
        return CriterionResult(name=name, score=0.0, comment=f"Evaluation failed: {e}")

    try:
        verdict = parse_llm_json(response_text(response), CriterionJudgeOutput)
    except (json.JSONDecodeError, ValidationError, TypeError, ValueError) as e:
        logger.warning(f"Malformed judge output for criterion {name}: {e}")
        return CriterionResult(
            name=name,
            score=normalize(MID_SCALE_SCORE),
            comment="Judge output could not be parsed; default mid-scale score recorded",
        )

    return CriterionResult(name=name, score=normalize(verdict.score), comment=verdict.comment)


def _summarize(results: list[CriterionResult]) -> tuple[str, list[str], list[str]]:
    feedback_lines = []
    strengths = []
    improvements = []
    for r in results:
        label = r.name.replace("_", " ").capitalize()
        feedback_lines.append(f"{label}: {r.score:.2f}" + (f" - {r.comment}" if r.comment else ""))
        if r.score >= STRENGTH_THRESHOLD:
            strengths.append(f"{label}: {r.comment}" if r.comment else label)
        elif r.score <= IMPROVEMENT_THRESHOLD:
            improvements.append(f"{label}: {r.comment}" if r.comment else label)
    return "\n".join(feedback_lines), strengths, improvements


async def evaluate_answer(
    question: str,
    answer: str,
    context: str,
    criteria: list[str] | None = None,
) -> EvaluationResult:
    """
    Score an answer on every active criterion concurrently.

    Args:
        question: Visitor question
        answer: Answer that was returned
        context: Formatted context the answer was grounded on
        criteria: Criterion names (defaults to EVAL_CRITERIA)

    Returns:
        EvaluationResult with 0-1 scores and their mean
    """
    names = criteria if criteria is not None else get_settings().EVAL_CRITERIA
    active = []
    for name in names:
        if name in RUBRICS or name in DETERMINISTIC_CRITERIA:
            active.append(name)
        else:
            logger.warning(f"Ignoring unknown evaluation criterion {name}")
    if not active:
        raise ValueError("No known evaluation criteria configured")

    results = await asyncio.gather(
        *(judge_criterion(name, question, answer, context) for name in active)
    )

    scores = {r.name: r.score for r in results}
    overall = sum(scores.values()) / len(scores)
    feedback_text, strengths, improvements = _summarize(list(results))

    return EvaluationResult(
        criterion_scores=scores,
        criterion_comments={r.name: r.comment for r in results},
        overall_score=overall,
        feedback_text=feedback_text,
        strengths=strengths,
        improvements=improvements,
    )
