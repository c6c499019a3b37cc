"""Topic acceptability gate run before answer generation.

Permissive by design: only unambiguously hateful, sexually explicit or
illegal requests are refused. Judge failures fail open.
"""

import json

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from app.core.config import get_settings
from app.core.llm import get_llm, parse_llm_json, response_text
from app.core.logging import get_logger
from app.core.schemas_assistant import GateJudgeOutput, GateResult

logger = get_logger(__name__)

REJECTION_MESSAGE = (
    "I'm specifically trained to answer questions about Nick Lanahan's professional "
    "background, skills, and experience. Could you please ask me something about "
    "Nick's career, projects, or qualifications?"
)

SYSTEM_PROMPT = """You screen questions sent to a portfolio website assistant that answers on behalf of Nick Lanahan.

Decide whether the assistant may attempt an answer. Be permissive:
- ACCEPT questions about Nick's career, skills, projects, education, interests or availability.
- ACCEPT general, off-topic, ambiguous or small-talk questions.
- ACCEPT questions the assistant may not have the information to answer.
- ACCEPT questions that refer to Nick in the third person ("he", "his").
- REJECT only when the question is unambiguously hateful, sexually explicit, or asks for help with something illegal.

Output valid JSON only:
{"accepted": true, "confidence": 0.0-1.0}"""

FAIL_OPEN = GateResult(accepted=True, confidence=0.5)


async def check_topic_acceptability(question: str) -> GateResult:
    """
    Classify whether a question may be answered.

    Args:
        question: Visitor question

    Returns:
        GateResult; accepted with confidence 0.5 whenever the judge cannot decide
    """
    settings = get_settings()

    try:
        llm = get_llm(model=settings.JUDGE_MODEL, temperature=0)
        response = await llm.ainvoke(
            [SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=question)]
        )
        verdict = parse_llm_json(response_text(response), GateJudgeOutput)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Unparseable gate verdict, accepting question: {e}")
        return FAIL_OPEN
    except Exception as e:
        logger.warning(f"Topic gate unavailable, accepting question: {e}")
        return FAIL_OPEN

    if not verdict.accepted:
        logger.info(f"Topic gate rejected question (confidence={verdict.confidence:.2f})")
    return GateResult(accepted=verdict.accepted, confidence=verdict.confidence)
