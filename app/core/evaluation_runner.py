"""Background evaluation of answered turns.

The request path hands a turn id to ``schedule_evaluation`` (or to FastAPI
``BackgroundTasks``) and returns immediately. ``evaluate_turn_with_retry``
makes at most EVAL_MAX_ATTEMPTS attempts, sleeping base, 2*base, ... between
them, and writes an ``evaluation_failures`` row when every attempt fails.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from app.chains.evaluate_answer import evaluate_answer
from app.core.config import get_settings
from app.core.logging import get_logger, log_with_context
from app.core.retrieval import format_context, retrieve
from app.core.schemas_assistant import BatchEvaluationSummary
from app.db.conversations import list_turns, require_turn
from app.db.evaluations import create_evaluation, list_evaluated_turn_ids, record_evaluation_failure

logger = get_logger(__name__)

# Strong references so pending tasks are not garbage collected mid-flight
_background_tasks: set[asyncio.Task] = set()


async def evaluate_turn(turn_id: str, context: str | None = None) -> dict[str, Any]:
    """
    Score one stored turn and persist a new evaluation row.

    Args:
        turn_id: Turn to score
        context: Context the answer was generated from; retrieved afresh when
            omitted (operator re-evaluation)
    """
    turn = require_turn(turn_id)
    if context is None:
        context = format_context(retrieve(turn["user_question"]))
    result = await evaluate_answer(turn["user_question"], turn["bot_response"], context)
    return create_evaluation(turn_id, result)


async def evaluate_turn_with_retry(turn_id: str, context: str | None = None) -> dict[str, Any] | None:
    """
    Evaluate a turn with bounded exponential backoff.

    Returns:
        The stored evaluation, or None once the terminal failure was recorded
    """
    settings = get_settings()
    max_attempts = max(1, settings.EVAL_MAX_ATTEMPTS)
    last_error: Exception | None = None

    for attempt in range(max_attempts):
        try:
            return await evaluate_turn(turn_id, context)
        except Exception as e:
            last_error = e
            if attempt < max_attempts - 1:
                delay = settings.EVAL_RETRY_BASE_DELAY_SECONDS * (2 ** attempt)
                log_with_context(
                    logger,
                    logging.WARNING,
                    f"Evaluation attempt {attempt + 1}/{max_attempts} failed, retrying in {delay:.1f}s: {e}",
                    turn_id=turn_id,
                )
                await asyncio.sleep(delay)

    log_with_context(
        logger,
        logging.ERROR,
        f"Evaluation abandoned after {max_attempts} attempts: {last_error}",
        turn_id=turn_id,
    )
    try:
        record_evaluation_failure(turn_id, max_attempts, str(last_error))
    except Exception as e:
        logger.error(f"Failed to record evaluation failure for turn {turn_id}: {e}")
    return None


async def evaluate_unevaluated_turns() -> BatchEvaluationSummary:
    """Evaluate, one at a time, every stored turn that has no evaluation yet."""
    turns = list_turns()
    evaluated = list_evaluated_turn_ids()
    pending = [str(t["id"]) for t in turns if str(t["id"]) not in evaluated]
    logger.info(f"Batch evaluation of {len(pending)} of {len(turns)} turns")

    summary = BatchEvaluationSummary(total_turns=len(turns), evaluated_before=len(turns) - len(pending))
    for turn_id in pending:
        if await evaluate_turn_with_retry(turn_id) is None:
            summary.failed += 1
        else:
            summary.newly_evaluated += 1
    return summary


def schedule_evaluation(turn_id: str, context: str | None = None) -> asyncio.Task:
    """Run ``evaluate_turn_with_retry`` detached on the running event loop."""
    task = asyncio.create_task(evaluate_turn_with_retry(turn_id, context))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def drain_background_tasks(timeout: float = 10.0) -> int:
    """Wait for detached evaluations at shutdown. Returns how many were still pending."""
    pending = list(_background_tasks)
    if pending:
        logger.info(f"Waiting for {len(pending)} background evaluations")
        await asyncio.wait(pending, timeout=timeout)
    return len(pending)
