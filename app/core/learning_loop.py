"""Administrative learning-loop runs: insight extraction and deduplication.

Both runs are idempotent. Extraction records every mined evaluation and
feedback row in the extraction ledger; deduplication is a no-op once no
two active insights in a category mean the same thing.
"""

import logging
from typing import Iterator

from app.chains.deduplicate_insights import propose_merge_groups
from app.chains.extract_insights import build_example, is_near_duplicate, propose_insights
from app.core.config import get_settings
from app.core.logging import get_logger, log_with_context
from app.core.schemas_assistant import DeduplicationSummary, ExtractionSummary, InsightCategory
from app.db.conversations import get_turn
from app.db.evaluations import list_poor_evaluations
from app.db.feedback import list_commented_disapprovals
from app.db.insights import (
    create_insight,
    list_insights,
    list_processed_source_ids,
    record_extraction,
    set_insight_active,
    update_insight,
)

logger = get_logger(__name__)

EVALUATION_SOURCE = "evaluation"
FEEDBACK_SOURCE = "feedback"
FACT_PREFIX = "FACT:"


def _active_texts() -> list[str]:
    return [row["text"] for row in list_insights(active_only=True)]


def _batches(rows: list[dict], size: int) -> Iterator[list[dict]]:
    size = max(1, size)
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


# =============================================================================
# Extraction
# =============================================================================


async def extract_from_evaluations() -> int:
    """Mine every unprocessed poor evaluation, EXTRACTION_BATCH_SIZE at a time. Returns insights created."""
    settings = get_settings()
    processed = list_processed_source_ids(EVALUATION_SOURCE)
    pending = [
        e for e in list_poor_evaluations(settings.POOR_QUALITY_THRESHOLD)
        if str(e["id"]) not in processed
    ]

    if not pending:
        return 0

    existing = _active_texts()
    created = 0
    for batch in _batches(pending, settings.EXTRACTION_BATCH_SIZE):
        logger.debug(f"Mining batch of {len(batch)} poor evaluations")
        for evaluation in batch:
            created += await _extract_from_evaluation(evaluation, existing)

    return created


async def _extract_from_evaluation(evaluation: dict, existing: list[str]) -> int:
    turn = get_turn(evaluation["conversation_turn_id"])
    if not turn:
        logger.warning(f"Evaluation {evaluation['id']} references a missing turn, skipping")
        record_extraction(EVALUATION_SOURCE, evaluation["id"], 0)
        return 0

    try:
        proposals = await propose_insights(turn["user_question"], turn["bot_response"], evaluation)
    except Exception as e:
        # Left out of the ledger so the next run retries it
        logger.warning(f"Insight judge failed for evaluation {evaluation['id']}: {e}")
        return 0

    example = build_example(turn["user_question"], turn["bot_response"])
    made_here = 0
    for proposal in proposals:
        if is_near_duplicate(proposal.text, existing):
            logger.debug(f"Skipping near-duplicate insight: {proposal.text[:80]}")
            continue
        create_insight(
            category=proposal.category,
            text=proposal.text.strip(),
            importance=proposal.importance,
            examples=[example],
            source_evaluation_id=evaluation["id"],
        )
        existing.append(proposal.text)
        made_here += 1

    record_extraction(EVALUATION_SOURCE, evaluation["id"], made_here)
    return made_here


def extract_from_feedback() -> int:
    """Turn every unprocessed commented disapproval into a FACT insight. Returns insights created."""
    settings = get_settings()
    processed = list_processed_source_ids(FEEDBACK_SOURCE)
    pending = [f for f in list_commented_disapprovals() if str(f["id"]) not in processed]

    if not pending:
        return 0

    existing = _active_texts()
    created = 0
    for batch in _batches(pending, settings.EXTRACTION_BATCH_SIZE):
        for feedback in batch:
            comment = feedback["comment"].strip()
            text = f"{FACT_PREFIX} {comment}"
            made_here = 0
            if is_near_duplicate(comment, existing):
                logger.debug(f"Skipping feedback {feedback['id']}, already covered by an active insight")
            else:
                turn = get_turn(feedback["conversation_turn_id"])
                create_insight(
                    category=InsightCategory.IMPROVEMENT,
                    text=text,
                    importance=settings.FEEDBACK_INSIGHT_IMPORTANCE,
                    examples=[turn["user_question"]] if turn else [],
                    source_feedback_id=feedback["id"],
                )
                existing.append(text)
                made_here = 1

            record_extraction(FEEDBACK_SOURCE, feedback["id"], made_here)
            created += made_here

    return created


async def run_extraction() -> ExtractionSummary:
    """Run both extraction paths over everything not yet processed."""
    summary = ExtractionSummary(
        evaluation_insights=await extract_from_evaluations(),
        feedback_insights=extract_from_feedback(),
    )
    log_with_context(
        logger,
        logging.INFO,
        "Insight extraction finished",
        evaluation_insights=summary.evaluation_insights,
        feedback_insights=summary.feedback_insights,
    )
    return summary


# =============================================================================
# Deduplication
# =============================================================================


async def deduplicate_category(category: InsightCategory) -> int:
    """Merge equivalent active insights of one category. Returns insights retired."""
    rows = list_insights(active_only=True, category=category)
    if len(rows) < 2:
        return 0

    groups = await propose_merge_groups(category.value, rows)
    by_id = {str(row["id"]): row for row in rows}

    retired = 0
    for group in groups:
        keeper_id, *duplicate_ids = [str(i) for i in group.insight_ids]
        members = [by_id[i] for i in group.insight_ids]
        examples: list[str] = []
        for member in members:
            for example in member.get("examples") or []:
                if example not in examples:
                    examples.append(example)

        update_insight(
            keeper_id,
            {
                "text": group.merged_text,
                "importance": max(int(m["importance"]) for m in members),
                "examples": examples,
            },
        )
        for duplicate_id in duplicate_ids:
            set_insight_active(duplicate_id, False)
            retired += 1

        logger.info(f"Merged {len(members)} {category.value} insights into {keeper_id}")

    return retired


async def run_deduplication() -> DeduplicationSummary:
    """Deduplicate every category independently."""
    retired = 0
    for category in InsightCategory:
        try:
            retired += await deduplicate_category(category)
        except Exception as e:
            logger.error(f"Deduplication of {category.value} insights failed: {e}")
    log_with_context(logger, logging.INFO, "Insight deduplication finished", retired=retired)
    return DeduplicationSummary(retired=retired)
