"""Ask the judge which insights in one category say the same thing."""

import json
from typing import Any

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from app.core.config import get_settings
from app.core.llm import get_llm, parse_llm_json, response_text
from app.core.logging import get_logger
from app.core.schemas_assistant import MergeGroup, MergeProposal

logger = get_logger(__name__)

SYSTEM_PROMPT = """\
You maintain a list of lessons that guide a portfolio website assistant. \
All lessons below belong to the same category.

Find groups of lessons that mean materially the same thing. For each group write \
one merged lesson that keeps every distinct detail.

Output ONLY valid JSON:
{
  "merge_groups": [
    {"insight_ids": ["id-1", "id-2"], "merged_text": "..."}
  ]
}

Rules:
- Every group has at least two ids
- An id appears in at most one group
- Leave lessons that are merely related out of any group
- Return {"merge_groups": []} when nothing should be merged
"""


def sanitize_groups(groups: list[MergeGroup], valid_ids: set[str]) -> list[MergeGroup]:
    """Drop unknown ids, ids already claimed by an earlier group, and groups left with < 2 ids."""
    claimed: set[str] = set()
    clean: list[MergeGroup] = []
    for group in groups:
        ids = []
        for insight_id in group.insight_ids:
            insight_id = str(insight_id)
            if insight_id in valid_ids and insight_id not in claimed and insight_id not in ids:
                ids.append(insight_id)
        if len(ids) < 2:
            continue
        claimed.update(ids)
        clean.append(MergeGroup(insight_ids=ids, merged_text=group.merged_text.strip()))
    return clean


async def propose_merge_groups(category: str, insights: list[dict[str, Any]]) -> list[MergeGroup]:
    """
    Propose disjoint merge groups within one category.

    Args:
        category: Category shared by every insight passed in
        insights: Active insight rows of that category

    Returns:
        Sanitized groups; empty when the judge output is malformed

    Raises:
        Exception: If the judge call itself fails
    """
    if len(insights) < 2:
        return []

    settings = get_settings()
    llm = get_llm(model=settings.JUDGE_MODEL, temperature=0)

    listing = "\n".join(
        f"- id={row['id']} (importance {row.get('importance')}): {row.get('text', '')}"
        for row in insights
    )
    response = await llm.ainvoke(
        [
            SystemMessage(content=SYSTEM_PROMPT),
            HumanMessage(content=f"## Category: {category}\n\n{listing}"),
        ]
    )

    try:
        proposal = parse_llm_json(response_text(response), MergeProposal)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Malformed merge proposal for {category}: {e}")
        return []

    return sanitize_groups(proposal.merge_groups, {str(row["id"]) for row in insights})
