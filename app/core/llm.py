"""LLM client utilities for LangChain integration."""

import json
import re
from typing import TypeVar

from langchain_openai import ChatOpenAI
from pydantic import BaseModel

from app.core.config import get_settings

T = TypeVar("T", bound=BaseModel)


def get_llm(
    model: str | None = None,
    temperature: float = 0.1,
    max_tokens: int | None = None,
) -> ChatOpenAI:
    """
    Get configured LLM instance for LangChain chains.

    Args:
        model: Model name override (defaults to the judge model)
        temperature: Temperature for generation (default 0.1)
        max_tokens: Optional completion cap

    Returns:
        ChatOpenAI instance configured with API key, model and request timeout
    """
    settings = get_settings()

    model_name = model or settings.JUDGE_MODEL

    return ChatOpenAI(
        api_key=settings.OPENAI_API_KEY,
        model=model_name,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=settings.LLM_TIMEOUT_SECONDS,
        max_retries=0,
    )


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_llm_json(raw_output: str, model: type[T]) -> T:
    """
    Parse LLM output as JSON and validate against a Pydantic model.

    Args:
        raw_output: Raw string from LLM response
        model: Pydantic model class to validate against

    Returns:
        Validated Pydantic model instance

    Raises:
        json.JSONDecodeError: If JSON parsing fails after cleanup
        pydantic.ValidationError: If parsed JSON doesn't match schema
    """
    cleaned = _strip_llm_fences(raw_output)
    parsed = json.loads(cleaned)
    return model.model_validate(parsed)


def response_text(response: object) -> str:
    """Return the text content of a chat model response."""
    content = getattr(response, "content", response)
    if isinstance(content, list):
        # Content blocks: keep only text parts
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block) for block in content
        )
    return str(content or "")
