"""Corpus retrieval: the one function every answer and evaluation grounds on.

The corpus is small and grows slowly, so retrieval is exhaustive: every
stored document plus every training pair is returned on each call and
``k`` is advisory. Prompt size is bounded by truncating each passage to
``CONTEXT_DOC_PREFIX_CHARS`` when the context text is assembled.

Graceful degradation:
  documents table down  → raw files under KNOWLEDGE_FALLBACK_DIR
  training pairs down   → documents only
  everything down       → [] (never raises)

Usage:
    from app.core.retrieval import format_context, retrieve

    documents = retrieve(question)
    context = format_context(documents)
"""

from __future__ import annotations

from pathlib import Path

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.schemas_assistant import Document

logger = get_logger(__name__)

FALLBACK_SUFFIXES = (".txt", ".md")


def _load_store_documents() -> list[Document]:
    from app.db.documents import list_documents

    return [
        Document(
            id=str(row.get("id")) if row.get("id") is not None else None,
            source_name=row.get("source_name") or "unknown",
            content=row.get("content") or "",
            ingested_at=row.get("ingested_at"),
        )
        for row in list_documents()
    ]


def _load_training_documents() -> list[Document]:
    from app.db.documents import list_training_pairs

    return [
        Document(
            id=str(row.get("id")) if row.get("id") is not None else None,
            source_name=f"training:{row.get('category') or 'general'}",
            content=f"Q: {row.get('question', '')}\nA: {row.get('answer', '')}",
            ingested_at=row.get("created_at"),
        )
        for row in list_training_pairs()
    ]


def load_fallback_documents(directory: str | Path | None = None) -> list[Document]:
    """Read raw text files as documents, skipping any that cannot be read."""
    root = Path(directory or get_settings().KNOWLEDGE_FALLBACK_DIR)
    if not root.is_dir():
        logger.warning(f"Fallback knowledge directory {root} not found")
        return []

    documents: list[Document] = []
    for path in sorted(root.iterdir()):
        if path.suffix.lower() not in FALLBACK_SUFFIXES or not path.is_file():
            continue
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Skipping unreadable knowledge file {path.name}: {e}")
            continue
        if content.strip():
            documents.append(Document(source_name=path.name, content=content))
    return documents


def retrieve(question: str, k: int | None = None) -> list[Document]:
    """
    Return the passages used to ground an answer to ``question``.

    Args:
        question: Visitor question (unused by exhaustive retrieval, logged only)
        k: Advisory result count; the whole corpus is always returned

    Returns:
        Documents followed by training pairs. Never raises.
    """
    documents: list[Document] = []
    try:
        documents = _load_store_documents()
    except Exception as e:
        logger.warning(f"Document store unavailable, reading fallback files: {e}")
        try:
            documents = load_fallback_documents()
        except Exception as fallback_error:
            logger.error(f"Fallback knowledge source failed: {fallback_error}")
            documents = []

    try:
        documents.extend(_load_training_documents())
    except Exception as e:
        logger.warning(f"Training pairs unavailable: {e}")

    logger.debug(f"Retrieved {len(documents)} passages (k={k}) for question of {len(question)} chars")
    return documents


def format_context(documents: list[Document], prefix_chars: int | None = None) -> str:
    """Concatenate passages, each truncated to a fixed prefix."""
    if prefix_chars is None:
        prefix_chars = get_settings().CONTEXT_DOC_PREFIX_CHARS

    sections = []
    for doc in documents:
        content = doc.content.strip()
        if not content:
            continue
        if len(content) > prefix_chars:
            content = content[:prefix_chars].rstrip() + "..."
        sections.append(f"[{doc.source_name}]\n{content}")
    return "\n\n".join(sections)
