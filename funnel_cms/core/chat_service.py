from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from funnel_cms import models
from funnel_cms.core import ai_service
from funnel_cms.core.config import settings


logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.5
CITATION_TEXT_CHARS = 200
CITATION_PROBE_CHARS = 50
TITLE_MAX_CHARS = 100


@dataclass
class RetrievedChunk:
    id: int
    document_id: int
    document_title: str
    content: str
    score: float


def conversation_title(content: str) -> str:
    return content[:TITLE_MAX_CHARS].strip()


def _project_document_ids(db: Session, project_id: int) -> set[int]:
    project = db.query(models.Project).filter(models.Project.id == project_id).first()
    if project is None:
        return set()
    linked = select(models.ProjectDocument.document_id).where(models.ProjectDocument.project_id == project_id)
    rows = (
        db.query(models.Document.id)
        .filter(
            models.Document.deleted_at.is_(None),
            or_(
                models.Document.knowledge_base_id == project.kb_id,
                models.Document.id.in_(linked),
            ),
        )
        .all()
    )
    return {row[0] for row in rows}


def context_document_ids(db: Session, contexts: Iterable[models.ConversationContext]) -> list[int]:
    ids: set[int] = set()
    for context in contexts:
        if context.context_type == models.ContextType.document:
            row = (
                db.query(models.Document.id)
                .filter(models.Document.id == context.context_id, models.Document.deleted_at.is_(None))
                .first()
            )
            if row:
                ids.add(row[0])
        elif context.context_type == models.ContextType.project:
            ids.update(_project_document_ids(db, context.context_id))
        elif context.context_type == models.ContextType.knowledge_base:
            rows = (
                db.query(models.Document.id)
                .filter(
                    models.Document.knowledge_base_id == context.context_id,
                    models.Document.deleted_at.is_(None),
                )
                .all()
            )
            ids.update(row[0] for row in rows)
    return sorted(ids)


def rank_chunks(
    query_embedding: list[float],
    rows: Iterable[tuple[models.DocumentChunk, str]],
    top_k: int,
    threshold: float = MATCH_THRESHOLD,
) -> list[RetrievedChunk]:
    scored = []
    for chunk, title in rows:
        score = ai_service.cosine_similarity(query_embedding, chunk.embedding or [])
        if score < threshold:
            continue
        scored.append(
            RetrievedChunk(
                id=chunk.id,
                document_id=chunk.document_id,
                document_title=title or "Untitled Document",
                content=chunk.content,
                score=score,
            )
        )
    scored.sort(key=lambda item: item.score, reverse=True)
    return scored[:top_k]


def retrieve_chunks(
    db: Session,
    contexts: Iterable[models.ConversationContext],
    query: str,
    top_k: int | None = None,
) -> list[RetrievedChunk]:
    document_ids = context_document_ids(db, contexts)
    if not document_ids:
        return []
    if not ai_service.is_enabled():
        logger.info("retrieval skipped: embeddings are not configured")
        return []

    try:
        query_embedding = ai_service.generate_embedding(query)
    except ai_service.AIServiceError:
        logger.warning("query embedding failed, answering without context", exc_info=True)
        return []

    rows = (
        db.query(models.DocumentChunk, models.Document.title)
        .join(models.Document, models.Document.id == models.DocumentChunk.document_id)
        .filter(
            models.DocumentChunk.document_id.in_(document_ids),
            models.DocumentChunk.embedding.isnot(None),
        )
        .all()
    )
    return rank_chunks(query_embedding, rows, top_k or settings.CHAT_RAG_TOP_K)


def _describe_contexts(contexts: list[models.ConversationContext]) -> str:
    types = {context.context_type for context in contexts}
    if len(types) != 1:
        return "multiple contexts"
    name = next(iter(types)).value
    return f"{name}s" if len(contexts) > 1 else name


def build_system_prompt(chunks: list[RetrievedChunk], contexts: list[models.ConversationContext]) -> str:
    grouped: dict[int, list[RetrievedChunk]] = {}
    for chunk in chunks:
        grouped.setdefault(chunk.document_id, []).append(chunk)

    blocks = []
    for doc_chunks in grouped.values():
        title = doc_chunks[0].document_title
        blocks.append(
            "\n\n".join(
                f"[Document: {title} - Chunk {index}]\n{chunk.content}"
                for index, chunk in enumerate(doc_chunks, start=1)
            )
        )
    context_text = "\n\n---\n\n".join(blocks)

    return (
        f"You are a helpful AI assistant answering questions about {_describe_contexts(contexts)}.\n\n"
        f"Context Information:\n{context_text}\n\n"
        "Instructions:\n"
        f"- Synthesize information across all provided documents from {len(contexts)} context(s)\n"
        "- When referencing information, specify which document it came from "
        '(e.g., "According to [Document: Niche Intelligence Report - Chunk 1]...")\n'
        "- If information conflicts between documents or contexts, note the discrepancy\n"
        "- Be specific and accurate in your responses\n"
        "- If the question cannot be answered with the provided context, "
        "politely explain that you don't have that information in the available contexts"
    )


def build_messages(
    history: Iterable[models.ChatMessage],
    system_prompt: str | None = None,
) -> list[dict[str, str]]:
    messages = [{"role": item.role, "content": item.content} for item in history if item.content]
    limit = max(1, settings.CHAT_HISTORY_LIMIT)
    messages = messages[-limit:]
    if system_prompt:
        messages.insert(0, {"role": "system", "content": system_prompt})
    return messages


def extract_citations(answer: str, chunks: list[RetrievedChunk]) -> list[dict[str, Any]]:
    lowered = answer.lower()
    citations = []
    for index, chunk in enumerate(chunks, start=1):
        probe = chunk.content[:CITATION_PROBE_CHARS].lower()
        mentioned = (
            (probe and probe in lowered)
            or f"chunk {index}" in lowered
            or (chunk.document_title and chunk.document_title in answer)
        )
        if mentioned:
            citations.append(
                {
                    "chunk_id": chunk.id,
                    "document_id": chunk.document_id,
                    "text": chunk.content[:CITATION_TEXT_CHARS],
                    "section": chunk.document_title or f"Chunk {index}",
                }
            )
    return citations
