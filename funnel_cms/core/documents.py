from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import storage, webhooks
from funnel_cms.core.config import settings
from funnel_cms.core.media_urls import sanitize_filename


logger = logging.getLogger(__name__)

DOCUMENT_PREFIX = "knowledge-bases"


@dataclass
class RemoveResult:
    document_id: int
    found: bool
    already_deleted: bool = False
    chunks_deleted: int = 0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_storage_path(knowledge_base_id: int, filename: str | None, now: datetime | None = None) -> str:
    timestamp = int((now or utc_now()).timestamp() * 1000)
    return f"{DOCUMENT_PREFIX}/{knowledge_base_id}/{timestamp}-{sanitize_filename(filename, 'document')}"


def file_type_from_name(filename: str | None) -> str | None:
    name = (filename or "").rsplit("/", 1)[-1]
    if "." not in name:
        return None
    return name.rsplit(".", 1)[-1].lower() or None


def initial_status(should_chunk: bool) -> models.DocumentStatus:
    return models.DocumentStatus.processing if should_chunk else models.DocumentStatus.completed


def live_documents(db: Session):
    return db.query(models.Document).filter(models.Document.deleted_at.is_(None))


def to_document_out(document: models.Document, knowledge_base_name: str | None = None) -> schemas.DocumentOut:
    out = schemas.DocumentOut.model_validate(document)
    if knowledge_base_name is None and document.knowledge_base is not None:
        knowledge_base_name = document.knowledge_base.name
    out.knowledge_base_name = knowledge_base_name
    return out


def notify_uploaded(document: models.Document) -> None:
    if not document.should_chunk:
        return
    webhooks.fire_and_forget(
        settings.N8N_RAG_UPLOAD_DOCUMENT_WEBHOOK_URL,
        {
            "document_id": document.id,
            "knowledge_base_id": document.knowledge_base_id,
            "storage_path": document.storage_path,
            "url": document.file_url,
            "title": document.title,
        },
    )


def discard_stored_file(storage_path: str | None) -> None:
    if not storage_path:
        return
    try:
        storage.delete_object(storage_path)
    except storage.StorageError:
        logger.warning("orphan upload cleanup failed: path=%s", storage_path, exc_info=True)


def _delete_chunks(db: Session, document_id: int) -> int:
    try:
        deleted = (
            db.query(models.DocumentChunk)
            .filter(models.DocumentChunk.document_id == document_id)
            .delete(synchronize_session=False)
        )
        db.query(models.Document).filter(models.Document.id == document_id).update(
            {models.Document.chunk_count: 0},
            synchronize_session=False,
        )
        db.commit()
        return int(deleted or 0)
    except SQLAlchemyError:
        db.rollback()
        logger.warning("chunk cleanup failed after soft delete: document_id=%s", document_id, exc_info=True)
        return 0


def soft_delete_document(db: Session, document_id: int, actor_id: int | None = None) -> RemoveResult:
    """Mark a document deleted.

    The ``deleted_at IS NULL`` predicate makes concurrent or repeated calls
    safe: only the first one flips the row, the others report
    ``already_deleted``. Chunk removal and the remove webhook are best-effort
    and never undo the soft delete.
    """
    updated = (
        db.query(models.Document)
        .filter(models.Document.id == document_id, models.Document.deleted_at.is_(None))
        .update({models.Document.deleted_at: utc_now()}, synchronize_session=False)
    )
    db.commit()

    if not updated:
        exists = db.query(models.Document.id).filter(models.Document.id == document_id).first()
        if exists is None:
            return RemoveResult(document_id=document_id, found=False)
        return RemoveResult(document_id=document_id, found=True, already_deleted=True)

    document = db.query(models.Document).filter(models.Document.id == document_id).first()
    chunks_deleted = _delete_chunks(db, document_id)
    logger.info("document soft-deleted: id=%s actor=%s chunks=%s", document_id, actor_id, chunks_deleted)

    webhooks.fire_and_forget(
        settings.N8N_RAG_REMOVE_DOCUMENT_WEBHOOK_URL,
        {
            "document_id": document_id,
            "knowledge_base_id": document.knowledge_base_id if document else None,
            "storage_path": document.storage_path if document else None,
        },
    )
    return RemoveResult(document_id=document_id, found=True, chunks_deleted=chunks_deleted)


def replace_chunks(
    db: Session,
    document: models.Document,
    chunks: Iterable[tuple[int | None, str, list[float] | None]],
) -> int:
    db.query(models.DocumentChunk).filter(models.DocumentChunk.document_id == document.id).delete(
        synchronize_session=False
    )
    count = 0
    for index, (chunk_index, content, embedding) in enumerate(chunks):
        db.add(
            models.DocumentChunk(
                document_id=document.id,
                chunk_index=chunk_index if chunk_index is not None else index,
                content=content,
                embedding=embedding,
            )
        )
        count += 1
    document.chunk_count = count
    document.status = models.DocumentStatus.completed
    db.add(document)
    return count
