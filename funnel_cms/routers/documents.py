import logging
import re

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import ValidationError
from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from funnel_cms import models, schemas
from funnel_cms.core import documents, storage
from funnel_cms.core.content_resources import commit_or_400
from funnel_cms.deps import get_current_user, get_db_read, get_db_write, require_automation_secret


router = APIRouter(tags=["documents"])
kb_documents_router = APIRouter(tags=["documents"])
logger = logging.getLogger(__name__)

TIMESTAMP_PREFIX_PATTERN = re.compile(r"^\d{10,}-")
DOWNLOAD_NAME_PATTERN = re.compile(r'[\\/:*?"<>|]+')


def _document_or_404(db: Session, document_id: int) -> models.Document:
    document = documents.live_documents(db).filter(models.Document.id == document_id).first()
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


def _ensure_knowledge_base(db: Session, kb_id: int) -> models.KnowledgeBase:
    kb = db.query(models.KnowledgeBase).filter(models.KnowledgeBase.id == kb_id).first()
    if kb is None:
        raise HTTPException(status_code=400, detail="Invalid knowledge_base_id")
    return kb


def title_from_filename(filename: str | None) -> str:
    name = (filename or "").rsplit("/", 1)[-1]
    name = TIMESTAMP_PREFIX_PATTERN.sub("", name)
    if "." in name:
        name = name.rsplit(".", 1)[0]
    return name.strip() or "Untitled Document"


def download_filename(title: str | None) -> str:
    ascii_title = (title or "").encode("ascii", "ignore").decode("ascii")
    cleaned = DOWNLOAD_NAME_PATTERN.sub("_", ascii_title).strip()
    return f"{cleaned}.md" if cleaned else "document.md"


def _parse_bool(value, default: bool = True) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _save_document(db: Session, document: models.Document) -> models.Document:
    db.add(document)
    try:
        commit_or_400(db, "Create document")
    except HTTPException:
        documents.discard_stored_file(document.storage_path)
        raise
    db.refresh(document)
    documents.notify_uploaded(document)
    logger.info(
        "document created: id=%s kb=%s chunk=%s",
        document.id,
        document.knowledge_base_id,
        document.should_chunk,
    )
    return document


@router.get("", response_model=list[schemas.DocumentOut])
def list_documents(
    kb_id: int | None = Query(default=None),
    project_id: int | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    query = documents.live_documents(db)
    if kb_id is not None:
        query = query.filter(models.Document.knowledge_base_id == kb_id)
    if project_id is not None:
        linked = select(models.ProjectDocument.document_id).where(models.ProjectDocument.project_id == project_id)
        query = query.filter(models.Document.id.notin_(linked))
    keyword = (search or "").strip()
    if keyword:
        pattern = f"%{keyword}%"
        query = query.filter(or_(models.Document.title.ilike(pattern), models.Document.file_type.ilike(pattern)))
    rows = query.order_by(models.Document.created_at.desc(), models.Document.id.desc()).all()
    return [documents.to_document_out(row) for row in rows]


@router.post("/{document_id}/chunks", response_model=schemas.DocumentOut)
def replace_document_chunks(
    document_id: int,
    payload: schemas.ChunkReplaceRequest,
    db: Session = Depends(get_db_write),
    _: None = Depends(require_automation_secret),
):
    document = _document_or_404(db, document_id)
    count = documents.replace_chunks(
        db,
        document,
        ((chunk.chunk_index, chunk.content, chunk.embedding) for chunk in payload.chunks),
    )
    commit_or_400(db, "Replace chunks")
    db.refresh(document)
    logger.info("chunks replaced: document_id=%s count=%s", document_id, count)
    return documents.to_document_out(document)


@kb_documents_router.post("/upload", response_model=schemas.DocumentOut, status_code=status.HTTP_201_CREATED)
async def upload_document(
    request: Request,
    db: Session = Depends(get_db_write),
    current_user: models.User = Depends(get_current_user),
):
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        upload = form.get("file")
        if not isinstance(upload, UploadFile) or not upload.filename:
            raise HTTPException(status_code=400, detail="file is required")
        try:
            kb_id = int(form.get("knowledge_base_id") or 0)
        except ValueError as error:
            raise HTTPException(status_code=400, detail="knowledge_base_id must be an integer") from error
        if not kb_id:
            raise HTTPException(status_code=400, detail="knowledge_base_id is required")
        _ensure_knowledge_base(db, kb_id)

        payload = await upload.read()
        if not payload:
            raise HTTPException(status_code=400, detail="File is empty")
        mime_type = upload.content_type or "application/octet-stream"
        storage_path = documents.build_storage_path(kb_id, upload.filename)
        try:
            file_url = storage.upload_bytes(payload, storage_path, mime_type)
        except storage.StorageError as error:
            logger.exception("document upload failed: path=%s", storage_path)
            raise HTTPException(status_code=500, detail=f"Failed to upload file to storage: {error}") from error

        should_chunk = _parse_bool(form.get("should_chunk"))
        title = str(form.get("title") or "").strip() or title_from_filename(upload.filename)
        document = models.Document(
            knowledge_base_id=kb_id,
            title=title[:500],
            source_type="upload",
            storage_path=storage_path,
            file_url=file_url,
            file_type=documents.file_type_from_name(upload.filename),
            mime_type=mime_type,
            file_size=len(payload),
            status=documents.initial_status(should_chunk),
            should_chunk=should_chunk,
            doc_metadata={"original_filename": upload.filename},
            created_by=current_user.id,
        )
        return documents.to_document_out(_save_document(db, document))

    try:
        body = schemas.DocumentTextCreateRequest.model_validate(await request.json())
    except ValidationError as error:
        raise HTTPException(status_code=400, detail=error.errors()[0].get("msg", "Invalid request")) from error
    except ValueError as error:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from error
    _ensure_knowledge_base(db, body.knowledge_base_id)
    document = models.Document(
        knowledge_base_id=body.knowledge_base_id,
        title=body.title.strip(),
        source_type="text",
        content=body.content,
        file_type="md",
        mime_type="text/markdown",
        file_size=len(body.content.encode("utf-8")),
        status=documents.initial_status(body.should_chunk),
        should_chunk=body.should_chunk,
        doc_metadata={},
        created_by=current_user.id,
    )
    return documents.to_document_out(_save_document(db, document))


@kb_documents_router.get("/{document_id}", response_model=schemas.DocumentOut)
def get_document(
    document_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return documents.to_document_out(_document_or_404(db, document_id))


@kb_documents_router.get("/{document_id}/download")
def download_document(
    document_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    document = _document_or_404(db, document_id)
    if not document.storage_path:
        return Response(
            content=(document.content or "").encode("utf-8"),
            media_type="text/markdown; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{download_filename(document.title)}"'},
        )

    try:
        data = storage.download_bytes(document.storage_path)
    except storage.StorageError as error:
        logger.exception("document download failed: id=%s", document_id)
        raise HTTPException(status_code=500, detail=f"Failed to download file: {error}") from error

    filename = document.storage_path.rsplit("/", 1)[-1]
    return Response(
        content=data,
        media_type=document.mime_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@kb_documents_router.delete("/{document_id}", response_model=schemas.DocumentRemoveOut)
def delete_document(
    document_id: int,
    db: Session = Depends(get_db_write),
    current_user: models.User = Depends(get_current_user),
):
    result = documents.soft_delete_document(db, document_id, current_user.id)
    if not result.found:
        raise HTTPException(status_code=404, detail="Document not found")
    return schemas.DocumentRemoveOut(
        id=result.document_id,
        already_deleted=result.already_deleted,
        chunks_deleted=result.chunks_deleted,
    )
