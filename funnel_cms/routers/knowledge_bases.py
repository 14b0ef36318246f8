from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import documents
from funnel_cms.core.content_resources import commit_or_400
from funnel_cms.deps import get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["knowledge-bases"])


def _kb_or_404(db: Session, kb_id: int) -> models.KnowledgeBase:
    kb = db.query(models.KnowledgeBase).filter(models.KnowledgeBase.id == kb_id).first()
    if kb is None:
        raise HTTPException(status_code=404, detail="Knowledge base not found")
    return kb


def document_counts(db: Session, kb_ids: list[int]) -> dict[int, int]:
    if not kb_ids:
        return {}
    rows = (
        db.query(models.Document.knowledge_base_id, func.count(models.Document.id))
        .filter(models.Document.knowledge_base_id.in_(kb_ids), models.Document.deleted_at.is_(None))
        .group_by(models.Document.knowledge_base_id)
        .all()
    )
    return {kb_id: int(count) for kb_id, count in rows}


def to_kb_out(kb: models.KnowledgeBase, count: int = 0) -> schemas.KnowledgeBaseOut:
    out = schemas.KnowledgeBaseOut.model_validate(kb)
    out.document_count = count
    return out


@router.get("", response_model=list[schemas.KnowledgeBaseOut])
def list_knowledge_bases(
    search: str | None = Query(default=None),
    kb_type: str | None = Query(default=None, alias="type"),
    include_inactive: bool = Query(default=True),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    query = db.query(models.KnowledgeBase)
    keyword = (search or "").strip()
    if keyword:
        query = query.filter(models.KnowledgeBase.name.ilike(f"%{keyword}%"))
    if kb_type:
        query = query.filter(models.KnowledgeBase.type == kb_type)
    if not include_inactive:
        query = query.filter(models.KnowledgeBase.is_active.is_(True))
    rows = query.order_by(models.KnowledgeBase.created_at.desc(), models.KnowledgeBase.id.desc()).all()
    counts = document_counts(db, [row.id for row in rows])
    return [to_kb_out(row, counts.get(row.id, 0)) for row in rows]


@router.post("", response_model=schemas.KnowledgeBaseOut, status_code=status.HTTP_201_CREATED)
def create_knowledge_base(
    payload: schemas.KnowledgeBaseCreateRequest,
    db: Session = Depends(get_db_write),
    current_user: models.User = Depends(get_current_user),
):
    kb = models.KnowledgeBase(
        name=payload.name.strip(),
        description=payload.description,
        type=payload.type,
        is_active=payload.is_active,
        created_by=current_user.id,
    )
    db.add(kb)
    commit_or_400(db, "Create knowledge base")
    db.refresh(kb)
    return to_kb_out(kb)


@router.get("/{kb_id}", response_model=schemas.KnowledgeBaseOut)
def get_knowledge_base(
    kb_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    kb = _kb_or_404(db, kb_id)
    return to_kb_out(kb, document_counts(db, [kb.id]).get(kb.id, 0))


@router.put("/{kb_id}", response_model=schemas.KnowledgeBaseOut)
def update_knowledge_base(
    kb_id: int,
    payload: schemas.KnowledgeBaseUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    kb = _kb_or_404(db, kb_id)
    if payload.name is not None:
        kb.name = payload.name.strip()
    if payload.description is not None:
        kb.description = payload.description
    if payload.is_active is not None:
        kb.is_active = payload.is_active
    db.add(kb)
    commit_or_400(db, "Update knowledge base")
    db.refresh(kb)
    return to_kb_out(kb, document_counts(db, [kb.id]).get(kb.id, 0))


@router.delete("/{kb_id}", response_model=schemas.DeleteResult)
def delete_knowledge_base(
    kb_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    kb = _kb_or_404(db, kb_id)
    if document_counts(db, [kb.id]).get(kb.id, 0):
        raise HTTPException(status_code=400, detail="Knowledge base still has documents")
    in_use = db.query(models.Project.id).filter(models.Project.kb_id == kb.id).first()
    if in_use:
        raise HTTPException(status_code=400, detail="Knowledge base is used by a project")

    # Soft-deleted documents keep their foreign key; detach their chunks first.
    deleted_ids = [row[0] for row in db.query(models.Document.id).filter(models.Document.knowledge_base_id == kb.id)]
    if deleted_ids:
        db.query(models.DocumentChunk).filter(models.DocumentChunk.document_id.in_(deleted_ids)).delete(
            synchronize_session=False
        )
        db.query(models.ProjectDocument).filter(models.ProjectDocument.document_id.in_(deleted_ids)).delete(
            synchronize_session=False
        )
        db.query(models.Document).filter(models.Document.id.in_(deleted_ids)).delete(synchronize_session=False)
    db.delete(kb)
    commit_or_400(db, "Delete knowledge base")
    return schemas.DeleteResult(id=kb_id)


@router.get("/{kb_id}/documents", response_model=list[schemas.DocumentOut])
def list_knowledge_base_documents(
    kb_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    kb = _kb_or_404(db, kb_id)
    rows = (
        documents.live_documents(db)
        .filter(models.Document.knowledge_base_id == kb.id)
        .order_by(models.Document.created_at.desc(), models.Document.id.desc())
        .all()
    )
    return [documents.to_document_out(row, kb.name) for row in rows]
