from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core.content_resources import commit_or_400
from funnel_cms.deps import get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["subject-types"])

DEFAULT_SUBJECT_TYPES = [
    ("niche", "Niche", "An industry vertical in a geography", "target"),
    ("company", "Company", "A single company or brand", "building"),
    ("persona", "Persona", "A buyer persona or job role", "user"),
]


def ensure_default_subject_types(db: Session) -> None:
    for name, label, description, icon in DEFAULT_SUBJECT_TYPES:
        exists = db.query(models.SubjectType).filter(models.SubjectType.name == name).first()
        if exists:
            continue
        db.add(models.SubjectType(name=name, label=label, description=description, icon=icon, enabled=True))
    db.commit()


def _subject_type_or_404(db: Session, subject_type_id: int) -> models.SubjectType:
    row = db.query(models.SubjectType).filter(models.SubjectType.id == subject_type_id).first()
    if row is None:
        raise HTTPException(status_code=404, detail="Subject type not found")
    return row


def _ensure_name_free(db: Session, name: str, exclude_id: int | None = None) -> None:
    query = db.query(models.SubjectType.id).filter(models.SubjectType.name == name)
    if exclude_id is not None:
        query = query.filter(models.SubjectType.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=400, detail="Subject type name already exists")


@router.get("", response_model=list[schemas.SubjectTypeOut])
def list_subject_types(
    enabled: bool | None = Query(default=None),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    query = db.query(models.SubjectType)
    if enabled is not None:
        query = query.filter(models.SubjectType.enabled.is_(enabled))
    return query.order_by(models.SubjectType.label.asc(), models.SubjectType.id.asc()).all()


@router.post("", response_model=schemas.SubjectTypeOut, status_code=status.HTTP_201_CREATED)
def create_subject_type(
    payload: schemas.SubjectTypeCreateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    name = payload.name.strip().lower()
    _ensure_name_free(db, name)
    row = models.SubjectType(
        name=name,
        label=payload.label.strip(),
        description=payload.description,
        icon=payload.icon,
        enabled=payload.enabled,
    )
    db.add(row)
    commit_or_400(db, "Create subject type")
    db.refresh(row)
    return row


@router.get("/{subject_type_id}", response_model=schemas.SubjectTypeOut)
def get_subject_type(
    subject_type_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return _subject_type_or_404(db, subject_type_id)


@router.put("/{subject_type_id}", response_model=schemas.SubjectTypeOut)
def update_subject_type(
    subject_type_id: int,
    payload: schemas.SubjectTypeUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = _subject_type_or_404(db, subject_type_id)
    if payload.name is not None:
        name = payload.name.strip().lower()
        _ensure_name_free(db, name, exclude_id=row.id)
        row.name = name
    if payload.label is not None:
        row.label = payload.label.strip()
    if payload.description is not None:
        row.description = payload.description
    if payload.icon is not None:
        row.icon = payload.icon
    if payload.enabled is not None:
        row.enabled = payload.enabled
    db.add(row)
    commit_or_400(db, "Update subject type")
    db.refresh(row)
    return row


@router.delete("/{subject_type_id}", response_model=schemas.DeleteResult)
def delete_subject_type(
    subject_type_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = _subject_type_or_404(db, subject_type_id)
    db.query(models.ResearchSubject).filter(models.ResearchSubject.subject_type_id == row.id).update(
        {models.ResearchSubject.subject_type_id: None},
        synchronize_session=False,
    )
    db.query(models.Workflow).filter(models.Workflow.subject_type_id == row.id).update(
        {models.Workflow.subject_type_id: None},
        synchronize_session=False,
    )
    db.delete(row)
    commit_or_400(db, "Delete subject type")
    return schemas.DeleteResult(id=subject_type_id)
