from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import content_resources
from funnel_cms.core.content_resources import RESEARCH_SUBJECTS
from funnel_cms.deps import get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["research-subjects"])


def _ensure_subject_type(db: Session, subject_type_id: int | None) -> None:
    if subject_type_id is None:
        return
    exists = db.query(models.SubjectType.id).filter(models.SubjectType.id == subject_type_id).first()
    if not exists:
        raise HTTPException(status_code=400, detail="Invalid subject_type_id")


@router.get("", response_model=list[schemas.ResearchSubjectOut])
def list_research_subjects(
    search: str | None = Query(default=None),
    subject_type_id: int | None = Query(default=None),
    status_filter: models.ContentStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    rows = content_resources.list_rows(db, RESEARCH_SUBJECTS, search)
    if subject_type_id is not None:
        rows = [row for row in rows if row.subject_type_id == subject_type_id]
    if status_filter is not None:
        rows = [row for row in rows if row.status == status_filter]
    return rows


@router.post("", response_model=schemas.ResearchSubjectOut, status_code=status.HTTP_201_CREATED)
def create_research_subject(
    payload: schemas.ResearchSubjectCreateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    _ensure_subject_type(db, payload.subject_type_id)
    values = payload.model_dump()
    values["name"] = payload.name.strip()
    return content_resources.create_row(db, RESEARCH_SUBJECTS, values)


@router.post("/reorder", response_model=list[schemas.ResearchSubjectOut])
def reorder_research_subjects(
    payload: schemas.ReorderRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    return content_resources.reorder_rows(db, RESEARCH_SUBJECTS, payload)


@router.get("/{subject_id}", response_model=schemas.ResearchSubjectOut)
def get_research_subject(
    subject_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return content_resources.get_or_404(db, RESEARCH_SUBJECTS, subject_id)


@router.put("/{subject_id}", response_model=schemas.ResearchSubjectOut)
def update_research_subject(
    subject_id: int,
    payload: schemas.ResearchSubjectUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = content_resources.get_or_404(db, RESEARCH_SUBJECTS, subject_id)
    _ensure_subject_type(db, payload.subject_type_id)
    content_resources.apply_updates(row, payload.model_dump(exclude_unset=True))
    return content_resources.save_row(db, RESEARCH_SUBJECTS, row)


@router.delete("/{subject_id}", response_model=schemas.DeleteResult)
def delete_research_subject(
    subject_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = content_resources.get_or_404(db, RESEARCH_SUBJECTS, subject_id)
    return content_resources.delete_row(db, RESEARCH_SUBJECTS, row)


@router.post(
    "/{subject_id}/duplicate",
    response_model=schemas.ResearchSubjectOut,
    status_code=status.HTTP_201_CREATED,
)
def duplicate_research_subject(
    subject_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    source = content_resources.get_or_404(db, RESEARCH_SUBJECTS, subject_id)
    return content_resources.duplicate_row(
        db,
        RESEARCH_SUBJECTS,
        source,
        status=models.ContentStatus.draft,
    )
