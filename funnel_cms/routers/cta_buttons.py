from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import content_resources
from funnel_cms.core.content_resources import CTA_BUTTONS
from funnel_cms.deps import get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["cta-buttons"])


@router.get("", response_model=list[schemas.CtaButtonOut])
def list_cta_buttons(
    search: str | None = Query(default=None),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return content_resources.list_rows(db, CTA_BUTTONS, search)


@router.post("", response_model=schemas.CtaButtonOut, status_code=status.HTTP_201_CREATED)
def create_cta_button(
    payload: schemas.CtaButtonCreateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    values = payload.model_dump()
    values["label"] = payload.label.strip()
    values["url"] = payload.url.strip()
    return content_resources.create_row(db, CTA_BUTTONS, values)


@router.post("/reorder", response_model=list[schemas.CtaButtonOut])
def reorder_cta_buttons(
    payload: schemas.ReorderRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    return content_resources.reorder_rows(db, CTA_BUTTONS, payload)


@router.get("/{cta_button_id}", response_model=schemas.CtaButtonOut)
def get_cta_button(
    cta_button_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return content_resources.get_or_404(db, CTA_BUTTONS, cta_button_id)


@router.put("/{cta_button_id}", response_model=schemas.CtaButtonOut)
def update_cta_button(
    cta_button_id: int,
    payload: schemas.CtaButtonUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = content_resources.get_or_404(db, CTA_BUTTONS, cta_button_id)
    values = payload.model_dump(exclude_unset=True)
    if values.get("url") is not None:
        values["url"] = values["url"].strip()
    content_resources.apply_updates(row, values)
    return content_resources.save_row(db, CTA_BUTTONS, row)


@router.delete("/{cta_button_id}", response_model=schemas.DeleteResult)
def delete_cta_button(
    cta_button_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = content_resources.get_or_404(db, CTA_BUTTONS, cta_button_id)
    return content_resources.delete_row(db, CTA_BUTTONS, row)


@router.post("/{cta_button_id}/duplicate", response_model=schemas.CtaButtonOut, status_code=status.HTTP_201_CREATED)
def duplicate_cta_button(
    cta_button_id: int,
    section_id: int | None = Query(default=None),
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    source = content_resources.get_or_404(db, CTA_BUTTONS, cta_button_id)
    return content_resources.duplicate_row(db, CTA_BUTTONS, source, section_id=section_id)
