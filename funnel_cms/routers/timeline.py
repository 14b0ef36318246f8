from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import content_resources
from funnel_cms.core.content_resources import TIMELINE_ITEMS
from funnel_cms.deps import get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["timeline"])


@router.get("", response_model=list[schemas.TimelineItemOut])
def list_timeline_items(
    search: str | None = Query(default=None),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return content_resources.list_rows(db, TIMELINE_ITEMS, search)


@router.post("", response_model=schemas.TimelineItemOut, status_code=status.HTTP_201_CREATED)
def create_timeline_item(
    payload: schemas.TimelineItemCreateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    values = payload.model_dump()
    values["title"] = payload.title.strip()
    return content_resources.create_row(db, TIMELINE_ITEMS, values)


@router.post("/reorder", response_model=list[schemas.TimelineItemOut])
def reorder_timeline_items(
    payload: schemas.ReorderRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    return content_resources.reorder_rows(db, TIMELINE_ITEMS, payload)


@router.get("/{item_id}", response_model=schemas.TimelineItemOut)
def get_timeline_item(
    item_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return content_resources.get_or_404(db, TIMELINE_ITEMS, item_id)


@router.put("/{item_id}", response_model=schemas.TimelineItemOut)
def update_timeline_item(
    item_id: int,
    payload: schemas.TimelineItemUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = content_resources.get_or_404(db, TIMELINE_ITEMS, item_id)
    content_resources.apply_updates(row, payload.model_dump(exclude_unset=True))
    return content_resources.save_row(db, TIMELINE_ITEMS, row)


@router.delete("/{item_id}", response_model=schemas.DeleteResult)
def delete_timeline_item(
    item_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = content_resources.get_or_404(db, TIMELINE_ITEMS, item_id)
    return content_resources.delete_row(db, TIMELINE_ITEMS, row)


@router.post("/{item_id}/duplicate", response_model=schemas.TimelineItemOut, status_code=status.HTTP_201_CREATED)
def duplicate_timeline_item(
    item_id: int,
    section_id: int | None = Query(default=None),
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    source = content_resources.get_or_404(db, TIMELINE_ITEMS, item_id)
    return content_resources.duplicate_row(db, TIMELINE_ITEMS, source, section_id=section_id)
