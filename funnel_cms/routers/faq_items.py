from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import content_resources
from funnel_cms.core.content_resources import FAQ_ITEMS
from funnel_cms.deps import get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["faq-items"])


@router.get("", response_model=list[schemas.FaqItemOut])
def list_faq_items(
    search: str | None = Query(default=None),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return content_resources.list_rows(db, FAQ_ITEMS, search)


@router.post("", response_model=schemas.FaqItemOut, status_code=status.HTTP_201_CREATED)
def create_faq_item(
    payload: schemas.FaqItemCreateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    return content_resources.create_row(
        db,
        FAQ_ITEMS,
        {
            "question": payload.question.strip(),
            "answer": payload.answer,
            "position": payload.position,
        },
    )


@router.post("/reorder", response_model=list[schemas.FaqItemOut])
def reorder_faq_items(
    payload: schemas.ReorderRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    return content_resources.reorder_rows(db, FAQ_ITEMS, payload)


@router.get("/{faq_item_id}", response_model=schemas.FaqItemOut)
def get_faq_item(
    faq_item_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return content_resources.get_or_404(db, FAQ_ITEMS, faq_item_id)


@router.put("/{faq_item_id}", response_model=schemas.FaqItemOut)
def update_faq_item(
    faq_item_id: int,
    payload: schemas.FaqItemUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = content_resources.get_or_404(db, FAQ_ITEMS, faq_item_id)
    values = payload.model_dump(exclude_unset=True)
    if values.get("question") is not None:
        values["question"] = values["question"].strip()
    content_resources.apply_updates(row, values)
    return content_resources.save_row(db, FAQ_ITEMS, row)


@router.delete("/{faq_item_id}", response_model=schemas.DeleteResult)
def delete_faq_item(
    faq_item_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = content_resources.get_or_404(db, FAQ_ITEMS, faq_item_id)
    return content_resources.delete_row(db, FAQ_ITEMS, row)


@router.post("/{faq_item_id}/duplicate", response_model=schemas.FaqItemOut, status_code=status.HTTP_201_CREATED)
def duplicate_faq_item(
    faq_item_id: int,
    section_id: int | None = Query(default=None),
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    source = content_resources.get_or_404(db, FAQ_ITEMS, faq_item_id)
    return content_resources.duplicate_row(db, FAQ_ITEMS, source, section_id=section_id)
