from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import content_resources
from funnel_cms.core.content_resources import OFFER_FEATURES
from funnel_cms.deps import get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["offer-features"])


@router.get("", response_model=list[schemas.OfferFeatureOut])
def list_offer_features(
    search: str | None = Query(default=None),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return content_resources.list_rows(db, OFFER_FEATURES, search)


@router.post("", response_model=schemas.OfferFeatureOut, status_code=status.HTTP_201_CREATED)
def create_offer_feature(
    payload: schemas.OfferFeatureCreateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    values = payload.model_dump()
    values["title"] = payload.title.strip()
    return content_resources.create_row(db, OFFER_FEATURES, values)


@router.post("/reorder", response_model=list[schemas.OfferFeatureOut])
def reorder_offer_features(
    payload: schemas.ReorderRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    return content_resources.reorder_rows(db, OFFER_FEATURES, payload)


@router.get("/{feature_id}", response_model=schemas.OfferFeatureOut)
def get_offer_feature(
    feature_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return content_resources.get_or_404(db, OFFER_FEATURES, feature_id)


@router.put("/{feature_id}", response_model=schemas.OfferFeatureOut)
def update_offer_feature(
    feature_id: int,
    payload: schemas.OfferFeatureUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = content_resources.get_or_404(db, OFFER_FEATURES, feature_id)
    content_resources.apply_updates(row, payload.model_dump(exclude_unset=True))
    return content_resources.save_row(db, OFFER_FEATURES, row)


@router.delete("/{feature_id}", response_model=schemas.DeleteResult)
def delete_offer_feature(
    feature_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = content_resources.get_or_404(db, OFFER_FEATURES, feature_id)
    return content_resources.delete_row(db, OFFER_FEATURES, row)


@router.post("/{feature_id}/duplicate", response_model=schemas.OfferFeatureOut, status_code=status.HTTP_201_CREATED)
def duplicate_offer_feature(
    feature_id: int,
    section_id: int | None = Query(default=None),
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    source = content_resources.get_or_404(db, OFFER_FEATURES, feature_id)
    return content_resources.duplicate_row(db, OFFER_FEATURES, source, section_id=section_id)
