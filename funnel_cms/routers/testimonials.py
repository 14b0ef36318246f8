from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import content_resources, storage
from funnel_cms.core.content_resources import TESTIMONIALS
from funnel_cms.core.media_urls import normalize_avatar_url
from funnel_cms.deps import get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["testimonials"])


@router.get("", response_model=list[schemas.TestimonialOut])
def list_testimonials(
    search: str | None = Query(default=None),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return content_resources.list_rows(db, TESTIMONIALS, search)


@router.post("", response_model=schemas.TestimonialOut, status_code=status.HTTP_201_CREATED)
def create_testimonial(
    payload: schemas.TestimonialCreateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    values = payload.model_dump()
    values["author_name"] = payload.author_name.strip()
    values["avatar_url"] = normalize_avatar_url(payload.avatar_url)
    return content_resources.create_row(db, TESTIMONIALS, values)


@router.post("/reorder", response_model=list[schemas.TestimonialOut])
def reorder_testimonials(
    payload: schemas.ReorderRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    return content_resources.reorder_rows(db, TESTIMONIALS, payload)


@router.get("/{testimonial_id}", response_model=schemas.TestimonialOut)
def get_testimonial(
    testimonial_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return content_resources.get_or_404(db, TESTIMONIALS, testimonial_id)


@router.put("/{testimonial_id}", response_model=schemas.TestimonialOut)
def update_testimonial(
    testimonial_id: int,
    payload: schemas.TestimonialUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = content_resources.get_or_404(db, TESTIMONIALS, testimonial_id)
    previous_avatar = row.avatar_url

    values = payload.model_dump(exclude_unset=True, exclude={"avatar_url", "remove_avatar"})
    content_resources.apply_updates(row, values)
    if payload.remove_avatar:
        row.avatar_url = None
    elif payload.avatar_url is not None:
        row.avatar_url = normalize_avatar_url(payload.avatar_url)

    saved = content_resources.save_row(db, TESTIMONIALS, row)
    if (
        previous_avatar
        and previous_avatar != saved.avatar_url
        and not content_resources.url_shared(db, models.Testimonial.avatar_url, previous_avatar, saved.id)
    ):
        storage.move_url_to_bin_safely(normalize_avatar_url(previous_avatar))
    return saved


@router.delete("/{testimonial_id}", response_model=schemas.DeleteResult)
def delete_testimonial(
    testimonial_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = content_resources.get_or_404(db, TESTIMONIALS, testimonial_id)
    avatar_url = None
    if not content_resources.url_shared(db, models.Testimonial.avatar_url, row.avatar_url, row.id):
        avatar_url = normalize_avatar_url(row.avatar_url)
    result = content_resources.delete_row(db, TESTIMONIALS, row)
    if avatar_url:
        storage.move_url_to_bin_safely(avatar_url)
    return result


@router.post(
    "/{testimonial_id}/duplicate",
    response_model=schemas.TestimonialOut,
    status_code=status.HTTP_201_CREATED,
)
def duplicate_testimonial(
    testimonial_id: int,
    section_id: int | None = Query(default=None),
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    source = content_resources.get_or_404(db, TESTIMONIALS, testimonial_id)
    return content_resources.duplicate_row(db, TESTIMONIALS, source, section_id=section_id)
