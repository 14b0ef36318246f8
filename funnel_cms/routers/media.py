from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import content_resources, storage
from funnel_cms.core.content_resources import MEDIA
from funnel_cms.core.media_urls import determine_media_type, wistia_url
from funnel_cms.deps import get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["media"])


def _resolve_url(source_type: models.MediaSourceType, url: str | None, embed_id: str | None) -> str:
    if source_type == models.MediaSourceType.wistia:
        if not (embed_id or "").strip():
            raise HTTPException(status_code=400, detail="embed_id is required for wistia media")
        return wistia_url(embed_id)
    if not (url or "").strip():
        raise HTTPException(status_code=400, detail="url is required")
    return url.strip()


@router.get("", response_model=list[schemas.MediaOut])
def list_media(
    search: str | None = Query(default=None),
    media_type: models.MediaType | None = Query(default=None, alias="type"),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    rows = content_resources.list_rows(db, MEDIA, search)
    if media_type is not None:
        rows = [row for row in rows if row.type == media_type]
    return rows


@router.post("", response_model=schemas.MediaOut, status_code=status.HTTP_201_CREATED)
def create_media(
    payload: schemas.MediaCreateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    url = _resolve_url(payload.source_type, payload.url, payload.embed_id)
    values = payload.model_dump()
    values["url"] = url
    values["embed_id"] = (payload.embed_id or "").strip() or None
    values["type"] = determine_media_type(payload.source_type, url)
    return content_resources.create_row(db, MEDIA, values)


@router.post("/reorder", response_model=list[schemas.MediaOut])
def reorder_media(
    payload: schemas.ReorderRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    return content_resources.reorder_rows(db, MEDIA, payload)


@router.get("/{media_id}", response_model=schemas.MediaOut)
def get_media(
    media_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return content_resources.get_or_404(db, MEDIA, media_id)


@router.put("/{media_id}", response_model=schemas.MediaOut)
def update_media(
    media_id: int,
    payload: schemas.MediaUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = content_resources.get_or_404(db, MEDIA, media_id)
    previous_url = row.url

    values = payload.model_dump(exclude_unset=True, exclude={"url", "embed_id"})
    content_resources.apply_updates(row, values)
    if payload.url is not None or payload.embed_id is not None:
        embed_id = payload.embed_id if payload.embed_id is not None else row.embed_id
        url = payload.url if payload.url is not None else row.url
        row.url = _resolve_url(row.source_type, url, embed_id)
        row.embed_id = (embed_id or "").strip() or None
        row.type = determine_media_type(row.source_type, row.url)

    saved = content_resources.save_row(db, MEDIA, row)
    if (
        saved.source_type == models.MediaSourceType.upload
        and previous_url != saved.url
        and not content_resources.url_shared(db, models.Media.url, previous_url, saved.id)
    ):
        storage.move_url_to_bin_safely(previous_url)
    return saved


@router.delete("/{media_id}", response_model=schemas.DeleteResult)
def delete_media(
    media_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    row = content_resources.get_or_404(db, MEDIA, media_id)
    orphaned = []
    if row.source_type in (models.MediaSourceType.upload, models.MediaSourceType.url):
        if not content_resources.url_shared(db, models.Media.url, row.url, row.id):
            orphaned.append(row.url)
    if row.thumbnail_url and not content_resources.url_shared(db, models.Media.thumbnail_url, row.thumbnail_url, row.id):
        orphaned.append(row.thumbnail_url)

    result = content_resources.delete_row(db, MEDIA, row)
    for url in orphaned:
        storage.move_url_to_bin_safely(url)
    return result


@router.post("/{media_id}/duplicate", response_model=schemas.MediaOut, status_code=status.HTTP_201_CREATED)
def duplicate_media(
    media_id: int,
    section_id: int | None = Query(default=None),
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    source = content_resources.get_or_404(db, MEDIA, media_id)
    return content_resources.duplicate_row(db, MEDIA, source, section_id=section_id)
