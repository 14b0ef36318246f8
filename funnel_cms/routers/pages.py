from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import cache_tags, duplicates
from funnel_cms.core.content_resources import commit_or_400
from funnel_cms.deps import get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["pages"])


def _page_or_404(db: Session, page_id: int) -> models.Page:
    page = db.query(models.Page).filter(models.Page.id == page_id).first()
    if not page:
        raise HTTPException(status_code=404, detail="Page not found")
    return page


def _link_or_404(db: Session, page_id: int, page_section_id: int) -> models.PageSection:
    link = (
        db.query(models.PageSection)
        .filter(models.PageSection.id == page_section_id, models.PageSection.page_id == page_id)
        .first()
    )
    if not link:
        raise HTTPException(status_code=404, detail="Page section not found")
    return link


def _revalidate_page(page: models.Page, *extra_slugs: str | None) -> None:
    tags = ["pages", cache_tags.page_tag(page.slug), cache_tags.page_sections_tag(page.id)]
    tags.extend(cache_tags.page_tag(slug) for slug in extra_slugs if slug)
    cache_tags.revalidate_tags(*tags)


def _ensure_slug_free(db: Session, slug: str, page_id: int | None = None) -> None:
    query = db.query(models.Page.id).filter(models.Page.slug == slug)
    if page_id is not None:
        query = query.filter(models.Page.id != page_id)
    if query.first():
        raise HTTPException(status_code=400, detail="Page slug already exists")


def to_page_section_out(link: models.PageSection) -> schemas.PageSectionOut:
    section = schemas.SectionOut.model_validate(link.section)
    return schemas.PageSectionOut(
        **section.model_dump(),
        page_section=schemas.LinkOut.model_validate(link),
    )


@router.get("", response_model=list[schemas.PageOut])
def list_pages(
    search: str | None = Query(default=None),
    status_filter: models.ContentStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    query = db.query(models.Page)
    keyword = (search or "").strip()
    if keyword:
        pattern = f"%{keyword}%"
        query = query.filter(or_(models.Page.title.ilike(pattern), models.Page.slug.ilike(pattern)))
    if status_filter is not None:
        query = query.filter(models.Page.status == status_filter)
    return query.order_by(models.Page.created_at.desc(), models.Page.id.desc()).all()


@router.post("", response_model=schemas.PageOut, status_code=status.HTTP_201_CREATED)
def create_page(
    payload: schemas.PageCreateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    _ensure_slug_free(db, payload.slug)
    page = models.Page(
        title=payload.title.strip(),
        slug=payload.slug,
        description=payload.description,
        status=payload.status,
    )
    db.add(page)
    commit_or_400(db, "Create page")
    db.refresh(page)
    _revalidate_page(page)
    return page


@router.get("/{page_id}", response_model=schemas.PageOut)
def get_page(
    page_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return _page_or_404(db, page_id)


@router.put("/{page_id}", response_model=schemas.PageOut)
def update_page(
    page_id: int,
    payload: schemas.PageUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    page = _page_or_404(db, page_id)
    previous_slug = page.slug

    if payload.slug is not None and payload.slug != page.slug:
        _ensure_slug_free(db, payload.slug, page.id)
        page.slug = payload.slug
    if payload.title is not None:
        page.title = payload.title.strip()
    if payload.description is not None:
        page.description = payload.description
    if payload.status is not None:
        page.status = payload.status

    db.add(page)
    commit_or_400(db, "Update page")
    db.refresh(page)
    _revalidate_page(page, previous_slug)
    return page


@router.delete("/{page_id}", response_model=schemas.DeleteResult)
def delete_page(
    page_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    page = _page_or_404(db, page_id)
    _revalidate_page(page)
    db.delete(page)
    commit_or_400(db, "Delete page")
    return schemas.DeleteResult(id=page_id)


@router.get("/{page_id}/sections", response_model=list[schemas.PageSectionOut])
def list_page_sections(
    page_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    _page_or_404(db, page_id)
    links = (
        db.query(models.PageSection)
        .filter(models.PageSection.page_id == page_id)
        .order_by(models.PageSection.position.asc(), models.PageSection.id.asc())
        .all()
    )
    return [to_page_section_out(link) for link in links]


@router.post("/{page_id}/sections", response_model=schemas.PageSectionOut, status_code=status.HTTP_201_CREATED)
def add_page_section(
    page_id: int,
    payload: schemas.PageSectionCreateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    page = _page_or_404(db, page_id)
    section = db.query(models.Section).filter(models.Section.id == payload.section_id).first()
    if not section:
        raise HTTPException(status_code=404, detail="Section not found")

    exists = (
        db.query(models.PageSection.id)
        .filter(models.PageSection.page_id == page_id, models.PageSection.section_id == section.id)
        .first()
    )
    if exists:
        raise HTTPException(status_code=400, detail="Section already added to this page")

    position = payload.position
    if position is None:
        position = duplicates.next_position(db, models.PageSection.position, models.PageSection.page_id == page_id)
    link = models.PageSection(page_id=page_id, section_id=section.id, position=position, status=payload.status)
    db.add(link)
    commit_or_400(db, "Add page section")
    db.refresh(link)
    _revalidate_page(page)
    return to_page_section_out(link)


@router.post("/{page_id}/sections/reorder", response_model=list[schemas.PageSectionOut])
def reorder_page_sections(
    page_id: int,
    payload: schemas.ReorderRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    page = _page_or_404(db, page_id)
    ids = [item.id for item in payload.items]
    rows = (
        db.query(models.PageSection)
        .filter(models.PageSection.page_id == page_id, models.PageSection.id.in_(ids))
        .all()
    )
    mapping = {row.id: row for row in rows}
    if len(mapping) != len(set(ids)):
        raise HTTPException(status_code=400, detail="Some page section ids are invalid")

    for item in payload.items:
        mapping[item.id].position = item.position
        db.add(mapping[item.id])
    commit_or_400(db, "Reorder page sections")
    _revalidate_page(page)

    links = (
        db.query(models.PageSection)
        .filter(models.PageSection.page_id == page_id)
        .order_by(models.PageSection.position.asc(), models.PageSection.id.asc())
        .all()
    )
    return [to_page_section_out(link) for link in links]


@router.patch("/{page_id}/sections/{page_section_id}", response_model=schemas.PageSectionOut)
def update_page_section(
    page_id: int,
    page_section_id: int,
    payload: schemas.LinkUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    page = _page_or_404(db, page_id)
    link = _link_or_404(db, page_id, page_section_id)
    if payload.position is not None:
        link.position = payload.position
    if payload.status is not None:
        link.status = payload.status

    db.add(link)
    commit_or_400(db, "Update page section")
    db.refresh(link)
    _revalidate_page(page)
    return to_page_section_out(link)


@router.delete("/{page_id}/sections/{page_section_id}", response_model=schemas.DeleteResult)
def remove_page_section(
    page_id: int,
    page_section_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    page = _page_or_404(db, page_id)
    link = _link_or_404(db, page_id, page_section_id)
    db.delete(link)
    commit_or_400(db, "Remove page section")
    _revalidate_page(page)
    return schemas.DeleteResult(id=page_section_id)
