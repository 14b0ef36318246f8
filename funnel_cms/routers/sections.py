import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import cache_tags, content_resources, duplicates
from funnel_cms.core.content_resources import (
    CTA_BUTTONS,
    FAQ_ITEMS,
    MEDIA,
    OFFER_FEATURES,
    TESTIMONIALS,
    TIMELINE_ITEMS,
    ResourceKind,
    commit_or_400,
)
from funnel_cms.core.duplicates import NamingStyle
from funnel_cms.deps import get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["sections"])
logger = logging.getLogger(__name__)

SECTION_CHILDREN: dict[str, tuple[ResourceKind, type[BaseModel]]] = {
    "faq-items": (FAQ_ITEMS, schemas.FaqItemOut),
    "testimonials": (TESTIMONIALS, schemas.TestimonialOut),
    "features": (OFFER_FEATURES, schemas.OfferFeatureOut),
    "cta-buttons": (CTA_BUTTONS, schemas.CtaButtonOut),
    "timeline": (TIMELINE_ITEMS, schemas.TimelineItemOut),
    "media": (MEDIA, schemas.MediaOut),
}


def _section_or_404(db: Session, section_id: int) -> models.Section:
    section = db.query(models.Section).filter(models.Section.id == section_id).first()
    if not section:
        raise HTTPException(status_code=404, detail="Section not found")
    return section


def revalidate_section(section: models.Section) -> None:
    tags = ["sections"]
    for link in section.page_links:
        tags.append(cache_tags.page_sections_tag(link.page_id))
        if link.page is not None:
            tags.append(cache_tags.page_tag(link.page.slug))
    cache_tags.revalidate_tags(*tags)


def _child_payload(child: Any, link: Any, out_schema: type[BaseModel]) -> dict[str, Any]:
    data = out_schema.model_validate(child).model_dump(mode="json")
    data["link"] = schemas.SectionLinkOut.model_validate(link).model_dump(mode="json")
    return data


@router.get("", response_model=list[schemas.SectionOut])
def list_sections(
    search: str | None = Query(default=None),
    section_type: str | None = Query(default=None, alias="type"),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    query = db.query(models.Section)
    keyword = (search or "").strip()
    if keyword:
        pattern = f"%{keyword}%"
        query = query.filter(
            or_(
                models.Section.title.ilike(pattern),
                models.Section.admin_title.ilike(pattern),
                models.Section.type.ilike(pattern),
            )
        )
    if section_type:
        query = query.filter(models.Section.type == section_type.strip().lower())
    return query.order_by(models.Section.position.asc(), models.Section.id.asc()).all()


@router.post("", response_model=schemas.SectionOut, status_code=status.HTTP_201_CREATED)
def create_section(
    payload: schemas.SectionCreateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    section = models.Section(
        **payload.model_dump(),
        position=duplicates.next_position(db, models.Section.position),
    )
    db.add(section)
    commit_or_400(db, "Create section")
    db.refresh(section)
    cache_tags.revalidate_tag("sections")
    return section


@router.get("/{section_id}", response_model=schemas.SectionDetailOut)
def get_section(
    section_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    section = _section_or_404(db, section_id)
    pages = [
        schemas.PageRefOut(
            id=link.page.id,
            title=link.page.title,
            slug=link.page.slug,
            page_section_id=link.id,
            status=link.status,
        )
        for link in section.page_links
        if link.page is not None
    ]
    return schemas.SectionDetailOut(
        **schemas.SectionOut.model_validate(section).model_dump(),
        pages=pages,
    )


@router.put("/{section_id}", response_model=schemas.SectionOut)
def update_section(
    section_id: int,
    payload: schemas.SectionUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    section = _section_or_404(db, section_id)
    values = payload.model_dump(exclude_unset=True)
    if values.get("type") is not None:
        values["type"] = values["type"].strip().lower()
    content_resources.apply_updates(section, values)

    db.add(section)
    commit_or_400(db, "Update section")
    db.refresh(section)
    revalidate_section(section)
    return section


@router.delete("/{section_id}", response_model=schemas.DeleteResult)
def delete_section(
    section_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    section = _section_or_404(db, section_id)
    revalidate_section(section)
    for kind, _schema in SECTION_CHILDREN.values():
        db.query(kind.link_model).filter(kind.link_model.section_id == section_id).delete(synchronize_session=False)
    db.delete(section)
    commit_or_400(db, "Delete section")
    return schemas.DeleteResult(id=section_id)


def _copy_links(db: Session, source_id: int, target_id: int) -> list[str]:
    warnings: list[str] = []
    for path, (kind, _schema) in SECTION_CHILDREN.items():
        link_model = kind.link_model
        links = (
            db.query(link_model)
            .filter(link_model.section_id == source_id)
            .order_by(link_model.position.asc(), link_model.id.asc())
            .all()
        )
        for link in links:
            values = {
                "section_id": target_id,
                "position": link.position,
                "status": link.status,
                kind.link_field: getattr(link, kind.link_field),
            }
            if link_model is models.SectionMedia:
                values["role"] = link.role
            try:
                with db.begin_nested():
                    db.add(link_model(**values))
                    db.flush()
            except SQLAlchemyError as error:
                logger.exception("section duplicate: %s link copy failed source_link_id=%s", path, link.id)
                warnings.append(f"Failed to copy {path} link {link.id}: {error}")
    return warnings


@router.post("/{section_id}/duplicate", response_model=schemas.SectionDuplicateOut, status_code=status.HTTP_201_CREATED)
def duplicate_section(
    section_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    source = _section_or_404(db, section_id)
    duplicates.lock_for_duplicate(db, models.Section.__tablename__)

    admin_title = None
    if source.admin_title:
        admin_title = duplicates.unique_name(db, models.Section.admin_title, source.admin_title, NamingStyle.version)

    clone = duplicates.clone_row(
        source,
        ("type", "title", "subtitle", "eyebrow", "media_url"),
        admin_title=admin_title,
        content=dict(source.content or {}),
        status=models.ContentStatus.draft,
        position=duplicates.next_position(db, models.Section.position),
    )
    db.add(clone)
    db.flush()

    warnings = _copy_links(db, source.id, clone.id)
    commit_or_400(db, "Duplicate section")
    db.refresh(clone)
    cache_tags.revalidate_tag("sections")
    return schemas.SectionDuplicateOut(
        **schemas.SectionOut.model_validate(clone).model_dump(),
        warnings=warnings,
    )


def _register_child_routes(path: str, kind: ResourceKind, out_schema: type[BaseModel]) -> None:
    link_model = kind.link_model
    child_model = kind.model
    link_field = kind.link_field
    child_column = getattr(link_model, link_field)

    def list_children(
        section_id: int,
        db: Session = Depends(get_db_read),
        _: models.User = Depends(get_current_user),
    ):
        _section_or_404(db, section_id)
        rows = (
            db.query(link_model, child_model)
            .join(child_model, child_model.id == child_column)
            .filter(link_model.section_id == section_id)
            .order_by(link_model.position.asc(), link_model.id.asc())
            .all()
        )
        return [_child_payload(child, link, out_schema) for link, child in rows]

    def add_child(
        section_id: int,
        payload: schemas.LinkCreateRequest,
        db: Session = Depends(get_db_write),
        _: models.User = Depends(get_current_user),
    ):
        section = _section_or_404(db, section_id)
        child = db.query(child_model).filter(child_model.id == payload.child_id).first()
        if not child:
            raise HTTPException(status_code=404, detail=f"{kind.label} not found")

        exists = (
            db.query(link_model.id)
            .filter(link_model.section_id == section_id, child_column == child.id)
            .first()
        )
        if exists:
            raise HTTPException(status_code=400, detail=f"{kind.label} already connected to this section")

        position = payload.position
        if position is None:
            position = duplicates.next_position(db, link_model.position, link_model.section_id == section_id)
        values = {
            "section_id": section_id,
            "position": position,
            "status": payload.status,
            link_field: child.id,
        }
        if link_model is models.SectionMedia:
            values["role"] = payload.role
        link = link_model(**values)
        db.add(link)
        commit_or_400(db, f"Connect {kind.label.lower()}")
        db.refresh(link)
        revalidate_section(section)
        return _child_payload(child, link, out_schema)

    def update_child_link(
        section_id: int,
        link_id: int,
        payload: schemas.LinkUpdateRequest,
        db: Session = Depends(get_db_write),
        _: models.User = Depends(get_current_user),
    ):
        section = _section_or_404(db, section_id)
        link = (
            db.query(link_model)
            .filter(link_model.id == link_id, link_model.section_id == section_id)
            .first()
        )
        if not link:
            raise HTTPException(status_code=404, detail="Link not found")

        if payload.position is not None:
            link.position = payload.position
        if payload.status is not None:
            link.status = payload.status
        if payload.role is not None and link_model is models.SectionMedia:
            link.role = payload.role
        db.add(link)
        commit_or_400(db, f"Update {kind.label.lower()} link")
        db.refresh(link)
        revalidate_section(section)
        child = db.query(child_model).filter(child_model.id == getattr(link, link_field)).first()
        return _child_payload(child, link, out_schema)

    def remove_child(
        section_id: int,
        child_id: int = Query(...),
        db: Session = Depends(get_db_write),
        _: models.User = Depends(get_current_user),
    ):
        section = _section_or_404(db, section_id)
        deleted = (
            db.query(link_model)
            .filter(link_model.section_id == section_id, child_column == child_id)
            .delete(synchronize_session=False)
        )
        if not deleted:
            raise HTTPException(status_code=404, detail="Link not found")
        commit_or_400(db, f"Disconnect {kind.label.lower()}")
        revalidate_section(section)
        return schemas.DeleteResult(id=child_id)

    name = path.replace("-", "_")
    router.add_api_route(
        f"/{{section_id}}/{path}",
        list_children,
        methods=["GET"],
        response_model=list[dict[str, Any]],
        name=f"list_section_{name}",
    )
    router.add_api_route(
        f"/{{section_id}}/{path}",
        add_child,
        methods=["POST"],
        response_model=dict[str, Any],
        status_code=status.HTTP_201_CREATED,
        name=f"add_section_{name}",
    )
    router.add_api_route(
        f"/{{section_id}}/{path}",
        remove_child,
        methods=["DELETE"],
        response_model=schemas.DeleteResult,
        name=f"remove_section_{name}",
    )
    router.add_api_route(
        f"/{{section_id}}/{path}/{{link_id}}",
        update_child_link,
        methods=["PATCH"],
        response_model=dict[str, Any],
        name=f"update_section_{name}_link",
    )


for _path, (_kind, _out_schema) in SECTION_CHILDREN.items():
    _register_child_routes(_path, _kind, _out_schema)
