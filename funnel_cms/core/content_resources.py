from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from fastapi import HTTPException
from sqlalchemy import inspect, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import cache_tags, duplicates
from funnel_cms.core.duplicates import NamingStyle


logger = logging.getLogger(__name__)

SECTIONS_TAG = "sections"


@dataclass(frozen=True)
class ResourceKind:
    """How one flat content table is listed, searched, linked and duplicated."""

    model: type
    label: str
    tag: str
    name_field: str
    search_fields: tuple[str, ...]
    clone_fields: tuple[str, ...]
    naming: NamingStyle | None = None
    link_model: type | None = None
    link_field: str | None = None
    extra_tags: tuple[str, ...] = field(default_factory=tuple)

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    def tags(self) -> tuple[str, ...]:
        return (self.tag, SECTIONS_TAG, *self.extra_tags)


FAQ_ITEMS = ResourceKind(
    model=models.FaqItem,
    label="FAQ item",
    tag="faq-items",
    name_field="question",
    search_fields=("question", "answer"),
    clone_fields=("question", "answer"),
    naming=NamingStyle.version,
    link_model=models.SectionFaqItem,
    link_field="faq_item_id",
)

TESTIMONIALS = ResourceKind(
    model=models.Testimonial,
    label="Testimonial",
    tag="testimonials",
    name_field="author_name",
    search_fields=("author_name", "company_name", "headline", "quote"),
    clone_fields=("author_name", "author_role", "company_name", "headline", "quote", "avatar_url", "rating"),
    link_model=models.SectionTestimonial,
    link_field="testimonial_id",
)

OFFER_FEATURES = ResourceKind(
    model=models.OfferFeature,
    label="Offer feature",
    tag="offer-features",
    name_field="title",
    search_fields=("title", "subtitle", "description"),
    clone_fields=("title", "subtitle", "description", "icon"),
    naming=NamingStyle.version,
    link_model=models.SectionFeature,
    link_field="feature_id",
)

CTA_BUTTONS = ResourceKind(
    model=models.CtaButton,
    label="CTA button",
    tag="cta-buttons",
    name_field="label",
    search_fields=("label", "url"),
    clone_fields=("label", "url", "style", "icon"),
    naming=NamingStyle.copy,
    link_model=models.SectionCtaButton,
    link_field="cta_button_id",
)

TIMELINE_ITEMS = ResourceKind(
    model=models.TimelineItem,
    label="Timeline item",
    tag="timeline",
    name_field="title",
    search_fields=("title", "subtitle", "description"),
    clone_fields=("title", "subtitle", "description", "icon"),
    naming=NamingStyle.copy,
    link_model=models.SectionTimelineItem,
    link_field="timeline_item_id",
)

MEDIA = ResourceKind(
    model=models.Media,
    label="Media",
    tag="media",
    name_field="name",
    search_fields=("name", "alt_text", "url"),
    clone_fields=("type", "source_type", "url", "embed_id", "name", "alt_text", "thumbnail_url"),
    naming=NamingStyle.copy,
    link_model=models.SectionMedia,
    link_field="media_id",
)

RESEARCH_SUBJECTS = ResourceKind(
    model=models.ResearchSubject,
    label="Research subject",
    tag="research-subjects",
    name_field="name",
    search_fields=("name", "geography", "category", "description"),
    clone_fields=("name", "subject_type_id", "geography", "category", "description", "status"),
    naming=NamingStyle.version,
)


def revalidate(kind: ResourceKind) -> None:
    cache_tags.revalidate_tags(*kind.tags())


def commit_or_400(db: Session, action: str) -> None:
    try:
        db.commit()
    except IntegrityError as error:
        db.rollback()
        raise HTTPException(status_code=400, detail=f"{action} failed: {error.orig}") from error
    except Exception as error:  # noqa: BLE001
        db.rollback()
        raise HTTPException(status_code=500, detail=f"{action} failed: {error}") from error


def list_rows(db: Session, kind: ResourceKind, search: str | None = None) -> list[Any]:
    model = kind.model
    query = db.query(model)
    keyword = (search or "").strip()
    if keyword:
        pattern = f"%{keyword}%"
        query = query.filter(or_(*[getattr(model, name).ilike(pattern) for name in kind.search_fields]))
    return query.order_by(model.position.asc(), model.id.asc()).all()


def get_or_404(db: Session, kind: ResourceKind, row_id: int) -> Any:
    row = db.query(kind.model).filter(kind.model.id == row_id).first()
    if row is None:
        raise HTTPException(status_code=404, detail=f"{kind.label} not found")
    return row


def next_position(db: Session, kind: ResourceKind) -> int:
    return duplicates.next_position(db, kind.model.position)


def create_row(db: Session, kind: ResourceKind, values: dict[str, Any]) -> Any:
    if values.get("position") is None:
        values["position"] = next_position(db, kind)
    row = kind.model(**values)
    db.add(row)
    commit_or_400(db, f"Create {kind.label.lower()}")
    db.refresh(row)
    revalidate(kind)
    return row


def _nullable(row: Any, name: str) -> bool:
    column_attrs = inspect(row).mapper.column_attrs
    if name not in column_attrs:
        return True
    return all(column.nullable for column in column_attrs[name].columns)


def apply_updates(row: Any, values: dict[str, Any]) -> None:
    """Set every key the client sent. An explicit null clears nullable columns only."""
    for name, value in values.items():
        if value is None and not _nullable(row, name):
            raise HTTPException(status_code=400, detail=f"{name} cannot be null")
    for name, value in values.items():
        setattr(row, name, value)


def save_row(db: Session, kind: ResourceKind, row: Any) -> Any:
    db.add(row)
    commit_or_400(db, f"Update {kind.label.lower()}")
    db.refresh(row)
    revalidate(kind)
    return row


def delete_row(db: Session, kind: ResourceKind, row: Any) -> schemas.DeleteResult:
    row_id = row.id
    if kind.link_model is not None:
        db.query(kind.link_model).filter(getattr(kind.link_model, kind.link_field) == row_id).delete(
            synchronize_session=False
        )
    db.delete(row)
    commit_or_400(db, f"Delete {kind.label.lower()}")
    revalidate(kind)
    return schemas.DeleteResult(id=row_id)


def reorder_rows(db: Session, kind: ResourceKind, payload: schemas.ReorderRequest) -> list[Any]:
    ids = [item.id for item in payload.items]
    rows = db.query(kind.model).filter(kind.model.id.in_(ids)).all()
    mapping = {row.id: row for row in rows}
    if len(mapping) != len(set(ids)):
        raise HTTPException(status_code=400, detail=f"Some {kind.label.lower()} ids are invalid")

    for item in payload.items:
        mapping[item.id].position = item.position
        db.add(mapping[item.id])

    commit_or_400(db, f"Reorder {kind.label.lower()}")
    revalidate(kind)
    return (
        db.query(kind.model)
        .filter(kind.model.id.in_(ids))
        .order_by(kind.model.position.asc(), kind.model.id.asc())
        .all()
    )


def duplicate_row(
    db: Session,
    kind: ResourceKind,
    source: Any,
    section_id: int | None = None,
    **overrides: Any,
) -> Any:
    duplicates.lock_for_duplicate(db, kind.table_name)

    name = getattr(source, kind.name_field)
    if kind.naming is not None and name:
        overrides[kind.name_field] = duplicates.unique_name(
            db,
            getattr(kind.model, kind.name_field),
            name,
            kind.naming,
        )

    clone = duplicates.clone_row(
        source,
        kind.clone_fields,
        position=next_position(db, kind),
        **overrides,
    )
    db.add(clone)
    try:
        db.flush()
    except IntegrityError as error:
        db.rollback()
        raise HTTPException(status_code=400, detail=f"Duplicate {kind.label.lower()} failed: {error.orig}") from error

    if section_id is not None and kind.link_model is not None:
        link = duplicates.attach_to_section(db, kind.link_model, kind.link_field, section_id, clone.id)
        if link is None:
            logger.warning(
                "duplicate left unattached: %s id=%s section_id=%s",
                kind.table_name,
                clone.id,
                section_id,
            )

    commit_or_400(db, f"Duplicate {kind.label.lower()}")
    db.refresh(clone)
    revalidate(kind)
    logger.info("duplicated %s source_id=%s clone_id=%s", kind.table_name, source.id, clone.id)
    return clone


def url_shared(db: Session, column: Any, url: str | None, exclude_id: int) -> bool:
    if not url:
        return False
    owner = column.class_
    return db.query(owner.id).filter(column == url, owner.id != exclude_id).first() is not None
