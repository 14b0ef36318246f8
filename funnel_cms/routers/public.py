from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import cache_tags
from funnel_cms.core.colors import hsl_string_to_hex
from funnel_cms.deps import get_db_read
from funnel_cms.routers.sections import SECTION_CHILDREN
from funnel_cms.routers.site_settings import SITE_SETTINGS_TAG


router = APIRouter(tags=["public"])

THEME_SETTING_KEY = "theme"
PUBLISHED = models.ContentStatus.published


def theme_colors(db: Session) -> dict[str, str]:
    row = db.query(models.SiteSetting).filter(models.SiteSetting.key == THEME_SETTING_KEY).first()
    if row is None or not isinstance(row.value, dict):
        return {}
    colors: dict[str, str] = {}
    for name, value in row.value.items():
        converted = hsl_string_to_hex(value) if isinstance(value, str) else None
        if converted:
            colors[name] = converted
    return colors


def _published_children(db: Session, section_id: int) -> dict[str, list[dict[str, Any]]]:
    children: dict[str, list[dict[str, Any]]] = {}
    for path, (kind, out_schema) in SECTION_CHILDREN.items():
        link_model = kind.link_model
        child_model = kind.model
        rows = (
            db.query(link_model, child_model)
            .join(child_model, child_model.id == getattr(link_model, kind.link_field))
            .filter(link_model.section_id == section_id, link_model.status == PUBLISHED)
            .order_by(link_model.position.asc(), link_model.id.asc())
            .all()
        )
        items = []
        for link, child in rows:
            item = out_schema.model_validate(child).model_dump(mode="json")
            item["link_position"] = link.position
            if link_model is models.SectionMedia:
                item["role"] = link.role
            items.append(item)
        children[path.replace("-", "_")] = items
    return children


def build_public_page(db: Session, slug: str) -> dict[str, Any] | None:
    page = (
        db.query(models.Page)
        .filter(models.Page.slug == slug, models.Page.status == PUBLISHED)
        .first()
    )
    if page is None:
        return None

    links = (
        db.query(models.PageSection)
        .join(models.Section, models.Section.id == models.PageSection.section_id)
        .filter(
            models.PageSection.page_id == page.id,
            models.PageSection.status == PUBLISHED,
            models.Section.status != models.ContentStatus.deactivated,
        )
        .order_by(models.PageSection.position.asc(), models.PageSection.id.asc())
        .all()
    )
    sections = []
    for link in links:
        section = schemas.SectionOut.model_validate(link.section).model_dump(mode="json")
        section["position"] = link.position
        section.update(_published_children(db, link.section_id))
        sections.append(section)

    return {
        "page": schemas.PageOut.model_validate(page).model_dump(mode="json"),
        "sections": sections,
        "theme": theme_colors(db),
    }


@router.get("/pages/{slug}")
def get_public_page(slug: str, db: Session = Depends(get_db_read)):
    clean_slug = schemas.normalize_slug(slug)
    page_id = db.query(models.Page.id).filter(models.Page.slug == clean_slug).scalar()
    tags = [
        "pages",
        "sections",
        SITE_SETTINGS_TAG,
        cache_tags.page_tag(clean_slug),
        *(kind.tag for kind, _ in SECTION_CHILDREN.values()),
    ]
    if page_id is not None:
        tags.append(cache_tags.page_sections_tag(page_id))

    payload = cache_tags.get_or_load(
        f"public-page:{clean_slug}",
        tags,
        lambda: build_public_page(db, clean_slug),
    )
    if payload is None:
        raise HTTPException(status_code=404, detail="Page not found")
    return payload


@router.get("/site-structure")
def get_site_structure(db: Session = Depends(get_db_read)):
    def load() -> list[dict[str, Any]]:
        rows = (
            db.query(models.Page)
            .filter(models.Page.status == PUBLISHED)
            .order_by(models.Page.title.asc(), models.Page.id.asc())
            .all()
        )
        return [{"id": row.id, "slug": row.slug, "title": row.title} for row in rows]

    return cache_tags.get_or_load("public-site-structure", ["pages"], load)
