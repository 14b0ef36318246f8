from __future__ import annotations

import enum
import logging
import re
from typing import Any, Iterable

from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import InstrumentedAttribute, Session

from funnel_cms import models


logger = logging.getLogger(__name__)

VERSION_SUFFIX_PATTERN = re.compile(r"\s+V\d+$")
COPY_SUFFIX_PATTERN = re.compile(r"\s+\(Copy(?:\s+\d+)?\)$")


class NamingStyle(str, enum.Enum):
    version = "version"
    copy = "copy"


def strip_suffix(name: str, style: NamingStyle) -> str:
    value = (name or "").strip()
    pattern = VERSION_SUFFIX_PATTERN if style == NamingStyle.version else COPY_SUFFIX_PATTERN
    stripped = pattern.sub("", value).strip()
    return stripped or value


def candidate_name(base: str, counter: int, style: NamingStyle) -> str:
    if style == NamingStyle.version:
        return f"{base} V{counter}"
    if counter <= 1:
        return f"{base} (Copy)"
    return f"{base} (Copy {counter})"


def next_available_name(name: str, existing: Iterable[str], style: NamingStyle) -> str:
    base = strip_suffix(name, style)
    taken = {item.strip() for item in existing if item}
    counter = 2 if style == NamingStyle.version else 1
    candidate = candidate_name(base, counter, style)
    while candidate in taken:
        counter += 1
        candidate = candidate_name(base, counter, style)
    return candidate


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def lock_for_duplicate(db: Session, table_name: str) -> None:
    bind = db.get_bind()
    if bind.dialect.name != "postgresql":
        return
    db.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"),
        {"lock_key": f"duplicate:{table_name}"},
    )


def existing_names(db: Session, column: InstrumentedAttribute, base: str) -> list[str]:
    rows = db.query(column).filter(column.like(f"{_escape_like(base)}%", escape="\\")).all()
    return [row[0] for row in rows if row[0]]


def next_position(db: Session, column: InstrumentedAttribute, *criteria: Any) -> int:
    current = db.query(func.max(column)).filter(*criteria).scalar()
    if current is None:
        return 0
    return int(current) + 1


def unique_name(
    db: Session,
    column: InstrumentedAttribute,
    name: str,
    style: NamingStyle,
) -> str:
    base = strip_suffix(name, style)
    return next_available_name(name, existing_names(db, column, base), style)


def attach_to_section(
    db: Session,
    link_model: type,
    child_field: str,
    section_id: int,
    child_id: int,
) -> Any | None:
    section = db.query(models.Section.id).filter(models.Section.id == section_id).first()
    if section is None:
        logger.warning("duplicate attach skipped: section_id=%s not found", section_id)
        return None

    position = next_position(db, link_model.position, link_model.section_id == section_id)
    link = link_model(
        section_id=section_id,
        position=position,
        status=models.ContentStatus.draft,
        **{child_field: child_id},
    )
    try:
        with db.begin_nested():
            db.add(link)
            db.flush()
    except SQLAlchemyError:
        logger.exception(
            "duplicate attach failed: section_id=%s %s=%s",
            section_id,
            child_field,
            child_id,
        )
        return None
    return link


def clone_row(source: Any, fields: Iterable[str], **overrides: Any) -> Any:
    values = {field: getattr(source, field) for field in fields}
    values.update(overrides)
    return type(source)(**values)
