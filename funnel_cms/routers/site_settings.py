from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import cache_tags
from funnel_cms.core.content_resources import commit_or_400
from funnel_cms.deps import get_current_admin, get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["site-settings"])

SITE_SETTINGS_TAG = "site-settings"


def load_settings(db: Session) -> dict[str, Any]:
    rows = db.query(models.SiteSetting).order_by(models.SiteSetting.key.asc()).all()
    return {row.key: row.value for row in rows}


def load_setting(db: Session, key: str) -> Any:
    row = db.query(models.SiteSetting).filter(models.SiteSetting.key == key).first()
    return row.value if row else None


def save_setting(db: Session, key: str, value: Any) -> None:
    row = db.query(models.SiteSetting).filter(models.SiteSetting.key == key).first()
    if row is None:
        row = models.SiteSetting(key=key)
    row.value = value
    db.add(row)
    commit_or_400(db, "Save site setting")
    cache_tags.revalidate_tags(SITE_SETTINGS_TAG, "pages")


@router.get("", response_model=dict[str, Any])
def get_site_settings(
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return load_settings(db)


@router.put("/{key}", response_model=dict[str, Any])
def put_site_setting(
    key: str,
    payload: schemas.SiteSettingUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_admin),
):
    clean_key = key.strip()
    if not clean_key:
        raise HTTPException(status_code=400, detail="key is required")
    save_setting(db, clean_key, payload.value)
    return {"key": clean_key, "value": payload.value}
