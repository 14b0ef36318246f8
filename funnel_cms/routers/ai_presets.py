import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from funnel_cms import models
from funnel_cms.core import ai_service, presets
from funnel_cms.deps import get_current_admin, get_db_write
from funnel_cms.routers.public import THEME_SETTING_KEY
from funnel_cms.routers.site_settings import load_setting, save_setting


router = APIRouter(tags=["ai-presets"])
logger = logging.getLogger(__name__)


def generate_preset(db: Session, kind: presets.PresetKind) -> dict[str, Any]:
    if not ai_service.is_enabled():
        raise HTTPException(status_code=503, detail="OpenRouter API key not configured")

    try:
        raw = ai_service.generate_json(
            kind.system_prompt,
            kind.user_prompt,
            temperature=kind.temperature,
            max_tokens=kind.max_tokens,
        )
    except ai_service.AIServiceError as error:
        logger.warning("preset generation failed: kind=%s", kind.name, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to generate preset") from error

    try:
        preset = presets.normalize_preset(kind, raw)
    except presets.PresetError as error:
        logger.warning("preset rejected: kind=%s reason=%s", kind.name, error)
        raise HTTPException(status_code=500, detail=str(error)) from error

    theme = load_setting(db, THEME_SETTING_KEY)
    save_setting(db, THEME_SETTING_KEY, presets.merge_into_theme(kind, theme, preset))
    logger.info("preset generated: kind=%s name=%s", kind.name, preset["name"])
    return preset


@router.post("/generate-preset", response_model=dict[str, Any])
def generate_site_preset(
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_admin),
):
    return generate_preset(db, presets.SITE)


@router.post("/generate-admin-preset", response_model=dict[str, Any])
def generate_admin_preset(
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_admin),
):
    return generate_preset(db, presets.ADMIN)


@router.post("/generate-webapp-preset", response_model=dict[str, Any])
def generate_webapp_preset(
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_admin),
):
    return generate_preset(db, presets.WEBAPP)
