import logging
from datetime import datetime
from urllib.parse import unquote

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import analytics
from funnel_cms.core.config import settings
from funnel_cms.core.content_resources import commit_or_400
from funnel_cms.deps import get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["analytics"])
logger = logging.getLogger(__name__)


def _scope_days(scope: str | None) -> int:
    try:
        return analytics.parse_scope(scope)
    except ValueError as error:
        raise HTTPException(status_code=400, detail=str(error)) from error


def _header(request: Request, name: str) -> str | None:
    value = request.headers.get(name)
    if not value:
        return None
    return unquote(value).strip() or None


@router.post("", status_code=status.HTTP_201_CREATED)
def track_event(
    payload: schemas.AnalyticsEventCreateRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db_write),
):
    host = request.headers.get("x-forwarded-host") or request.headers.get("host")
    if analytics.is_dev_host(host, settings.analytics_skip_hosts_list):
        logger.debug("analytics event skipped: host=%s", host)
        response.status_code = status.HTTP_200_OK
        return {"skipped": True}

    entity_id = str(payload.entity_id).strip() if payload.entity_id is not None else ""
    if not payload.event_type or not payload.entity_type or not entity_id:
        raise HTTPException(status_code=400, detail="event_type, entity_type and entity_id are required")

    country = _header(request, settings.ANALYTICS_COUNTRY_HEADER)
    event = models.AnalyticsEvent(
        event_type=payload.event_type.strip(),
        entity_type=payload.entity_type.strip(),
        entity_id=entity_id,
        session_id=payload.session_id,
        country=country.upper() if country else None,
        city=_header(request, settings.ANALYTICS_CITY_HEADER),
        user_agent=payload.user_agent or request.headers.get("user-agent"),
        referrer=payload.referrer or request.headers.get("referer"),
        event_metadata=payload.metadata,
    )
    db.add(event)
    commit_or_400(db, "Track event")
    db.refresh(event)
    return schemas.AnalyticsEventOut.model_validate(event)


@router.get("", response_model=list[schemas.AnalyticsEventOut])
def list_events(
    event_type: str | None = Query(default=None),
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    session_id: str | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    Event = models.AnalyticsEvent
    query = db.query(Event)
    if event_type:
        query = query.filter(Event.event_type == event_type)
    if entity_type:
        query = query.filter(Event.entity_type == entity_type)
    if entity_id:
        query = query.filter(Event.entity_id == entity_id)
    if session_id:
        query = query.filter(Event.session_id == session_id)
    if start_date is not None:
        query = query.filter(Event.created_at >= start_date)
    if end_date is not None:
        query = query.filter(Event.created_at <= end_date)
    return query.order_by(Event.created_at.desc(), Event.id.desc()).limit(limit).all()


@router.get("/stats")
def dashboard_stats(
    scope: str | None = Query(default=None),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return analytics.dashboard_stats(db, _scope_days(scope))


@router.get("/cta/{cta_id}")
def cta_stats(
    cta_id: str,
    scope: str | None = Query(default=None),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return analytics.cta_stats(db, cta_id, _scope_days(scope))


@router.get("/faq/{faq_id}")
def faq_stats(
    faq_id: str,
    scope: str | None = Query(default=None),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return analytics.faq_stats(db, faq_id, _scope_days(scope))


@router.get("/country/{country}")
def country_stats(
    country: str,
    scope: str | None = Query(default=None),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return analytics.country_stats(db, country, _scope_days(scope))
