from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy import func, literal_column
from sqlalchemy.orm import Session

from funnel_cms import models


DEFAULT_SCOPE = "30"
ALL_SCOPE_DAYS = 365
UNKNOWN_LOCATION = "unknown"

Event = models.AnalyticsEvent


@dataclass(frozen=True)
class Metric:
    key: str
    event_type: str
    entity_type: str | None = None

    def criteria(self) -> list[Any]:
        items = [Event.event_type == self.event_type]
        if self.entity_type:
            items.append(Event.entity_type == self.entity_type)
        return items

    def matches(self, event_type: str, entity_type: str | None) -> bool:
        if event_type != self.event_type:
            return False
        return self.entity_type is None or entity_type == self.entity_type


PAGE_VIEWS = Metric("pageViews", "page_view")
CTA_CLICKS = Metric("ctaClicks", "link_click", "cta_button")
VIDEO_CLICKS = Metric("videoClicks", "link_click", "media")
SESSION_STARTS = Metric("sessionStarts", "session_start")
FAQ_CLICKS = Metric("faqClicks", "link_click", "faq_item")
DASHBOARD_METRICS = (PAGE_VIEWS, CTA_CLICKS, VIDEO_CLICKS, SESSION_STARTS)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_scope(scope: str | None) -> int:
    value = (scope or DEFAULT_SCOPE).strip().lower()
    if value == "all":
        return ALL_SCOPE_DAYS
    try:
        days = int(value)
    except ValueError as error:
        raise ValueError(f"Invalid scope: {scope}") from error
    if days <= 0:
        raise ValueError(f"Invalid scope: {scope}")
    return days


def window_start(days: int, now: datetime | None = None) -> datetime:
    return (now or utc_now()) - timedelta(days=days)


def utc_day(value: str | date | datetime) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%d")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def build_daily_series(rows: Iterable[tuple[Any, int]]) -> list[dict[str, Any]]:
    buckets: dict[str, int] = {}
    for day, count in rows:
        if day is None:
            continue
        key = utc_day(day)
        buckets[key] = buckets.get(key, 0) + int(count or 0)
    return [{"date": key, "count": buckets[key]} for key in sorted(buckets)]


def day_expression(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return func.to_char(func.timezone(literal_column("'UTC'"), Event.created_at), literal_column("'YYYY-MM-DD'"))
    if dialect == "sqlite":
        return func.strftime(literal_column("'%Y-%m-%d'"), Event.created_at)
    return func.date(Event.created_at)


def location_expression(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        raw = literal_column("analytics_events.metadata ->> 'location'")
    else:
        raw = func.json_extract(Event.event_metadata, literal_column("'$.location'"))
    return func.coalesce(raw, literal_column(f"'{UNKNOWN_LOCATION}'"))


def _count_rows(rows: Iterable[tuple[Any, int]], key_name: str, count_name: str = "count") -> list[dict[str, Any]]:
    return [{key_name: key, count_name: int(count)} for key, count in rows]


def _series_for_metric(db: Session, metric: Metric, criteria: list[Any]) -> list[dict[str, Any]]:
    day = day_expression(db)
    rows = (
        db.query(day, func.count(Event.id))
        .filter(*criteria, *metric.criteria())
        .group_by(day)
        .all()
    )
    return build_daily_series(rows)


def _top_countries(db: Session, criteria: list[Any], limit: int) -> list[dict[str, Any]]:
    count = func.count(Event.id)
    rows = (
        db.query(Event.country, count)
        .filter(*criteria, Event.country.isnot(None))
        .group_by(Event.country)
        .order_by(count.desc(), Event.country.asc())
        .limit(limit)
        .all()
    )
    return _count_rows(rows, "country")


def _top_locations(db: Session, criteria: list[Any]) -> list[dict[str, Any]]:
    location = location_expression(db)
    count = func.count(Event.id)
    rows = (
        db.query(location, count)
        .filter(*criteria)
        .group_by(location)
        .order_by(count.desc())
        .all()
    )
    return _count_rows(rows, "location", "clicks")


def _cta_labels(db: Session, entity_ids: Iterable[str]) -> dict[str, str]:
    ids = {int(item) for item in entity_ids if str(item).strip().isdigit()}
    if not ids:
        return {}
    rows = db.query(models.CtaButton.id, models.CtaButton.label).filter(models.CtaButton.id.in_(ids)).all()
    return {str(row_id): label for row_id, label in rows}


def _top_ctas(db: Session, criteria: list[Any], limit: int = 10) -> list[dict[str, Any]]:
    location = location_expression(db)
    count = func.count(Event.id)
    rows = (
        db.query(Event.entity_id, location, count)
        .filter(*criteria, *CTA_CLICKS.criteria())
        .group_by(Event.entity_id, location)
        .order_by(count.desc())
        .limit(limit)
        .all()
    )
    labels = _cta_labels(db, [row[0] for row in rows])
    return [
        {
            "id": entity_id,
            "label": labels.get(str(entity_id), entity_id),
            "clicks": int(clicks),
            "location": loc,
        }
        for entity_id, loc, clicks in rows
    ]


def dashboard_stats(db: Session, days: int, now: datetime | None = None) -> dict[str, Any]:
    since = window_start(days, now)
    criteria = [Event.created_at >= since]

    totals = {metric.key: 0 for metric in DASHBOARD_METRICS}
    grouped = (
        db.query(Event.event_type, Event.entity_type, func.count(Event.id))
        .filter(*criteria)
        .group_by(Event.event_type, Event.entity_type)
        .all()
    )
    for event_type, entity_type, count in grouped:
        for metric in DASHBOARD_METRICS:
            if metric.matches(event_type, entity_type):
                totals[metric.key] += int(count)

    unique_sessions = (
        db.query(func.count(func.distinct(Event.session_id)))
        .filter(*criteria, Event.session_id.isnot(None))
        .scalar()
    )

    return {
        "scopeDays": days,
        "totalPageViews": totals[PAGE_VIEWS.key],
        "totalCTAClicks": totals[CTA_CLICKS.key],
        "totalVideoClicks": totals[VIDEO_CLICKS.key],
        "totalSessionStarts": totals[SESSION_STARTS.key],
        "uniqueSessions": int(unique_sessions or 0),
        "pageViewsSeries": _series_for_metric(db, PAGE_VIEWS, criteria),
        "ctaClicksSeries": _series_for_metric(db, CTA_CLICKS, criteria),
        "sessionStartsSeries": _series_for_metric(db, SESSION_STARTS, criteria),
        "videoClicksSeries": _series_for_metric(db, VIDEO_CLICKS, criteria),
        "topCTAs": _top_ctas(db, criteria),
        "topLocations": _top_locations(db, [*criteria, *CTA_CLICKS.criteria()]),
        "topCountries": _top_countries(db, criteria, 20),
        "topCountriesBySessionStart": _top_countries(db, [*criteria, *SESSION_STARTS.criteria()], 10),
        "topCountriesByPageView": _top_countries(db, [*criteria, *PAGE_VIEWS.criteria()], 10),
        "topCountriesByCTAClick": _top_countries(db, [*criteria, *CTA_CLICKS.criteria()], 10),
        "topCountriesByVideoClick": _top_countries(db, [*criteria, *VIDEO_CLICKS.criteria()], 10),
    }


def cta_stats(db: Session, cta_id: str, days: int, now: datetime | None = None) -> dict[str, Any]:
    criteria = [
        Event.created_at >= window_start(days, now),
        Event.entity_id == cta_id,
    ]
    total = db.query(func.count(Event.id)).filter(*criteria, *CTA_CLICKS.criteria()).scalar() or 0
    return {
        "totalCTAClicks": int(total),
        "ctaClicksSeries": _series_for_metric(db, CTA_CLICKS, criteria),
        "topLocations": _top_locations(db, [*criteria, *CTA_CLICKS.criteria()]),
        "topCountries": _top_countries(db, [*criteria, *CTA_CLICKS.criteria()], 10),
    }


def faq_stats(db: Session, faq_id: str, days: int, now: datetime | None = None) -> dict[str, Any]:
    criteria = [
        Event.created_at >= window_start(days, now),
        Event.entity_id == faq_id,
    ]
    total = db.query(func.count(Event.id)).filter(*criteria, *FAQ_CLICKS.criteria()).scalar() or 0
    return {
        "totalFAQClicks": int(total),
        "faqClicksSeries": _series_for_metric(db, FAQ_CLICKS, criteria),
        "topCountries": _top_countries(db, [*criteria, *FAQ_CLICKS.criteria()], 10),
    }


def country_stats(db: Session, country: str, days: int, now: datetime | None = None) -> dict[str, Any]:
    criteria = [
        Event.created_at >= window_start(days, now),
        Event.country == country.upper(),
    ]
    result: dict[str, Any] = {"country": country.upper()}
    for metric in DASHBOARD_METRICS:
        total = db.query(func.count(Event.id)).filter(*criteria, *metric.criteria()).scalar() or 0
        result[f"total{metric.key[0].upper()}{metric.key[1:]}"] = int(total)
        result[f"{metric.key}Series"] = _series_for_metric(db, metric, criteria)
    result["topCTAs"] = _top_ctas(db, criteria)
    return result


def is_dev_host(host: str | None, skip_hosts: Iterable[str]) -> bool:
    if not host:
        return False
    value = host.strip().lower()
    if value.startswith("["):
        hostname = value[1:].split("]", 1)[0]
    elif value.count(":") == 1:
        hostname = value.split(":", 1)[0]
    else:
        hostname = value
    if hostname.endswith(".local") or hostname.endswith(".localhost"):
        return True
    return hostname in set(skip_hosts)
