from datetime import date, datetime, timedelta, timezone

import pytest

from funnel_cms import models
from funnel_cms.core import analytics


def test_parse_scope():
    assert analytics.parse_scope(None) == 30
    assert analytics.parse_scope("7") == 7
    assert analytics.parse_scope("ALL") == analytics.ALL_SCOPE_DAYS
    with pytest.raises(ValueError):
        analytics.parse_scope("0")
    with pytest.raises(ValueError):
        analytics.parse_scope("week")


def test_daily_series_merges_buckets_by_utc_day():
    late_evening = datetime(2024, 3, 1, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    rows = [
        ("2024-03-02", 2),
        (late_evening, 1),
        (date(2024, 3, 1), 4),
        (None, 9),
    ]
    assert analytics.build_daily_series(rows) == [
        {"date": "2024-03-01", "count": 4},
        {"date": "2024-03-02", "count": 3},
    ]


@pytest.mark.parametrize(
    "host, expected",
    [
        ("localhost:8080", True),
        ("127.0.0.1", True),
        ("[::1]:3000", True),
        ("preview.local", True),
        ("www.example.com", False),
        (None, False),
    ],
)
def test_is_dev_host(host, expected):
    skip = ["localhost", "127.0.0.1", "0.0.0.0", "::1"]
    assert analytics.is_dev_host(host, skip) is expected


def test_metric_matching():
    assert analytics.CTA_CLICKS.matches("link_click", "cta_button")
    assert not analytics.CTA_CLICKS.matches("link_click", "media")
    assert analytics.PAGE_VIEWS.matches("page_view", "anything")


def test_track_event_and_dashboard(client):
    response = client.post("/api/admin/analytics", json={"event_type": "page_view"})
    assert response.status_code == 400
    assert "required" in response.json()["error"]

    headers = {"x-vercel-ip-country": "de", "x-vercel-ip-city": "Berlin"}
    events = [
        {"event_type": "page_view", "entity_type": "page", "entity_id": 1, "session_id": "s1"},
        {"event_type": "page_view", "entity_type": "page", "entity_id": 1, "session_id": "s2"},
        {
            "event_type": "link_click",
            "entity_type": "cta_button",
            "entity_id": "7",
            "session_id": "s1",
            "metadata": {"location": "hero"},
        },
        {"event_type": "session_start", "entity_type": "session", "entity_id": "s1", "session_id": "s1"},
    ]
    for event in events:
        created = client.post("/api/admin/analytics", json=event, headers=headers)
        assert created.status_code == 201
    assert created.json()["country"] == "DE"

    stats = client.get("/api/admin/analytics/stats", params={"scope": "7"})
    assert stats.status_code == 200
    body = stats.json()
    assert body["totalPageViews"] == 2
    assert body["totalCTAClicks"] == 1
    assert body["totalSessionStarts"] == 1
    assert body["uniqueSessions"] == 2
    assert body["topCountries"] == [{"country": "DE", "count": 4}]
    assert body["topCTAs"][0]["id"] == "7"
    assert body["topCTAs"][0]["location"] == "hero"

    cta = client.get("/api/admin/analytics/cta/7").json()
    assert cta["totalCTAClicks"] == 1

    assert client.get("/api/admin/analytics/stats", params={"scope": "abc"}).status_code == 400


def test_dev_hosts_are_not_recorded(client):
    response = client.post(
        "/api/admin/analytics",
        json={"event_type": "page_view", "entity_type": "page", "entity_id": 1},
        headers={"x-forwarded-host": "localhost:5173"},
    )
    assert response.status_code == 200
    assert response.json() == {"skipped": True}
    assert client.get("/api/admin/analytics").json() == []


def test_scope_excludes_events_outside_the_window(client, db_session):
    now = datetime.now(timezone.utc)
    for created_at in (now - timedelta(days=1), now - timedelta(days=1), now - timedelta(days=10)):
        db_session.add(
            models.AnalyticsEvent(
                event_type="page_view",
                entity_type="page",
                entity_id="1",
                created_at=created_at,
            )
        )
    db_session.commit()

    last_week = client.get("/api/admin/analytics/stats", params={"scope": "7"}).json()
    assert last_week["totalPageViews"] == 2
    assert last_week["pageViewsSeries"] == [{"date": (now - timedelta(days=1)).date().isoformat(), "count": 2}]

    all_time = client.get("/api/admin/analytics/stats", params={"scope": "all"}).json()
    assert all_time["totalPageViews"] == 3
