from datetime import datetime, timedelta, timezone

import pytest

from workdesk.core import statistics
from workdesk.core.errors import ValidationError
from workdesk.db import analytics
from workdesk.db.tables import ActivityLog, PerformanceMetric

TODAY = datetime(2024, 5, 2, 9, 30, tzinfo=timezone.utc)
YESTERDAY = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _log(db, user_id, activity_type="UPDATE", entity_type="INPUT", at=YESTERDAY):
    db.add(
        ActivityLog(
            user_id=user_id,
            activity_type=activity_type,
            entity_type=entity_type,
            description="test",
            created_at=at.isoformat(),
        )
    )


def _metric(db, operation, duration_ms, at, status_code=200):
    db.add(
        PerformanceMetric(
            metric_type="API_RESPONSE_TIME",
            operation=operation,
            duration_ms=duration_ms,
            status_code=status_code,
            created_at=at.isoformat(),
        )
    )


def test_daily_user_activity_summary(db, factory):
    alice = factory.user(name="Alice")
    bob = factory.user(name="Bob")
    for _ in range(3):
        _log(db, alice.id)
    _log(db, bob.id, activity_type="COMPLETE", entity_type="TASK")
    # Outside the previous day.
    _log(db, bob.id, at=TODAY)
    db.commit()

    statistic = statistics.generate_daily_user_activity(db, today=TODAY)

    assert statistic.statistic_type == "USER_ACTIVITY"
    assert statistic.time_period == "DAILY"
    assert statistic.period_start.startswith("2024-05-01")
    data = statistic.data
    assert data["totalActivities"] == 4
    assert data["uniqueUsers"] == 2
    assert data["averageActivitiesPerUser"] == 2
    assert data["mostActiveUsers"][0] == {"userId": alice.id, "count": 3}
    assert data["mostCommonActionTypes"][0] == {"type": "UPDATE", "count": 3}


def test_daily_user_activity_skipped_without_data(db):
    assert statistics.generate_daily_user_activity(db, today=TODAY) is None


def test_api_performance_summary(db):
    now = datetime.now(timezone.utc)
    for duration in (10, 20, 30):
        _metric(db, "GET /users", duration, now - timedelta(minutes=5))
    _metric(db, "POST /task-instances", 200, now - timedelta(hours=1))
    _metric(db, "GET /users", 999, now - timedelta(days=2))
    db.commit()

    statistic = statistics.generate_api_performance(db, now=now)

    data = statistic.data
    assert data["totalApiCalls"] == 4
    assert data["uniqueEndpoints"] == 2
    slowest = data["slowestOperations"][0]
    assert slowest["operation"] == "POST /task-instances"
    users = next(s for s in data["operationStats"] if s["operation"] == "GET /users")
    assert users["count"] == 3
    assert users["min"] == 10
    assert users["max"] == 30
    assert users["average"] == 20
    assert users["p50"] == 20


def test_statistic_change_and_trend(db):
    analytics.create_statistic(
        db, "CUSTOM_METRIC", "a", "DAILY", "2024-05-01", "2024-05-02", {"value": 50}
    )
    analytics.create_statistic(
        db, "CUSTOM_METRIC", "b", "DAILY", "2024-05-02", "2024-05-03", {"value": 75}
    )

    change = analytics.statistic_change(db, "CUSTOM_METRIC")
    assert change == {"current": 75.0, "previous": 50.0, "percentage_change": 50.0}
    assert analytics.get_latest_statistic(db, "CUSTOM_METRIC").name == "b"
    trend = analytics.get_statistic_trend(db, "CUSTOM_METRIC", "2024-05-01", "2024-05-03")
    assert [p["value"] for p in trend] == [50.0, 75.0]


def test_error_rate_and_slowest(db):
    now = datetime.now(timezone.utc)
    _metric(db, "GET /a", 5, now)
    _metric(db, "GET /a", 5, now, status_code=500)
    _metric(db, "GET /b", 50, now)
    db.commit()

    assert analytics.get_error_rate(db, "GET /a")["error_rate"] == 50.0
    assert analytics.get_slowest_operations(db, limit=1)[0]["operation"] == "GET /b"
    with pytest.raises(ValidationError):
        analytics.get_slowest_operations(db, limit=0)


def test_average_duration_and_delete_statistic(db):
    now = datetime.now(timezone.utc)
    _metric(db, "GET /a", 10, now)
    _metric(db, "GET /a", 30, now)
    db.commit()
    assert analytics.average_duration(db, "GET /a") == 20.0
    assert analytics.average_duration(db, "GET /missing") == 0.0

    statistic = analytics.create_statistic(
        db, "CUSTOM_METRIC", "a", "DAILY", "2024-05-01", "2024-05-02", {"value": 1}
    )
    statistic_id = statistic.id
    assert analytics.delete_statistic(db, statistic_id) is True
    assert analytics.get_statistic(db, statistic_id) is None
    assert analytics.delete_statistic(db, statistic_id) is False
