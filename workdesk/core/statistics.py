import logging
from collections import Counter
from datetime import datetime, time, timedelta, timezone

from sqlalchemy.orm import Session

from workdesk.core.models import MetricType, StatisticType, TimePeriod
from workdesk.db import analytics
from workdesk.db.tables import Statistic

logger = logging.getLogger(__name__)

TOP_N = 5


def _top(counter: Counter, key: str) -> list[dict]:
    return [{key: k, "count": c} for k, c in counter.most_common(TOP_N)]


def _percentile(sorted_values: list[float], fraction: float) -> float:
    index = min(int(len(sorted_values) * fraction), len(sorted_values) - 1)
    return sorted_values[index]


def generate_daily_user_activity(
    db: Session, today: datetime | None = None
) -> Statistic | None:
    """Summarise the previous UTC day's activity log."""
    today = today or datetime.now(timezone.utc)
    end = datetime.combine(today.date(), time.min, tzinfo=timezone.utc)
    start = end - timedelta(days=1)

    # The log is the only source, so read the whole day.
    activities = analytics.get_activity_logs(
        db, start=start.isoformat(), end=end.isoformat(), limit=1_000_000
    )
    if not activities:
        logger.info("No activities between %s and %s, skipping", start, end)
        return None

    per_user = Counter(a.user_id for a in activities)
    per_type = Counter(a.activity_type for a in activities)
    per_entity = Counter(a.entity_type or "unknown" for a in activities)

    data = {
        "totalActivities": len(activities),
        "uniqueUsers": len(per_user),
        "averageActivitiesPerUser": len(activities) / len(per_user),
        "mostActiveUsers": _top(per_user, "userId"),
        "mostCommonActionTypes": _top(per_type, "type"),
        "mostAccessedResources": _top(per_entity, "type"),
    }
    statistic = analytics.create_statistic(
        db,
        statistic_type=StatisticType.USER_ACTIVITY.value,
        name="Daily User Activity Summary",
        time_period=TimePeriod.DAILY.value,
        period_start=start.isoformat(),
        period_end=end.isoformat(),
        data=data,
        category="user_engagement",
        description="Summary of user activities for the previous day",
        dimensions={"daily": True, "user": True, "activity": True},
    )
    logger.info("Generated daily user activity statistic %s", statistic.id)
    return statistic


def generate_api_performance(
    db: Session, now: datetime | None = None
) -> Statistic | None:
    """Summarise API response times over the last 24 hours."""
    end = now or datetime.now(timezone.utc)
    start = end - timedelta(days=1)

    metrics = analytics.get_metrics_by_time_range(
        db,
        start.isoformat(),
        end.isoformat(),
        metric_type=MetricType.API_RESPONSE_TIME.value,
    )
    if not metrics:
        logger.info("No API metrics in the last 24 hours, skipping")
        return None

    by_operation: dict[str, list[float]] = {}
    for metric in metrics:
        by_operation.setdefault(metric.operation, []).append(metric.duration_ms)

    operation_stats = []
    for operation, durations in by_operation.items():
        durations.sort()
        operation_stats.append(
            {
                "operation": operation,
                "count": len(durations),
                "min": durations[0],
                "max": durations[-1],
                "average": sum(durations) / len(durations),
                "p50": _percentile(durations, 0.5),
                "p95": _percentile(durations, 0.95),
                "p99": _percentile(durations, 0.99),
            }
        )
    operation_stats.sort(key=lambda s: s["average"], reverse=True)

    statistic = analytics.create_statistic(
        db,
        statistic_type=StatisticType.PERFORMANCE_METRIC.value,
        name="API Performance Summary",
        time_period=TimePeriod.DAILY.value,
        period_start=start.isoformat(),
        period_end=end.isoformat(),
        data={
            "totalApiCalls": len(metrics),
            "uniqueEndpoints": len(by_operation),
            "operationStats": operation_stats,
            "slowestOperations": operation_stats[:TOP_N],
        },
        category="system_performance",
        description="Summary of API performance metrics for the last 24 hours",
        dimensions={"daily": True, "api": True, "performance": True},
    )
    logger.info("Generated API performance statistic %s", statistic.id)
    return statistic


def run_all(db: Session):
    """Run every generator; one failing does not stop the others."""
    for generator in (generate_daily_user_activity, generate_api_performance):
        try:
            generator(db)
        except Exception as e:
            db.rollback()
            logger.error("Statistics generator %s failed: %s", generator.__name__, e)
