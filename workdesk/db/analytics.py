from datetime import datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from workdesk.core.errors import ValidationError
from workdesk.db.repository import now
from workdesk.db.tables import ActivityLog, PerformanceMetric, Statistic


def _check_limit(limit: int):
    if limit <= 0:
        raise ValidationError("Limit must be greater than 0")


# ── Activity logs ──────────────────────────────────────────────────────────


def record_activity(
    db: Session,
    user_id: int,
    activity_type: str,
    entity_type: str,
    description: str,
    entity_id: int | None = None,
    details: dict | None = None,
    status_code: int | None = None,
    tags: list[str] | None = None,
    ip_address: str | None = None,
) -> ActivityLog:
    """Add an activity log row to the caller's transaction (no commit)."""
    entry = ActivityLog(
        activity_type=activity_type,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        ip_address=ip_address,
        description=description[:500],
        details=details,
        status_code=status_code,
        tags=tags,
        created_at=now(),
    )
    db.add(entry)
    return entry


def get_activity_logs(
    db: Session,
    user_id: int | None = None,
    activity_type: str | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    start: str | None = None,
    end: str | None = None,
    limit: int = 100,
) -> list[ActivityLog]:
    _check_limit(limit)
    query = db.query(ActivityLog)
    if user_id is not None:
        query = query.filter(ActivityLog.user_id == user_id)
    if activity_type is not None:
        query = query.filter(ActivityLog.activity_type == activity_type)
    if entity_type is not None:
        query = query.filter(ActivityLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(ActivityLog.entity_id == entity_id)
    if start is not None:
        query = query.filter(ActivityLog.created_at >= start)
    if end is not None:
        query = query.filter(ActivityLog.created_at < end)
    return (
        query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
        .all()
    )


def delete_old_activity_logs(db: Session, older_than_days: int = 90) -> int:
    if older_than_days <= 0:
        raise ValidationError("Days must be greater than 0")
    cutoff = (datetime.now(timezone.utc) - timedelta(days=older_than_days)).isoformat()
    deleted = (
        db.query(ActivityLog)
        .filter(ActivityLog.created_at <= cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


# ── Performance metrics ────────────────────────────────────────────────────


def record_metric(
    db: Session,
    metric_type: str,
    operation: str,
    duration_ms: float,
    http_method: str | None = None,
    status_code: int | None = None,
    user_id: int | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    metadata: dict | None = None,
) -> PerformanceMetric:
    metric = PerformanceMetric(
        metric_type=metric_type,
        operation=operation,
        duration_ms=duration_ms,
        http_method=http_method,
        status_code=status_code,
        user_id=user_id,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500] or None,
        metadata_=metadata,
        created_at=now(),
    )
    db.add(metric)
    db.commit()
    return metric


def get_metrics_by_time_range(
    db: Session, start: str, end: str, metric_type: str | None = None
) -> list[PerformanceMetric]:
    query = db.query(PerformanceMetric).filter(
        PerformanceMetric.created_at >= start, PerformanceMetric.created_at <= end
    )
    if metric_type is not None:
        query = query.filter(PerformanceMetric.metric_type == metric_type)
    return query.order_by(PerformanceMetric.created_at).all()


def average_duration(
    db: Session, operation: str, start: str | None = None, end: str | None = None
) -> float:
    query = db.query(func.avg(PerformanceMetric.duration_ms)).filter(
        PerformanceMetric.operation == operation
    )
    if start and end:
        query = query.filter(
            PerformanceMetric.created_at >= start, PerformanceMetric.created_at <= end
        )
    result = query.scalar()
    return float(result) if result is not None else 0.0


def get_slowest_operations(db: Session, limit: int = 10) -> list[dict]:
    _check_limit(limit)
    avg = func.avg(PerformanceMetric.duration_ms)
    rows = (
        db.query(PerformanceMetric.operation, avg, func.count(PerformanceMetric.id))
        .group_by(PerformanceMetric.operation)
        .order_by(avg.desc())
        .limit(limit)
        .all()
    )
    return [
        {"operation": op, "avg_duration_ms": float(avg_ms), "count": count}
        for op, avg_ms, count in rows
    ]


def get_error_rate(db: Session, operation: str) -> dict:
    base = db.query(PerformanceMetric).filter(PerformanceMetric.operation == operation)
    total = base.count()
    errors = base.filter(PerformanceMetric.status_code >= 400).count()
    return {
        "operation": operation,
        "total": total,
        "errors": errors,
        "error_rate": (errors / total) * 100 if total else 0.0,
    }


# ── Statistics ─────────────────────────────────────────────────────────────


def create_statistic(
    db: Session,
    statistic_type: str,
    name: str,
    time_period: str,
    period_start: str,
    period_end: str,
    data,
    category: str | None = None,
    description: str | None = None,
    dimensions: dict | None = None,
) -> Statistic:
    ts = now()
    statistic = Statistic(
        statistic_type=statistic_type,
        time_period=time_period,
        name=name,
        category=category,
        description=description,
        period_start=period_start,
        period_end=period_end,
        data=data,
        dimensions=dimensions,
        created_at=ts,
        updated_at=ts,
    )
    db.add(statistic)
    db.commit()
    db.refresh(statistic)
    return statistic


def get_statistic(db: Session, statistic_id: int) -> Statistic | None:
    return db.query(Statistic).filter(Statistic.id == statistic_id).first()


def get_statistics(
    db: Session,
    statistic_type: str | None = None,
    time_period: str | None = None,
    start: str | None = None,
    end: str | None = None,
    limit: int = 100,
) -> list[Statistic]:
    _check_limit(limit)
    query = db.query(Statistic)
    if statistic_type is not None:
        query = query.filter(Statistic.statistic_type == statistic_type)
    if time_period is not None:
        query = query.filter(Statistic.time_period == time_period)
    if start is not None:
        query = query.filter(Statistic.period_start >= start)
    if end is not None:
        query = query.filter(Statistic.period_end <= end)
    return (
        query.order_by(Statistic.created_at.desc(), Statistic.id.desc())
        .limit(limit)
        .all()
    )


def statistic_change(db: Session, statistic_type: str) -> dict:
    """Percentage change between the two most recent numeric statistics."""
    latest = get_statistics(db, statistic_type=statistic_type, limit=2)
    if len(latest) < 2:
        return {
            "current": _as_number(latest[0].data) if latest else 0.0,
            "previous": 0.0,
            "percentage_change": 0.0,
        }
    current = _as_number(latest[0].data)
    previous = _as_number(latest[1].data)
    change = ((current - previous) / previous) * 100 if previous else 0.0
    return {"current": current, "previous": previous, "percentage_change": change}


def _as_number(data) -> float:
    if isinstance(data, bool):
        return 0.0
    if isinstance(data, (int, float)):
        return float(data)
    if isinstance(data, dict) and isinstance(data.get("value"), (int, float)):
        return float(data["value"])
    return 0.0


def delete_statistic(db: Session, statistic_id: int) -> bool:
    deleted = (
        db.query(Statistic)
        .filter(Statistic.id == statistic_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return bool(deleted)


def get_latest_statistic(db: Session, statistic_type: str) -> Statistic | None:
    return (
        db.query(Statistic)
        .filter(Statistic.statistic_type == statistic_type)
        .order_by(Statistic.created_at.desc(), Statistic.id.desc())
        .first()
    )


def get_statistic_trend(
    db: Session, statistic_type: str, start: str, end: str
) -> list[dict]:
    """Numeric values of a statistic type over time, oldest first."""
    rows = (
        db.query(Statistic)
        .filter(Statistic.statistic_type == statistic_type)
        .filter(Statistic.period_start >= start, Statistic.period_end <= end)
        .order_by(Statistic.period_start, Statistic.id)
        .all()
    )
    return [
        {"period_start": s.period_start, "value": _as_number(s.data)} for s in rows
    ]
