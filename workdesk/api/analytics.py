import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from workdesk.api.auth import verify_api_key
from workdesk.api.schemas import (
    ActivityLogResponse,
    AverageDurationResponse,
    ErrorRateResponse,
    JobResponse,
    JobRunResponse,
    SlowOperationResponse,
    StatisticChangeResponse,
    StatisticResponse,
    TrendPoint,
)
from workdesk.core.models import ActivityType, EntityType, StatisticType, TimePeriod
from workdesk.core.scheduler import JobScheduler
from workdesk.db import analytics
from workdesk.db.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_api_key)])


def get_scheduler(request: Request) -> JobScheduler:
    return request.app.state.scheduler


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@router.get("/analytics/activity-logs", response_model=list[ActivityLogResponse])
def list_activity_logs(
    user_id: int | None = None,
    activity_type: ActivityType | None = None,
    entity_type: EntityType | None = None,
    entity_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = Query(default=100, gt=0, le=1000),
    db: Session = Depends(get_db),
):
    return analytics.get_activity_logs(
        db,
        user_id=user_id,
        activity_type=activity_type.value if activity_type else None,
        entity_type=entity_type.value if entity_type else None,
        entity_id=entity_id,
        start=_iso(start),
        end=_iso(end),
        limit=limit,
    )


@router.get("/analytics/statistics", response_model=list[StatisticResponse])
def list_statistics(
    statistic_type: StatisticType | None = None,
    time_period: TimePeriod | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = Query(default=100, gt=0, le=1000),
    db: Session = Depends(get_db),
):
    return analytics.get_statistics(
        db,
        statistic_type=statistic_type.value if statistic_type else None,
        time_period=time_period.value if time_period else None,
        start=_iso(start),
        end=_iso(end),
        limit=limit,
    )


@router.get(
    "/analytics/statistics/{statistic_type}/latest", response_model=StatisticResponse
)
def latest_statistic(statistic_type: StatisticType, db: Session = Depends(get_db)):
    statistic = analytics.get_latest_statistic(db, statistic_type.value)
    if not statistic:
        raise HTTPException(
            status_code=404, detail=f"No {statistic_type.value} statistics yet"
        )
    return statistic


@router.get(
    "/analytics/statistics/{statistic_type}/trend", response_model=list[TrendPoint]
)
def statistic_trend(
    statistic_type: StatisticType,
    start: datetime,
    end: datetime,
    db: Session = Depends(get_db),
):
    return analytics.get_statistic_trend(
        db, statistic_type.value, start.isoformat(), end.isoformat()
    )


@router.get(
    "/analytics/statistics/{statistic_type}/change",
    response_model=StatisticChangeResponse,
)
def statistic_change(statistic_type: StatisticType, db: Session = Depends(get_db)):
    return analytics.statistic_change(db, statistic_type.value)


@router.get(
    "/analytics/metrics/slowest", response_model=list[SlowOperationResponse]
)
def slowest_operations(
    limit: int = Query(default=10, gt=0, le=100), db: Session = Depends(get_db)
):
    return analytics.get_slowest_operations(db, limit)


@router.get("/analytics/metrics/error-rate", response_model=ErrorRateResponse)
def error_rate(operation: str, db: Session = Depends(get_db)):
    return analytics.get_error_rate(db, operation)


@router.get("/analytics/metrics/average", response_model=AverageDurationResponse)
def average_duration(
    operation: str,
    start: datetime | None = None,
    end: datetime | None = None,
    db: Session = Depends(get_db),
):
    return AverageDurationResponse(
        operation=operation,
        avg_duration_ms=analytics.average_duration(db, operation, _iso(start), _iso(end)),
    )


@router.get("/analytics/statistics/{statistic_id}", response_model=StatisticResponse)
def get_statistic(statistic_id: int, db: Session = Depends(get_db)):
    statistic = analytics.get_statistic(db, statistic_id)
    if not statistic:
        raise HTTPException(
            status_code=404, detail=f"Statistic {statistic_id} not found"
        )
    return statistic


@router.delete("/analytics/statistics/{statistic_id}", status_code=204)
def delete_statistic(statistic_id: int, db: Session = Depends(get_db)):
    if not analytics.delete_statistic(db, statistic_id):
        raise HTTPException(
            status_code=404, detail=f"Statistic {statistic_id} not found"
        )


# ── Jobs ───────────────────────────────────────────────────────────────────


@router.get("/jobs", response_model=list[JobResponse])
def list_jobs(scheduler: JobScheduler = Depends(get_scheduler)):
    return [
        JobResponse(
            name=job.name,
            interval=job.interval,
            at=job.at.isoformat() if job.at else None,
            running=scheduler.is_running(job.name),
        )
        for job in scheduler.jobs()
    ]


@router.post("/jobs/{name}/run", response_model=JobRunResponse)
def run_job(name: str, scheduler: JobScheduler = Depends(get_scheduler)):
    if name not in scheduler.job_names():
        raise HTTPException(status_code=404, detail=f"Job '{name}' not found")
    if scheduler.is_running(name):
        raise HTTPException(status_code=409, detail=f"Job '{name}' is already running")
    completed = scheduler.run_job(name)
    return JobRunResponse(name=name, completed=completed)
