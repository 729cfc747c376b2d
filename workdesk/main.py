import asyncio
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from workdesk import config
from workdesk.api import analytics as analytics_api
from workdesk.api import directory, instances, templates
from workdesk.core.errors import WorkdeskError
from workdesk.core.models import MetricType
from workdesk.core.scheduler import build_scheduler
from workdesk.db import analytics
from workdesk.db.database import SessionLocal, init_db

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    task = None
    if config.SCHEDULER_ENABLED:
        task = asyncio.create_task(app.state.scheduler.start())
    yield
    if task is not None:
        task.cancel()


app = FastAPI(title="Workdesk", lifespan=lifespan)
app.state.session_factory = SessionLocal
app.state.scheduler = build_scheduler(SessionLocal)

app.include_router(directory.router)
app.include_router(templates.router)
app.include_router(instances.router)
app.include_router(analytics_api.router)


@app.exception_handler(WorkdeskError)
async def workdesk_error_handler(request: Request, exc: WorkdeskError):
    logger.info(
        "%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


def _record_response_time(session_factory, **fields):
    db = session_factory()
    try:
        analytics.record_metric(
            db, metric_type=MetricType.API_RESPONSE_TIME.value, **fields
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "Failed to record response time for %s: %s", fields["operation"], e
        )
    finally:
        db.close()


@app.middleware("http")
async def record_response_time(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000

    route = request.scope.get("route")
    operation = f"{request.method} {route.path if route else request.url.path}"
    await run_in_threadpool(
        _record_response_time,
        request.app.state.session_factory,
        operation=operation,
        duration_ms=duration_ms,
        http_method=request.method,
        status_code=response.status_code,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return response
