# meet_engine/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from meet_engine.config import get_settings
from meet_engine.db.session import engine
from meet_engine.models import Base
from meet_engine.routers import availability, credits, meetings, reschedule_requests
from meet_engine.services.errors import (
    NotFoundError,
    OverlapAbortedError,
    SchedulingError,
    StorageError,
    ValidationError,
)
from meet_engine.services.events_cache import MonthEventsCache

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.APP_NAME} started ({settings.ENV})")
    yield


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
app.state.events_cache = MonthEventsCache(ttl_seconds=settings.EVENTS_CACHE_TTL_SECONDS)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(OverlapAbortedError)
async def overlap_handler(request: Request, exc: OverlapAbortedError):
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "conflicting_meeting_ids": exc.conflicting_meeting_ids,
        },
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Storage error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "The operation could not be saved, please try again"},
    )


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    logger.error(f"Unhandled scheduling error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


# Routers
app.include_router(meetings.router, tags=["meetings"])
app.include_router(reschedule_requests.router, prefix="/reschedule-requests", tags=["reschedule-requests"])
app.include_router(availability.router, prefix="/coaches", tags=["availability"])
app.include_router(credits.router, prefix="/coaches", tags=["credits"])


@app.get("/health")
def health_check():
    db_status = "ok"
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        db_status = "error"

    return {
        "status": "ok" if db_status == "ok" else "degraded",
        "app": settings.APP_NAME,
        "env": settings.ENV,
        "database": db_status,
    }
