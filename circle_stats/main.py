"""
Circle stats API.

Serves the circle engine over HTTP: the cached `/circles/{id}/stats` fast
path, the expensive full and stats-tab views, and the invalidation hook the
check-in subsystem calls after writing a member's alignment row.

Every service reads "today" as the UTC calendar day. Logging is configured
once here from LOG_LEVEL; modules log through `logging.getLogger(__name__)`.
"""
import logging

from fastapi import FastAPI, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text

from circle_stats.db.base import get_db
from circle_stats.core.config import settings
from circle_stats.routers import circles as circles_router
from circle_stats.routers import alignment as alignment_router
from circle_stats.core.errors import (
    CircleStatsException,
    circle_stats_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler,
)

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Circle Stats API",
    description=(
        "**Circle alignment and streak engine**\n\n"
        "Aggregates members' daily alignment into circle averages, streaks, "
        "percentile rank and a contribution timeline. The coach never counts.\n\n"
        f"Basic stats are cached on the circle for at most "
        f"{settings.STATS_CACHE_TTL_SECONDS}s and never across a UTC day boundary.\n\n"
        "All error responses follow the `{code, message, details}` envelope; "
        "a failed store read is `503 STATS_UNAVAILABLE`, never a partial number."
    ),
    openapi_tags=[
        {"name": "circles", "description": "Circle averages, streak, percentile and history."},
        {"name": "alignment", "description": "Cache invalidation after alignment writes."},
        {"name": "health", "description": "Liveness and database probe."},
    ],
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Exception handlers (most specific first) ---
app.add_exception_handler(CircleStatsException, circle_stats_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Routers ---
app.include_router(circles_router.router)
app.include_router(alignment_router.router)


@app.get("/health", tags=["health"], summary="Health check")
def health(db: Session = Depends(get_db)):
    """
    Returns `{"status": "ok", "db": "ok"}` when both the API and the database
    are reachable. Returns HTTP 503 if the DB is down.
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception:
        db_status = "unreachable"

    if db_status != "ok":
        return JSONResponse(
            status_code=503,
            content={"status": "error", "db": db_status},
        )
    return {"status": "ok", "db": "ok", "env": settings.APP_ENV}
