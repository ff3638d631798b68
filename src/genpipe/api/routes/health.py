"""Health endpoints reporting the state of the pipeline's moving parts."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from genpipe.config import settings

router = APIRouter()

SERVICE_NAME = "genpipe-api"
SERVICE_VERSION = "0.1.0"


@router.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "mode": "local" if settings.local_mode else "distributed",
    }


@router.get("/health/live")
async def liveness():
    """200 while the process is running."""
    return {"status": "alive"}


async def _check_database(request: Request) -> str:
    async with request.app.state.db_session_factory() as session:
        await session.execute(text("SELECT 1"))
    return "ok"


async def _check_event_bus(request: Request) -> str:
    # Local mode publishes to an in-process queue; only Redis can be unreachable
    redis = getattr(request.app.state, "redis", None)
    if redis is None:
        return "in-process"
    await redis.ping()
    return "ok"


@router.get("/health/ready")
async def readiness(request: Request):
    """Ready when results can be stored and job-start events published.

    The retention sweeper is reported but does not gate readiness: a stopped
    sweeper only delays cleanup.
    """
    checks: dict[str, str] = {}
    ready = True
    for name, check in (("database", _check_database), ("event_bus", _check_event_bus)):
        try:
            checks[name] = await check(request)
        except Exception as exc:
            checks[name] = f"error: {exc}"
            ready = False

    sweeper = getattr(request.app.state, "sweeper", None)
    checks["retention_sweeper"] = "running" if sweeper is not None and sweeper.running else "stopped"

    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "not_ready", "checks": checks},
    )
