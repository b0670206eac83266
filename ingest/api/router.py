from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..config import Settings
from ..event_models import BatchOut, EventOut
from ..health import HealthChecker
from ..services.writer import write_batch, write_event
from ..store import EventStore
from .decoding import decode_batch, decode_event, read_json

router = APIRouter()


def get_store(request: Request) -> EventStore:
    return request.app.state.store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_health_checker(request: Request) -> HealthChecker:
    return request.app.state.health_checker


@router.post("/events", response_model=EventOut, status_code=201)
async def ingest_event(
    request: Request,
    store: EventStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    candidate = decode_event(await read_json(request, settings.MAX_EVENT_BYTES))
    out = await write_event(store, candidate, timeout=settings.REQUEST_TIMEOUT_SECONDS)
    request.app.state.metrics.record_accepted("single")
    return out


@router.post("/events/batch", response_model=BatchOut, status_code=201)
async def ingest_batch(
    request: Request,
    store: EventStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    candidates = decode_batch(await read_json(request, settings.MAX_BATCH_BYTES))
    result = await write_batch(store, candidates, timeout=settings.REQUEST_TIMEOUT_SECONDS)
    request.app.state.metrics.record_accepted("batch", result.count)
    return BatchOut(count=result.count, ids=result.ids)


@router.get("/healthz")
async def healthz(checker: HealthChecker = Depends(get_health_checker)):
    """Store liveness probe, bounded by HEALTH_TIMEOUT_SECONDS."""
    result = await checker.check_store()
    if result["status"] != "ok":
        return JSONResponse(
            status_code=503,
            content={"error": {"code": "db_unhealthy", "message": result["error"]}},
        )
    return {"ok": True}


@router.get("/health")
async def health(checker: HealthChecker = Depends(get_health_checker)):
    """Liveness probe - returns 200 while the process is running."""
    return checker.liveness()


@router.get("/health/ready")
async def health_ready(checker: HealthChecker = Depends(get_health_checker)):
    """
    Readiness probe.

    Returns:
        200: Service is ready to handle traffic
        503: Service is not ready
    """
    result = await checker.readiness()
    status_code = 200 if result["status"] == "ready" else 503
    return JSONResponse(status_code=status_code, content=result)
