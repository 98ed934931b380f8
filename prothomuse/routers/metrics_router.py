import time

from fastapi import APIRouter, Depends, Query, WebSocket
from starlette.concurrency import run_in_threadpool

from prothomuse.config import get_settings
from prothomuse.dependencies import get_event_store, get_telemetry_buffer
from prothomuse.ingestion import IngestionConnection
from prothomuse.responses import success_response
from prothomuse.schemas import EventResponse
from prothomuse.store import EventStore
from prothomuse.telemetry import TelemetryBuffer

router = APIRouter(tags=["metrics"])
settings = get_settings()


@router.websocket("/stream")
async def stream(
    websocket: WebSocket,
    buffer: TelemetryBuffer = Depends(get_telemetry_buffer),
    event_store: EventStore = Depends(get_event_store),
):
    """
    Instrumented clients push one JSON frame per observed request and get one
    acknowledgement back for every frame that decodes.
    """
    await IngestionConnection(websocket, buffer, event_store).run()


@router.get("/metrics")
async def list_metrics(event_store: EventStore = Depends(get_event_store)):
    """All persisted events, newest first."""
    events = await run_in_threadpool(event_store.list_all)
    return success_response(
        "metrics retrieved",
        {"total": len(events), "metrics": [EventResponse.from_event(e) for e in events]},
    )


@router.get("/metrics/live")
def list_live_metrics(buffer: TelemetryBuffer = Depends(get_telemetry_buffer)):
    """Everything ingested since startup, from memory, in arrival order."""
    records = buffer.all()
    return success_response("live metrics retrieved", {"total": len(records), "metrics": records})


@router.get("/metrics/live/{project_id}")
def list_live_project_metrics(
    project_id: str,
    buffer: TelemetryBuffer = Depends(get_telemetry_buffer),
):
    records = buffer.by_project(project_id)
    return success_response(
        "live metrics retrieved",
        {"projectId": project_id, "total": len(records), "metrics": records},
    )


@router.get("/metrics/{project_id}")
async def list_project_metrics(
    project_id: str,
    event_store: EventStore = Depends(get_event_store),
):
    events = await run_in_threadpool(event_store.list_by_project, project_id)
    return success_response(
        "metrics retrieved",
        {
            "projectId": project_id,
            "total": len(events),
            "metrics": [EventResponse.from_event(e) for e in events],
        },
    )


@router.get("/metrics/{project_id}/recent")
async def list_recent_project_metrics(
    project_id: str,
    seconds: int = Query(default=settings.recent_window_seconds, gt=0, le=86400),
    event_store: EventStore = Depends(get_event_store),
):
    """
    Events whose client timestamp falls in the last ``seconds`` seconds.
    The window is judged by the client's clock, as reported.
    """
    since_ms = int(time.time() * 1000) - seconds * 1000
    events = await run_in_threadpool(event_store.recent, project_id, since_ms)
    return success_response(
        "recent metrics retrieved",
        {
            "projectId": project_id,
            "windowSeconds": seconds,
            "total": len(events),
            "metrics": [EventResponse.from_event(e) for e in events],
        },
    )
