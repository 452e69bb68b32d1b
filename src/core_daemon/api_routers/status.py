"""
Manages API routes for daemon status.

This module provides FastAPI endpoints for:
- Liveness and readiness checks, with feature health aggregation.
- Prometheus metrics exposition.
- The registered features and their health.
- The latest decoded record per topic and the DGNs seen without a decoder.
- The window shade composites published by the correlator.
- The CAN transmit queue.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from core_daemon import can_manager, feature_manager
from core_daemon._version import VERSION
from core_daemon.app_state import AppState, get_app_state
from core_daemon.models import UnknownDGNEntry

logger = logging.getLogger(__name__)

api_router_status = APIRouter()  # Router for health, metrics and bus status endpoints


@api_router_status.get("/healthz")
async def healthz():
    """Liveness check with feature health aggregation."""
    features = feature_manager.get_enabled_features()
    health_report = {name: f.health for name, f in features.items()}
    unhealthy = {
        name: status
        for name, status in health_report.items()
        if status not in ("healthy", "unknown", "disabled")
    }
    if unhealthy:
        return JSONResponse(
            status_code=503,
            content={
                "status": "degraded",
                "unhealthy_features": unhealthy,
                "all_features": health_report,
            },
        )
    return JSONResponse(
        status_code=200, content={"status": "ok", "version": VERSION, "features": health_report}
    )


@api_router_status.get("/readyz")
async def readyz(state: AppState = Depends(get_app_state)):
    """
    Readiness check: 200 once at least one frame has been decoded, else 503.
    """
    records = len(state.latest_records)
    ready = records > 0
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "pending", "records": records},
    )


@api_router_status.get("/metrics")
def metrics():
    """Prometheus metrics endpoint."""
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


@api_router_status.get("/features", response_model=Dict[str, Dict[str, Any]])
async def get_features():
    """All registered features with their enabled flag and health."""
    return {name: f.as_dict() for name, f in feature_manager.get_all_features().items()}


@api_router_status.get("/records", response_model=Dict[str, Dict[str, Any]])
async def get_latest_records(state: AppState = Depends(get_app_state)):
    """The most recent decoded record per topic."""
    with state.lock:
        return dict(state.latest_records)


@api_router_status.get("/unknown_dgns", response_model=List[UnknownDGNEntry])
async def get_unknown_dgns(state: AppState = Depends(get_app_state)):
    """DGNs seen on the bus that have no decoder definition, most frequent first."""
    with state.lock:
        entries = [entry.model_copy() for entry in state.unknown_dgns.values()]
    return sorted(entries, key=lambda e: e.count, reverse=True)


@api_router_status.get("/status/window_shades", response_model=Dict[str, Dict[str, Any]])
async def get_window_shades(state: AppState = Depends(get_app_state)):
    """The last published WINDOW_SHADE_CONTROL_STATUS composite per driver."""
    if state.correlator is None:
        return {}
    return {str(key): record for key, record in sorted(state.correlator.snapshot().items())}


@api_router_status.get("/queue", response_model=Dict[str, Any])
async def get_queue_status():
    """
    Return the current status of the CAN transmit queue.

    Returns:
        A dictionary with "length" (current queue size) and "maxsize"
        (maximum queue size, or "unbounded").
    """
    queue = can_manager.can_tx_queue
    if queue is None:
        return {"length": 0, "maxsize": "unbounded"}
    return {"length": queue.qsize(), "maxsize": queue.maxsize or "unbounded"}
