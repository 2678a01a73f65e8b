"""Health check endpoints for container orchestration."""

from typing import Any

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from sosrelay.services.memory_store import MemoryRequestStore
from sosrelay.services.request_store import RequestStore
from sosrelay.services.store_factory import get_request_store

router = APIRouter(tags=["Health"])


async def _store_reachable(store: RequestStore) -> tuple[bool, dict[str, str]]:
    """Ping the request store and describe it."""
    reachable = await store.ping()
    if isinstance(store, MemoryRequestStore):
        return reachable, {"store": "memory"}
    return reachable, {
        "store": "sql",
        "database": "connected" if reachable else "disconnected",
    }


@router.get("/health", response_model=None)
async def health_check(
    store: RequestStore = Depends(get_request_store),
) -> Response:
    """Health check with request store status.

    Returns 200 ``{"status": "healthy", ...}`` when the store is reachable,
    503 ``{"status": "degraded", ...}`` otherwise.
    """
    reachable, details = await _store_reachable(store)
    return JSONResponse(
        status_code=status.HTTP_200_OK if reachable else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "healthy" if reachable else "degraded", **details},
    )


@router.get("/health/live")
async def liveness_probe() -> dict[str, Any]:
    """Liveness probe: the process is up. Does not touch the store."""
    return {"status": "alive"}


@router.get("/health/ready", response_model=None)
async def readiness_probe(
    store: RequestStore = Depends(get_request_store),
) -> Response:
    """Readiness probe: the service can accept intake and sweeps."""
    reachable, details = await _store_reachable(store)
    return JSONResponse(
        status_code=status.HTTP_200_OK if reachable else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if reachable else "not_ready", **details},
    )
