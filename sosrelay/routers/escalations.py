"""Escalation router.

Entry point for externally scheduled escalation sweeps.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from sosrelay.config import settings
from sosrelay.core.auth import ApiKeyRequired
from sosrelay.core.clock import Clock, get_clock
from sosrelay.core.exceptions import StoreUnavailable
from sosrelay.schemas.escalation import SweepResponse
from sosrelay.services.escalation_engine import run_sweep
from sosrelay.services.push_dispatcher import NotificationDispatcher, get_dispatcher
from sosrelay.services.request_store import RequestStore
from sosrelay.services.store_factory import get_request_store

router = APIRouter(
    prefix="/api/escalations",
    tags=["escalations"],
    dependencies=[ApiKeyRequired],
)


@router.post(
    "/run",
    response_model=SweepResponse,
    response_model_exclude_none=True,
    responses={503: {"description": "Request store unavailable"}},
)
async def run_escalation_sweep(
    timeout_seconds: int | None = Query(
        None,
        ge=0,
        description="Override ESCALATION_TIMEOUT_SECONDS for this sweep.",
    ),
    store: RequestStore = Depends(get_request_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    clock: Clock = Depends(get_clock),
) -> SweepResponse:
    """Run one escalation sweep over all pending requests.

    Safe to call repeatedly and concurrently: a request is advanced at
    most once per due period no matter how many sweeps overlap.
    """
    timeout = (
        timeout_seconds
        if timeout_seconds is not None
        else settings.escalation_timeout_seconds
    )

    try:
        result = await run_sweep(store, dispatcher, timeout=timeout, clock=clock)
    except StoreUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Request store unavailable",
        ) from exc

    return SweepResponse.from_result(result)
