"""Emergency request router.

Intake and lookup of emergency help requests.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from sosrelay.core.auth import ApiKeyRequired
from sosrelay.core.clock import Clock, get_clock
from sosrelay.core.exceptions import StoreUnavailable, ValidationError
from sosrelay.schemas.emergency import EmergencyCreatedResponse, EmergencyResponse
from sosrelay.services.intake import create_emergency
from sosrelay.services.push_dispatcher import NotificationDispatcher, get_dispatcher
from sosrelay.services.request_store import RequestStore
from sosrelay.services.store_factory import get_request_store

router = APIRouter(
    prefix="/api/emergencies",
    tags=["emergencies"],
    dependencies=[ApiKeyRequired],
)


@router.post(
    "",
    response_model=EmergencyCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid payload"},
        503: {"description": "Request store unavailable"},
    },
)
async def post_emergency(
    request: Request,
    store: RequestStore = Depends(get_request_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    clock: Clock = Depends(get_clock),
) -> EmergencyCreatedResponse:
    """Create an emergency request and notify its first priority.

    The body is read as-is so that validation errors come back as 400
    with a readable message. The response reports creation only; the
    first notification's delivery status is not included.
    """
    body = await request.body()
    try:
        emergency_id = await create_emergency(body, store, dispatcher, clock)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StoreUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Request store unavailable",
        ) from exc

    return EmergencyCreatedResponse(emergency_id=emergency_id)


@router.get(
    "/{emergency_id}",
    response_model=EmergencyResponse,
    responses={404: {"description": "Emergency request not found"}},
)
async def get_emergency(
    emergency_id: str,
    store: RequestStore = Depends(get_request_store),
) -> EmergencyResponse:
    """Get one emergency request, including its escalation progress."""
    try:
        record = await store.get(emergency_id)
    except StoreUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Request store unavailable",
        ) from exc

    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Emergency request not found",
        )

    return EmergencyResponse.from_record(record)
