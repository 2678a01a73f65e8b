"""Direct notification router.

Sends a one-off notification to a single device, bypassing the
escalation flow (used by clients to test a token).
"""

from fastapi import APIRouter, Depends, HTTPException, status

from sosrelay.config import settings
from sosrelay.core.auth import ApiKeyRequired
from sosrelay.core.exceptions import TransportError
from sosrelay.logging_config import get_logger
from sosrelay.schemas.notification import (
    NotificationSendRequest,
    NotificationSendResponse,
)
from sosrelay.services.push_dispatcher import (
    NotificationDispatcher,
    get_dispatcher,
    send_with_timeout,
)

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/notifications",
    tags=["notifications"],
    dependencies=[ApiKeyRequired],
)


@router.post(
    "/send",
    response_model=NotificationSendResponse,
    responses={502: {"description": "Push delivery failed"}},
)
async def send_notification(
    data: NotificationSendRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> NotificationSendResponse:
    """Send one notification to one device token."""
    try:
        result = await send_with_timeout(
            dispatcher,
            [data.token],
            data.title,
            data.body,
            data.data,
            settings.dispatch_timeout_seconds,
        )
    except TransportError as exc:
        logger.warning("Direct notification failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc

    return NotificationSendResponse(
        success_count=result.success_count,
        failure_count=result.failure_count,
        message_ids=result.message_ids,
    )
