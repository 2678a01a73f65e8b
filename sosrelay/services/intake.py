"""Emergency request intake.

Validates a new help request, stores it and notifies the first
priority. The request counts as created once it is stored; a failed
first notification is logged but not reported to the caller, and the
escalation sweep moves on to the next priority after the timeout.
"""

import json
from collections.abc import Mapping
from typing import Any

from sosrelay.config import settings
from sosrelay.core.clock import Clock, system_clock
from sosrelay.core.exceptions import TransportError, ValidationError
from sosrelay.logging_config import get_logger
from sosrelay.models.emergency_request import (
    UNKNOWN_SENDER,
    EmergencyRecord,
    RequestStatus,
)
from sosrelay.services.messages import build_notification
from sosrelay.services.push_dispatcher import NotificationDispatcher, send_with_timeout
from sosrelay.services.request_store import RequestStore
from sosrelay.services.token_resolver import parse_priorities, resolve_targets

logger = get_logger(__name__)


def _require_text(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        msg = f"'{key}' must be a non-empty string"
        raise ValidationError(msg)
    return value


def _optional_text(payload: Mapping[str, Any], key: str, default: str) -> str:
    value = payload.get(key)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        msg = f"'{key}' must be a string"
        raise ValidationError(msg)
    return value


def decode_payload(payload: Any) -> Mapping[str, Any]:
    """Accept a mapping or its JSON text form.

    Some clients send the JSON object as a JSON-encoded string, so text is
    decoded up to twice.

    Raises:
        ValidationError: If the payload is not a JSON object.
    """
    for _ in range(2):
        if not isinstance(payload, str | bytes):
            break
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            msg = "Payload is not valid JSON"
            raise ValidationError(msg) from e

    if not isinstance(payload, Mapping):
        msg = "Payload must be a JSON object"
        raise ValidationError(msg)
    return payload


def build_record(payload: Any, clock: Clock = system_clock) -> EmergencyRecord:
    """Validate an intake payload and build the initial record.

    Raises:
        ValidationError: If ``type`` or ``need`` is missing or blank, or
            ``priorities`` is not a non-empty list.
    """
    payload = decode_payload(payload)

    type_ = _require_text(payload, "type")
    need = _require_text(payload, "need")

    priorities = payload.get("priorities")
    if not isinstance(priorities, list) or not priorities:
        msg = "'priorities' must be a non-empty list"
        raise ValidationError(msg)

    location = payload.get("location")
    if location is None:
        location = {}
    maps_url = location.get("mapsUrl") if isinstance(location, Mapping) else None

    now = clock.now()
    return EmergencyRecord(
        sender_uid=_optional_text(payload, "senderUid", UNKNOWN_SENDER),
        type=type_,
        condition=_optional_text(payload, "condition", ""),
        need=need,
        location=location,
        maps_url=maps_url if isinstance(maps_url, str) else "",
        priorities=parse_priorities(priorities),
        current_priority_index=0,
        status=RequestStatus.PENDING.value,
        created_at=now,
        last_sent_at=now,
    )


async def create_emergency(
    payload: Any,
    store: RequestStore,
    dispatcher: NotificationDispatcher,
    clock: Clock = system_clock,
    dispatch_timeout: float | None = None,
) -> str:
    """Create an emergency request and notify its first priority.

    Args:
        payload: Intake payload (mapping or JSON text).
        store: Request store.
        dispatcher: Push dispatcher.
        clock: Source of the creation timestamp.
        dispatch_timeout: Seconds allowed for the first notification.

    Returns:
        The store-assigned request ID.

    Raises:
        ValidationError: If the payload is invalid. Nothing is stored.
        StoreUnavailable: If the store cannot be reached.
    """
    record = build_record(payload, clock)
    record.id = await store.create(record)

    logger.info(
        "Emergency request created",
        request_id=record.id,
        type=record.type,
        priority_count=len(record.priorities),
    )

    targets = resolve_targets(record.priorities[0])
    if not targets:
        logger.warning(
            "First priority has no delivery target",
            request_id=record.id,
        )
        return record.id

    title, body, metadata = build_notification(record)
    timeout = (
        dispatch_timeout
        if dispatch_timeout is not None
        else settings.dispatch_timeout_seconds
    )

    try:
        result = await send_with_timeout(
            dispatcher, targets, title, body, metadata, timeout
        )
        logger.info(
            "Initial notification sent",
            request_id=record.id,
            target_count=len(targets),
            success_count=result.success_count,
        )
    except TransportError as e:
        logger.warning(
            "Initial notification failed",
            request_id=record.id,
            target_count=len(targets),
            error=str(e),
        )
    except Exception as e:
        # The request is already stored; the sweep takes over from here
        logger.error(
            "Unexpected error sending initial notification",
            request_id=record.id,
            error=str(e),
        )

    return record.id
