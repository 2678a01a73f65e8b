"""Notification content for emergency requests."""

from sosrelay.models.emergency_request import EmergencyRecord

INITIAL_TITLE = "Emergency: {type}"
ESCALATION_TITLE = "Emergency Escalation: {type}"


def format_body(need: str, condition: str | None) -> str:
    """Need, then an em dash and the condition when one was given."""
    if condition:
        return f"{need} \u2014 {condition}"
    return need


def build_notification(
    record: EmergencyRecord,
    escalation: bool = False,
) -> tuple[str, str, dict[str, str]]:
    """Build (title, body, metadata) for a record.

    Metadata carries the request ID and map link so the responder's app
    can open the request directly.
    """
    template = ESCALATION_TITLE if escalation else INITIAL_TITLE
    title = template.format(type=record.type)
    body = format_body(record.need, record.condition)
    metadata = {
        "emergencyId": record.id or "",
        "mapsUrl": record.maps_url or "",
    }
    return title, body, metadata
