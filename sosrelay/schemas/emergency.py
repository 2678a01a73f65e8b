"""Emergency request API schemas.

Responses use the persisted-record field names (camelCase).
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sosrelay.models.emergency_request import EmergencyRecord
from sosrelay.schemas.priority import PriorityEntry


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EmergencyCreatedResponse(CamelModel):
    """Response for a newly created request."""

    ok: bool = True
    emergency_id: str


class EmergencyResponse(CamelModel):
    """One emergency request."""

    id: str
    sender_uid: str
    type: str
    condition: str
    need: str
    location: Any = Field(default_factory=dict)
    maps_url: str
    priorities: list[PriorityEntry]
    current_priority_index: int
    status: str
    created_at: datetime | None
    last_sent_at: datetime | None

    @classmethod
    def from_record(cls, record: EmergencyRecord) -> "EmergencyResponse":
        return cls(
            id=record.id,
            sender_uid=record.sender_uid,
            type=record.type,
            condition=record.condition,
            need=record.need,
            location=record.location,
            maps_url=record.maps_url,
            priorities=record.priorities,
            current_priority_index=record.current_priority_index,
            status=record.status,
            created_at=record.created_at,
            last_sent_at=record.last_sent_at,
        )
