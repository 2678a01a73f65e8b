"""Emergency request model.

One row per help request. The escalation engine advances
``current_priority_index`` through ``priorities`` until someone responds
or the list is exhausted.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from sosrelay.models.base import Base
from sosrelay.schemas.priority import PriorityEntry

UNKNOWN_SENDER = "unknown"


class RequestStatus(str, enum.Enum):
    """Lifecycle status of an emergency request.

    ``RESOLVED`` is written by the responder acknowledgement path, which
    lives outside this service. Any status other than ``PENDING`` is final.
    """

    PENDING = "pending"
    ALL_TRIED = "all_tried"
    RESOLVED = "resolved"


# Fields the escalation engine may change after creation
MUTABLE_FIELDS = frozenset({"current_priority_index", "last_sent_at", "status"})


@dataclass
class EmergencyRecord:
    """Store-agnostic snapshot of one emergency request."""

    type: str
    need: str
    priorities: list[PriorityEntry]
    sender_uid: str = UNKNOWN_SENDER
    condition: str = ""
    location: Any = field(default_factory=dict)
    maps_url: str = ""
    current_priority_index: int = 0
    status: str = RequestStatus.PENDING.value
    created_at: datetime | None = None
    last_sent_at: datetime | None = None
    id: str | None = None

    def to_document(self) -> dict[str, Any]:
        """Serialize using the persisted-record field names."""
        return {
            "id": self.id,
            "senderUid": self.sender_uid,
            "type": self.type,
            "condition": self.condition,
            "need": self.need,
            "location": self.location,
            "mapsUrl": self.maps_url,
            "priorities": [p.model_dump(mode="json") for p in self.priorities],
            "currentPriorityIndex": self.current_priority_index,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "lastSentAt": self.last_sent_at.isoformat() if self.last_sent_at else None,
        }


class EmergencyRequest(Base):
    """Persisted emergency request row.

    ``status`` is a plain string column rather than a database enum so
    that values written by the external acknowledgement path are kept
    verbatim.
    """

    __tablename__ = "emergency_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    sender_uid: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=UNKNOWN_SENDER,
    )

    type: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    condition: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
    )

    need: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    location: Mapped[Any] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
    )

    maps_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
    )

    # JSON array of normalized priority entries
    priorities: Mapped[list[dict]] = mapped_column(
        JSONB,
        nullable=False,
    )

    current_priority_index: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=RequestStatus.PENDING.value,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    last_sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<EmergencyRequest(id={self.id}, type={self.type!r}, "
            f"index={self.current_priority_index}, status={self.status})>"
        )
