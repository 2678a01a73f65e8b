# Database Models
from sosrelay.models.base import Base
from sosrelay.models.emergency_request import (
    EmergencyRecord,
    EmergencyRequest,
    RequestStatus,
)

__all__ = [
    "Base",
    "EmergencyRecord",
    "EmergencyRequest",
    "RequestStatus",
]
