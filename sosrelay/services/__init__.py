# Business Logic Services
from sosrelay.services.escalation_engine import (
    EscalationOutcome,
    EscalationResult,
    SweepResult,
    run_sweep,
)
from sosrelay.services.intake import create_emergency
from sosrelay.services.push_dispatcher import (
    DispatchResult,
    NotificationDispatcher,
    get_dispatcher,
)
from sosrelay.services.request_store import RequestStore, UpdateResult

__all__ = [
    "DispatchResult",
    "EscalationOutcome",
    "EscalationResult",
    "NotificationDispatcher",
    "RequestStore",
    "SweepResult",
    "UpdateResult",
    "create_emergency",
    "get_dispatcher",
    "run_sweep",
]
