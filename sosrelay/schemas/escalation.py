"""Escalation sweep schemas."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sosrelay.services.escalation_engine import SweepResult


class EscalationOutcomeResponse(BaseModel):
    """What one sweep did to one request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    result: str
    next_index: int | None = None
    error: str | None = None


class SweepResponse(BaseModel):
    """Sweep summary; ``details`` lists every request that was advanced."""

    ok: bool = True
    processed: int
    details: list[EscalationOutcomeResponse] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: SweepResult) -> "SweepResponse":
        return cls(
            processed=result.processed,
            details=[
                EscalationOutcomeResponse(
                    id=o.request_id,
                    result=o.result.value,
                    next_index=o.next_index,
                    error=o.error,
                )
                for o in result.outcomes
            ],
        )
