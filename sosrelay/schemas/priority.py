"""Normalized priority entries.

A priority entry names one candidate responder. Raw entries arrive in
several shapes; they are parsed once at intake (see
``sosrelay.services.token_resolver``) and stored in one of these forms.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class SinglePriority(BaseModel):
    """A responder reachable at exactly one delivery target."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["single"] = "single"
    target: str


class ListPriority(BaseModel):
    """A responder reachable at several delivery targets (or none)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["list"] = "list"
    targets: tuple[str, ...] = ()


PriorityEntry = Annotated[SinglePriority | ListPriority, Field(discriminator="kind")]
