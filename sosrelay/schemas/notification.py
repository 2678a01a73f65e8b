"""Direct notification schemas."""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class NotificationSendRequest(BaseModel):
    """Send one notification straight to a device token."""

    token: str = Field(..., min_length=1, description="Delivery target (FCM token).")
    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field("", max_length=4000)
    data: dict[str, str] = Field(default_factory=dict)

    @field_validator("token")
    @classmethod
    def strip_token(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = "Token cannot be empty or whitespace only"
            raise ValueError(msg)
        return v


class NotificationSendResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ok: bool = True
    success_count: int
    failure_count: int
    message_ids: list[str] = Field(default_factory=list)
