from typing import Any
from pydantic import BaseModel, Field


class InboundEvent(BaseModel):
    """Envelope of one inbound request; the payload is stored as received."""

    event_id: str = Field(..., description="Caller supplied event identifier")
    token: str = Field(..., description="Tenant secret token")
    payload: Any = Field(default_factory=dict, description="Opaque JSON body")


class IngestionResponse(BaseModel):
    success: bool
    message: str
