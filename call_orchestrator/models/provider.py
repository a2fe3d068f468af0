"""
Typed provider responses, validated at the boundary before they reach the core
"""

from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator


class TwilioCallInfo(BaseModel):
    """The subset of a Twilio Call resource the orchestrator reads"""
    sid: str
    status: str
    to: Optional[str] = None
    from_: Optional[str] = Field(default=None, alias="from")
    duration: Optional[int] = None
    price: Optional[float] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    date_created: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("duration", mode="before")
    @classmethod
    def _blank_duration(cls, value):
        if value in ("", None):
            return None
        return value

    @field_validator("price", mode="before")
    @classmethod
    def _absolute_price(cls, value):
        # Twilio reports charges as negative decimal strings
        if value in ("", None):
            return None
        return abs(float(value))

    @classmethod
    def from_resource(cls, call: Any) -> "TwilioCallInfo":
        """Build from a twilio-python CallInstance"""
        return cls(
            sid=call.sid,
            status=str(call.status),
            to=getattr(call, "to", None),
            from_=getattr(call, "from_", None),
            duration=getattr(call, "duration", None),
            price=getattr(call, "price", None),
            start_time=getattr(call, "start_time", None),
            end_time=getattr(call, "end_time", None),
            date_created=getattr(call, "date_created", None),
        )


class ElevenLabsOutboundCallResponse(BaseModel):
    """Response of the speech provider's Twilio outbound-call endpoint"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    success: bool = True
    message: Optional[str] = None
    conversation_id: Optional[str] = None
    call_sid: Optional[str] = Field(default=None, alias="callSid")


class DispatchOutcome(BaseModel):
    """Result of a successful provider placement"""
    call_sid: str
    provider: str
    status: Optional[str] = None
    conversation_id: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)
