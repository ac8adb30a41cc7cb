"""
Real-time channel messages.

Every frame on the wire is ``{"event": <name>, "data": <payload>}``. Inbound
frames are parsed into a union discriminated on ``event``; outbound frames are
built from the models below and dumped with camelCase keys.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ActivityType(str, Enum):
    """Live activity kinds."""

    VISIT = "visit"
    PAGE_VIEW = "page_view"
    INTERACTION = "interaction"
    DOWNLOAD = "download"


class LiveActivity(BaseModel):
    """Ephemeral feed item derived from one ingested record."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: ActivityType
    page: str | None = None
    action: str | None = None
    timestamp: datetime
    user_agent: str | None = Field(None, alias="userAgent")
    location: str | None = None


# --- Inbound ---


class AnalyticsRequest(BaseModel):
    """Period selection carried by requestAnalyticsUpdate."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    period: str | None = None
    start_date: str | None = Field(None, alias="startDate")
    end_date: str | None = Field(None, alias="endDate")


class SubscribeMessage(BaseModel):
    event: Literal["subscribeToAnalytics"]
    data: Any = None


class UnsubscribeMessage(BaseModel):
    event: Literal["unsubscribeFromAnalytics"]
    data: Any = None


class RequestUpdateMessage(BaseModel):
    event: Literal["requestAnalyticsUpdate"]
    data: AnalyticsRequest = Field(default_factory=AnalyticsRequest)


InboundMessage = Annotated[
    SubscribeMessage | UnsubscribeMessage | RequestUpdateMessage,
    Field(discriminator="event"),
]

inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


def parse_inbound(frame: Any) -> SubscribeMessage | UnsubscribeMessage | RequestUpdateMessage:
    """
    Parse one inbound frame.

    A ``None`` data payload on requestAnalyticsUpdate means the default
    period. Raises pydantic.ValidationError for unknown or malformed frames.
    """
    if isinstance(frame, dict) and frame.get("data") is None and "data" in frame:
        frame = {k: v for k, v in frame.items() if k != "data"}
    return inbound_adapter.validate_python(frame)


# --- Outbound ---


class OutboundMessage(BaseModel):
    event: str
    data: Any = None

    def frame(self) -> dict[str, Any]:
        """JSON-ready wire frame."""
        return self.model_dump(mode="json", by_alias=True)


class AnalyticsUpdateMessage(OutboundMessage):
    event: Literal["analyticsUpdate"] = "analyticsUpdate"
    data: dict[str, Any]


class VisitorActivityMessage(OutboundMessage):
    event: Literal["visitorActivity"] = "visitorActivity"
    data: LiveActivity


class LiveCount(BaseModel):
    count: int


class LiveVisitorCountMessage(OutboundMessage):
    event: Literal["liveVisitorCount"] = "liveVisitorCount"
    data: LiveCount


class ErrorPayload(BaseModel):
    message: str


class AnalyticsErrorMessage(OutboundMessage):
    event: Literal["analyticsError"] = "analyticsError"
    data: ErrorPayload


def analytics_update(payload: dict[str, Any]) -> dict[str, Any]:
    return AnalyticsUpdateMessage(data=payload).frame()


def visitor_activity(activity: LiveActivity) -> dict[str, Any]:
    return VisitorActivityMessage(data=activity).frame()


def live_visitor_count(count: int) -> dict[str, Any]:
    return LiveVisitorCountMessage(data=LiveCount(count=count)).frame()


def analytics_error(message: str) -> dict[str, Any]:
    return AnalyticsErrorMessage(data=ErrorPayload(message=message)).frame()
