from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from app.schemas.base import BaseSchema, WireSchema


class Coordinates(BaseSchema):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class LocationUpdateRequest(Coordinates):
    pass


class NearbyUser(WireSchema):
    user_id: str
    display_name: str
    lat: float
    lng: float
    distance_meters: float


class NearbyEntry(WireSchema):
    """One row of the nearbyUpdate event."""

    id: str
    display_name: str


class MessageOut(WireSchema):
    """A stored chat message, as sent in pastMessages and history reads."""

    id: int
    sender_id: str
    display_name: str
    text: str
    created_at: datetime


class DeliveryEvent(WireSchema):
    display_name: str
    text: str
    timestamp: datetime


class ChatStateResponse(WireSchema):
    is_open: bool
    next_transition_at: Optional[datetime] = None
    next_transition_type: Optional[Literal["open", "close"]] = None


class StatusResponse(BaseSchema):
    status: str
