# wheelz/schemas.py
"""Request / wire envelopes."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


# ---------- WebSocket ----------
class WsInbound(BaseModel):
    """Client -> server."""

    event: str  # join | joinOwner | message | ping
    data: Dict[str, Any] = {}


class JoinIn(BaseModel):
    vehicleId: int
    ownerId: int
    userId: int


class JoinOwnerIn(BaseModel):
    vehicleId: int
    ownerId: int


class ChatMessageIn(BaseModel):
    vehicleId: int
    ownerId: int
    userId: int
    senderId: Optional[int] = None
    message: str = ""
    username: Optional[str] = None


# ---------- Bookings ----------
class BookingCreate(BaseModel):
    vehicleId: int
    ownerId: int
    driverId: Optional[int] = None
    bookingStart: datetime
    bookingEnd: datetime
    totalAmount: float
