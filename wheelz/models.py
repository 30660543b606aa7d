# wheelz/models.py
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Boolean, Float, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship

from .database import Base


# =========================
# Booking statuses
# =========================
PENDING = "pending"
APPROVED = "approved"
IN_USE = "inUse"
RETURNED = "returned"
CANCELLED = "cancelled"

BOOKING_STATUSES = (PENDING, APPROVED, IN_USE, RETURNED, CANCELLED)
# Bookings that hold the vehicle's calendar
ACTIVE_STATUSES = (PENDING, APPROVED, IN_USE)


# =========================
# Users & Vehicles
# =========================
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(200), unique=True, nullable=False, index=True)
    phone_number = Column(String(50), nullable=True)
    user_type = Column(String(20), nullable=False, default="Normal")  # Normal / Driver
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    vehicles = relationship("Vehicle", back_populates="owner", cascade="all, delete-orphan")

    # Booking relationships
    bookings = relationship(
        "Booking",
        foreign_keys="[Booking.user_id]",
        back_populates="renter",
        order_by="Booking.created_at",
    )
    bookings_owned = relationship("Booking", foreign_keys="[Booking.owner_id]", back_populates="owner")

    notifications = relationship(
        "Notification",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="Notification.created_at.desc()",
    )


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False, default="Car")  # Car / Bike
    brand = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer, nullable=True)
    price_per_day = Column(Float, nullable=False, default=0)
    location = Column(String(200), nullable=True)
    average_rating = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    owner = relationship("User", back_populates="vehicles")
    ratings = relationship(
        "VehicleRating",
        back_populates="vehicle",
        cascade="all, delete-orphan",
        order_by="VehicleRating.created_at",
    )

    @property
    def display_name(self) -> str:
        return f"{self.brand} {self.model}".strip()


# =========================
# Ratings
# =========================
class VehicleRating(Base):
    __tablename__ = "vehicle_ratings"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)  # 1..5
    review = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    vehicle = relationship("Vehicle", back_populates="ratings")
    user = relationship("User", lazy="joined")

    # One rating per (vehicle, user)
    __table_args__ = (UniqueConstraint("vehicle_id", "user_id", name="uq_vehicle_rating_user"),)


# =========================
# Messaging
# =========================
class Conversation(Base):
    """Index row for one (vehicle, owner, counterpart) chat thread."""

    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    last_username = Column(String(200), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_message_at = Column(DateTime, default=datetime.utcnow, index=True)

    messages = relationship(
        "Message",
        back_populates="conversation",
        order_by="Message.sent_at",
    )

    __table_args__ = (
        UniqueConstraint("vehicle_id", "owner_id", "user_id", name="uq_conversation_key"),
        Index("ix_conversations_vehicle_owner", "vehicle_id", "owner_id"),
    )


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False)
    vehicle_id = Column(Integer, nullable=False)
    owner_id = Column(Integer, nullable=False)
    user_id = Column(Integer, nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    username = Column(String(200), nullable=True)
    body = Column(Text, nullable=False)
    sent_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index("ix_messages_conversation_sent", "conversation_id", "sent_at"),
    )

    def to_event(self) -> dict:
        return {
            "message": self.body,
            "senderId": self.sender_id,
            "username": self.username,
            "timestamp": self.sent_at.isoformat(),
        }


# =========================
# Bookings
# =========================
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    booking_start = Column(DateTime, nullable=False)
    booking_end = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default=PENDING, index=True)
    total_amount = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Timeline fields
    approved_at = Column(DateTime, nullable=True)
    picked_up_at = Column(DateTime, nullable=True)
    returned_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(String(40), nullable=True)  # cancelled / rejected

    # Relationships
    vehicle = relationship("Vehicle", lazy="joined")
    renter = relationship("User", foreign_keys=[user_id], back_populates="bookings")
    owner = relationship("User", foreign_keys=[owner_id], back_populates="bookings_owned")
    driver = relationship("User", foreign_keys=[driver_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vehicleId": self.vehicle_id,
            "ownerId": self.owner_id,
            "driverId": self.driver_id,
            "userId": self.user_id,
            "bookingStart": self.booking_start.isoformat(),
            "bookingEnd": self.booking_end.isoformat(),
            "status": self.status,
            "totalAmount": self.total_amount,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "cancelReason": self.cancel_reason,
        }


# =========================
# Notifications
# =========================
class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    kind = Column(String(40), nullable=False, default="info")
    title = Column(String(200), nullable=False)
    body = Column(Text, nullable=True)
    link_url = Column(String(400), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    user = relationship("User", back_populates="notifications")
