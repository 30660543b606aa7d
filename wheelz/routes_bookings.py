# wheelz/routes_bookings.py
from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .auth import require_user
from .bookings import EITHER, BookingLifecycle
from .database import get_db
from .models import Booking, User
from .notifications import NotificationSink, deliver_all, get_notification_sink
from .schemas import BookingCreate

router = APIRouter(prefix="/api", tags=["bookings"])


def get_lifecycle(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
) -> BookingLifecycle:
    # notifications go out after the response, never inside the transition
    return BookingLifecycle(db, notify=lambda notices: background_tasks.add_task(deliver_all, sink, notices))


def _with_parties(b: Booking) -> dict:
    d = b.to_dict()
    v = b.vehicle
    d["vehicle"] = {"id": v.id, "brand": v.brand, "model": v.model} if v else None
    d["renter"] = {"id": b.renter.id, "name": b.renter.name} if b.renter else None
    d["owner"] = {"id": b.owner.id, "name": b.owner.name} if b.owner else None
    return d


# =====================================================
# Create booking
# =====================================================
@router.post("/bookings")
def create_booking(
    payload: BookingCreate,
    user: User = Depends(require_user),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    bk = lifecycle.create(
        vehicle_id=payload.vehicleId,
        owner_id=payload.ownerId,
        user_id=user.id,
        booking_start=payload.bookingStart,
        booking_end=payload.bookingEnd,
        total_amount=payload.totalAmount,
        driver_id=payload.driverId,
    )
    return JSONResponse({"success": True, "bookingId": bk.id}, status_code=201)


# =====================================================
# Lists
# =====================================================
@router.get("/bookings/pending")
def incoming_bookings(user: User = Depends(require_user), lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    return [_with_parties(b) for b in lifecycle.list_incoming(user.id)]


@router.get("/user/bookings")
def outgoing_bookings(
    include_cancelled: bool = False,
    user: User = Depends(require_user),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    return [_with_parties(b) for b in lifecycle.list_outgoing(user.id, include_cancelled=include_cancelled)]


@router.get("/bookings/unavailable-dates/{vehicle_id}")
def unavailable_dates(vehicle_id: int, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    return {
        "unavailableDates": [
            {"start": s.isoformat(), "end": e.isoformat()}
            for s, e in lifecycle.list_unavailable_ranges(vehicle_id)
        ]
    }


@router.get("/bookings/{booking_id}")
def booking_detail(booking_id: int, user: User = Depends(require_user), lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    bk = lifecycle.get(booking_id)
    lifecycle.check_actor(bk, user, EITHER, "view")
    return _with_parties(bk)


# =====================================================
# Transitions
# =====================================================
@router.post("/bookings/{booking_id}/approve")
def approve_booking(booking_id: int, user: User = Depends(require_user), lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    bk = lifecycle.approve(booking_id, actor=user)
    return {"success": True, "message": "Booking approved", "status": bk.status}


@router.post("/bookings/{booking_id}/reject")
def reject_booking(booking_id: int, user: User = Depends(require_user), lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    bk = lifecycle.reject(booking_id, actor=user)
    return {"success": True, "message": "Booking rejected", "status": bk.status}


@router.post("/bookings/{booking_id}/start")
def start_booking(booking_id: int, user: User = Depends(require_user), lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    bk = lifecycle.start_use(booking_id, actor=user)
    return {"success": True, "message": "Vehicle handed over", "status": bk.status}


@router.post("/bookings/{booking_id}/return")
def return_booking(booking_id: int, user: User = Depends(require_user), lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    bk = lifecycle.mark_returned(booking_id, actor=user)
    return {"success": True, "message": "Vehicle returned", "status": bk.status}


@router.delete("/booking/{booking_id}")
def cancel_booking(booking_id: int, user: User = Depends(require_user), lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    lifecycle.cancel(booking_id, actor=user)
    return {"success": True, "message": "Booking cancelled successfully"}
