# wheelz/bookings.py
"""Booking state machine.

    pending --approve--> approved --start_use--> inUse --mark_returned--> returned
       |                    |  \\______________mark_returned_____________/
       +--reject/cancel-----+--cancel--> cancelled

Every transition is one conditional UPDATE (status must still be one of
the allowed sources when the row is written). Notifications are built
after the commit and handed to ``notify``; they never undo a transition.
"""

from __future__ import annotations

import logging
import math
import threading
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import Session

from .errors import AuthorizationError, ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from .models import (
    ACTIVE_STATUSES, APPROVED, CANCELLED, IN_USE, PENDING, RETURNED, Booking, User, Vehicle,
)
from .notifications import Notice, NotificationSink, deliver_all

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]
Notifier = Callable[[List[Notice]], object]

SIGNATURE = "\n\nRegards, \nTeam WheelZOnRent"

OWNER = "owner"
EITHER = "either"


class _VehicleLocks:
    """One lock per vehicle id, dropped again once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[int, list] = {}  # vehicle_id -> [lock, holders + waiters]

    @contextmanager
    def hold(self, vehicle_id: int) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(vehicle_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[vehicle_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# serializes overlap check + insert per vehicle inside this process
_vehicle_locks = _VehicleLocks()


def as_naive_utc(value: DateLike) -> datetime:
    """Dates become midnight; aware datetimes are converted to naive UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise ValidationError(f"expected a date, got {type(value).__name__}")


def fmt_date(dt: datetime) -> str:
    return dt.strftime("%d-%m-%Y")


def sink_notifier(sink: NotificationSink) -> Notifier:
    """Deliver synchronously, in the caller's thread."""
    return lambda notices: deliver_all(sink, notices)


class BookingLifecycle:
    def __init__(self, db: Session, notify: Notifier):
        self.db = db
        self.notify = notify

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    def get(self, booking_id: int) -> Booking:
        bk = self.db.get(Booking, booking_id)
        if not bk:
            raise NotFoundError(f"booking #{booking_id} not found")
        return bk

    def list_unavailable_ranges(self, vehicle_id: int) -> List[Tuple[datetime, datetime]]:
        rows = (
            self.db.query(Booking.booking_start, Booking.booking_end)
            .filter(Booking.vehicle_id == vehicle_id, Booking.status.in_(ACTIVE_STATUSES))
            .order_by(Booking.booking_start.asc())
            .all()
        )
        return [(s, e) for s, e in rows]

    def list_incoming(self, owner_id: int) -> List[Booking]:
        return (
            self.db.query(Booking)
            .filter(Booking.owner_id == owner_id, Booking.status.in_((PENDING, APPROVED)))
            .order_by(Booking.booking_start.asc())
            .all()
        )

    def list_outgoing(self, user_id: int, include_cancelled: bool = False) -> List[Booking]:
        q = self.db.query(Booking).filter(Booking.user_id == user_id)
        if not include_cancelled:
            q = q.filter(Booking.status != CANCELLED)
        return q.order_by(Booking.created_at.desc(), Booking.id.desc()).all()

    def _overlapping(self, vehicle_id: int, start: datetime, end: datetime) -> Optional[Booking]:
        # end day is inclusive: a range ending 07-05 still holds 07-05
        return (
            self.db.query(Booking)
            .filter(
                Booking.vehicle_id == vehicle_id,
                Booking.status.in_(ACTIVE_STATUSES),
                Booking.booking_start <= end,
                Booking.booking_end >= start,
            )
            .first()
        )

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------
    def create(
        self,
        vehicle_id: int,
        owner_id: int,
        user_id: int,
        booking_start: DateLike,
        booking_end: DateLike,
        total_amount: float,
        driver_id: Optional[int] = None,
    ) -> Booking:
        start = as_naive_utc(booking_start)
        end = as_naive_utc(booking_end)
        if not start < end:
            raise ValidationError("bookingStart must be before bookingEnd")
        try:
            amount = float(total_amount)
        except (TypeError, ValueError):
            raise ValidationError("totalAmount must be a number")
        if not math.isfinite(amount) or amount <= 0:
            raise ValidationError("totalAmount must be positive")

        db = self.db
        vehicle = db.get(Vehicle, vehicle_id)
        if not vehicle:
            raise NotFoundError(f"vehicle #{vehicle_id} not found")
        owner = db.get(User, owner_id)
        if not owner:
            raise NotFoundError(f"owner #{owner_id} not found")
        renter = db.get(User, user_id)
        if not renter:
            raise NotFoundError(f"user #{user_id} not found")
        if vehicle.owner_id != owner.id:
            raise ValidationError(f"user #{owner_id} does not own vehicle #{vehicle_id}")
        if renter.id == owner.id:
            raise ValidationError("owners cannot book their own vehicle")
        if driver_id is not None:
            driver = db.get(User, driver_id)
            if not driver:
                raise NotFoundError(f"driver #{driver_id} not found")
            if driver.user_type != "Driver":
                raise ValidationError(f"user #{driver_id} is not registered as a driver")

        with _vehicle_locks.hold(vehicle.id):
            try:
                # row lock on backends that have one (no-op on SQLite)
                db.query(Vehicle).filter(Vehicle.id == vehicle.id).with_for_update().one()
                clash = self._overlapping(vehicle.id, start, end)
                if clash:
                    raise ConflictError(
                        f"vehicle #{vehicle.id} is already booked from "
                        f"{fmt_date(clash.booking_start)} to {fmt_date(clash.booking_end)}"
                    )
                bk = Booking(
                    vehicle_id=vehicle.id,
                    owner_id=owner.id,
                    driver_id=driver_id,
                    user_id=renter.id,
                    booking_start=start,
                    booking_end=end,
                    status=PENDING,
                    total_amount=amount,
                    created_at=datetime.utcnow(),
                )
                db.add(bk)
                # booking reference on the renter's profile
                renter.bookings.append(bk)
                db.commit()
            except Exception:
                db.rollback()
                raise
        db.refresh(bk)
        logger.info("booking #%s created for vehicle #%s by user #%s", bk.id, vehicle.id, renter.id)

        period = f"from {fmt_date(start)} to {fmt_date(end)}"
        self._dispatch([
            Notice(
                user_id=owner.id,
                email=owner.email,
                subject=f"Booking Request: {vehicle.display_name}. Booking ID: {bk.id}",
                body=(
                    f"Dear {owner.name}, \n{renter.name} has requested to book your vehicle "
                    f"{vehicle.display_name} {period}." + SIGNATURE
                ),
            ),
            Notice(
                user_id=renter.id,
                email=renter.email,
                subject=f"Booking Request sent. Vehicle: {vehicle.display_name}. Booking ID: {bk.id}",
                body=(
                    f"Dear {renter.name}, \nYour booking request for {vehicle.display_name} {period} "
                    f"has been sent to the owner." + SIGNATURE
                ),
            ),
        ])
        return bk

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------
    def approve(self, booking_id: int, actor: Optional[User] = None) -> Booking:
        bk = self._transition(booking_id, "approve", (PENDING,), APPROVED, actor, OWNER, approved_at=datetime.utcnow())
        vehicle, owner, renter = bk.vehicle, bk.owner, bk.renter
        period = f"from {fmt_date(bk.booking_start)} to {fmt_date(bk.booking_end)}"
        subject = f"Booking approved. Vehicle: {vehicle.display_name}. Booking ID: {bk.id}"
        self._dispatch([
            Notice(
                user_id=renter.id,
                email=renter.email,
                subject=subject,
                body=(
                    f"Dear {renter.name}, \nYour booking request for {vehicle.display_name} {period} "
                    f"has been approved by the owner." + SIGNATURE
                ),
            ),
            Notice(
                user_id=owner.id,
                email=owner.email,
                subject=subject,
                body=(
                    f"Dear {owner.name}, \nYour approval for the booking request of {vehicle.display_name} "
                    f"{period} has been notified to the customer." + SIGNATURE
                ),
            ),
        ])
        return bk

    def reject(self, booking_id: int, actor: Optional[User] = None) -> Booking:
        bk = self._transition(
            booking_id, "reject", (PENDING,), CANCELLED, actor, OWNER,
            cancelled_at=datetime.utcnow(), cancel_reason="rejected",
        )
        vehicle, owner, renter = bk.vehicle, bk.owner, bk.renter
        subject = f"Booking Rejected. Booking ID: {bk.id}"
        self._dispatch([
            Notice(
                user_id=renter.id,
                email=renter.email,
                subject=subject,
                body=(
                    f"Dear {renter.name}, \nThe owner could not accept your booking request for "
                    f"{vehicle.display_name}." + SIGNATURE
                ),
            ),
            Notice(
                user_id=owner.id,
                email=owner.email,
                subject=subject,
                body=f"Dear {owner.name}, \nYou rejected the booking request of {renter.name}." + SIGNATURE,
            ),
        ])
        return bk

    def cancel(self, booking_id: int, actor: Optional[User] = None) -> Booking:
        bk = self._transition(
            booking_id, "cancel", (PENDING, APPROVED), CANCELLED, actor, EITHER,
            cancelled_at=datetime.utcnow(), cancel_reason="cancelled",
        )
        vehicle, owner, renter = bk.vehicle, bk.owner, bk.renter
        by = actor.name if actor is not None else renter.name
        subject = f"Booking Cancelled. Booking ID: {bk.id}"
        # two separate notices: a bad owner address must not cost the renter theirs
        self._dispatch([
            Notice(
                user_id=renter.id,
                email=renter.email,
                subject=subject,
                body=(
                    f"Dear {renter.name}, \nYour booking for {vehicle.display_name} has been cancelled."
                    + SIGNATURE
                ),
            ),
            Notice(
                user_id=owner.id,
                email=owner.email,
                subject=subject,
                body=(
                    f"Dear {owner.name}, \n{by} has cancelled the booking for your vehicle "
                    f"{vehicle.display_name}." + SIGNATURE
                ),
            ),
        ])
        return bk

    def start_use(self, booking_id: int, actor: Optional[User] = None) -> Booking:
        return self._transition(booking_id, "start", (APPROVED,), IN_USE, actor, OWNER, picked_up_at=datetime.utcnow())

    def mark_returned(self, booking_id: int, actor: Optional[User] = None) -> Booking:
        bk = self._transition(
            booking_id, "return", (APPROVED, IN_USE), RETURNED, actor, EITHER, returned_at=datetime.utcnow(),
        )
        vehicle, renter = bk.vehicle, bk.renter
        self._dispatch([
            Notice(
                user_id=renter.id,
                email=renter.email,
                subject=f"Vehicle returned. Booking ID: {bk.id}",
                body=(
                    f"Dear {renter.name}, \nThanks for riding with {vehicle.display_name}. "
                    f"You can now rate the vehicle from your rent history." + SIGNATURE
                ),
                link_url=f"/vehicles/{vehicle.id}",
            ),
        ])
        return bk

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    def check_actor(self, bk: Booking, actor: Optional[User], role: str, action: str) -> None:
        if actor is None or actor.is_admin:
            return
        if role == OWNER and actor.id != bk.owner_id:
            raise AuthorizationError(f"only the owner can {action} booking #{bk.id}")
        if role == EITHER and actor.id not in (bk.owner_id, bk.user_id):
            raise AuthorizationError(f"booking #{bk.id} is not yours")

    def _transition(
        self,
        booking_id: int,
        action: str,
        allowed: Sequence[str],
        new_status: str,
        actor: Optional[User],
        role: str,
        **fields,
    ) -> Booking:
        db = self.db
        bk = self.get(booking_id)
        self.check_actor(bk, actor, role, action)
        if bk.status not in allowed:
            raise InvalidTransitionError(bk.id, bk.status, action)

        values = {"status": new_status, "updated_at": datetime.utcnow(), **fields}
        try:
            # compare-and-swap on status
            updated = (
                db.query(Booking)
                .filter(Booking.id == bk.id, Booking.status.in_(tuple(allowed)))
                .update(values, synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(bk)
        if not updated:
            raise InvalidTransitionError(bk.id, bk.status, action)
        logger.info("booking #%s %s -> %s", bk.id, action, new_status)
        return bk

    def _dispatch(self, notices: Iterable[Notice]) -> None:
        notices = list(notices)
        try:
            self.notify(notices)
        except Exception:
            # scheduling must not undo the committed transition
            logger.exception("could not schedule %d notification(s)", len(notices))
