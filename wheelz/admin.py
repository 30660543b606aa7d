# wheelz/admin.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .auth import require_admin
from .database import get_db
from .errors import ValidationError
from .models import BOOKING_STATUSES, Booking, User

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/bookings")
@router.get("/allbookings")
def all_bookings(
    status: Optional[str] = Query(None),
    limit: int = 100,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    q = db.query(Booking)
    if status:
        if status not in BOOKING_STATUSES:
            raise ValidationError(f"unknown status {status!r}")
        q = q.filter(Booking.status == status)
    rows = q.order_by(Booking.created_at.desc(), Booking.id.desc()).limit(max(1, min(limit, 500))).all()
    return {"count": len(rows), "bookings": [b.to_dict() for b in rows]}
