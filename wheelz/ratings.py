# wheelz/ratings.py
from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .auth import require_user
from .database import get_db
from .errors import ConflictError, NotFoundError, ValidationError
from .models import RETURNED, Booking, User, Vehicle, VehicleRating

router = APIRouter(tags=["ratings"])


class RatingIn(BaseModel):
    rating: int = Field(..., description="1..5")
    review: Optional[str] = None


def rate_vehicle(db: Session, vehicle_id: int, user_id: int, rating: int, review: Optional[str] = None) -> VehicleRating:
    """Add the user's single rating for a vehicle and refresh its average."""
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("rating must be an integer between 1 and 5")

    vehicle = db.get(Vehicle, vehicle_id)
    if not vehicle:
        raise NotFoundError(f"vehicle #{vehicle_id} not found")

    returned = (
        db.query(Booking.id)
        .filter(Booking.vehicle_id == vehicle_id, Booking.user_id == user_id, Booking.status == RETURNED)
        .first()
    )
    if not returned:
        raise ValidationError("only renters with a returned booking can rate this vehicle")

    exists = db.query(VehicleRating.id).filter_by(vehicle_id=vehicle_id, user_id=user_id).first()
    if exists:
        raise ConflictError("You have already rated this vehicle")

    r = VehicleRating(
        vehicle_id=vehicle_id,
        user_id=user_id,
        rating=rating,
        review=(review or "").strip() or None,
    )
    db.add(r)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConflictError("You have already rated this vehicle")

    total, count = (
        db.query(func.sum(VehicleRating.rating), func.count(VehicleRating.id))
        .filter(VehicleRating.vehicle_id == vehicle_id)
        .one()
    )
    vehicle.average_rating = float(total) / count if count else 0.0
    db.commit()
    db.refresh(r)
    return r


def list_ratings(db: Session, vehicle_id: int) -> List[VehicleRating]:
    if not db.get(Vehicle, vehicle_id):
        raise NotFoundError(f"vehicle #{vehicle_id} not found")
    return (
        db.query(VehicleRating)
        .filter(VehicleRating.vehicle_id == vehicle_id)
        .order_by(VehicleRating.created_at.asc(), VehicleRating.id.asc())
        .all()
    )


def _rating_dict(r: VehicleRating) -> dict:
    return {
        "userId": r.user_id,
        "username": r.user.name if r.user else None,
        "rating": r.rating,
        "review": r.review or "",
        "createdAt": r.created_at.isoformat() if r.created_at else None,
    }


@router.post("/api/vehicles/{vehicle_id}/rate")
def rate(vehicle_id: int, payload: RatingIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    r = rate_vehicle(db, vehicle_id, user.id, payload.rating, payload.review)
    vehicle = db.get(Vehicle, vehicle_id)
    return JSONResponse(
        {
            "message": "Rating added successfully",
            "rating": _rating_dict(r),
            "averageRating": vehicle.average_rating,
        },
        status_code=201,
    )


@router.get("/api/vehicles/{vehicle_id}/ratings")
def ratings(vehicle_id: int, db: Session = Depends(get_db)):
    rows = list_ratings(db, vehicle_id)
    vehicle = db.get(Vehicle, vehicle_id)
    return {"averageRating": vehicle.average_rating, "ratings": [_rating_dict(r) for r in rows]}
