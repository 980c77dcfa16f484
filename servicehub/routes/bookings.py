import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy import case
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Booking, Service, User, utcnow
from ..auth.security import get_current_user, require_roles
from ..schemas.bookings import (
    BookingCreate,
    BookingUpdate,
    StatusUpdate,
    AssignTechnicianRequest,
    PaymentStatusUpdate,
)
from ..schemas.common import TechnicianSummary, pagination
from ..services.bookings import (
    serialize_booking,
    change_status,
    cancel_booking,
    assign_technician,
    has_time_conflict,
    busy_technician_ids,
)
from ..services.inventory import reserve_inventory
from ..services.notifications import notify_admins, priority_for_urgency
from ..logging import structlog


router = APIRouter(prefix="/bookings", tags=["bookings"])

CARD_FIELDS = ("last4", "brand", "expMonth", "expYear", "cardholderName")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")


def mask_card_details(card: Optional[dict]) -> Optional[dict]:
    """Keep only display fields; full numbers and CVC are never stored."""
    if not card:
        return None
    number = str(card.get("cardNumber") or card.get("number") or "").replace(" ", "")
    masked = {k: card.get(k) for k in CARD_FIELDS if card.get(k) is not None}
    if number and "last4" not in masked:
        masked["last4"] = number[-4:]
    return masked or None


def get_booking_or_404(db: Session, booking_id: uuid.UUID) -> Booking:
    b = db.query(Booking).filter(Booking.id == booking_id).first()
    if not b:
        raise HTTPException(status_code=404, detail="Booking not found")
    return b


def check_booking_access(booking: Booking, user: User) -> None:
    if user.role == "house_owner" and booking.house_owner_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")
    if user.role == "technician" and booking.technician_id and booking.technician_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")


def _paged(q, page: int, limit: int, order_by):
    total = q.count()
    rows = q.order_by(*order_by).offset((page - 1) * limit).limit(limit).all()
    return {
        "success": True,
        "bookings": [serialize_booking(b) for b in rows],
        "pagination": pagination(page, limit, total, "totalBookings"),
    }


@router.post("", status_code=201)
def create_booking(payload: BookingCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    log = structlog.get_logger()
    service = db.query(Service).filter(Service.id == payload.service_id).first()
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")
    if not service.is_active:
        raise HTTPException(status_code=400, detail="This service is currently unavailable")

    lines = []
    for line in payload.selected_inventory:
        doc = line.model_dump(mode="json", by_alias=True)
        if doc.get("totalPrice") is None:
            doc["totalPrice"] = round(line.price * line.quantity, 2)
        lines.append(doc)
    materials_cost = sum(float(l["totalPrice"] or 0) for l in lines)

    booking = Booking(
        house_owner_id=user.id,
        service_id=service.id,
        scheduled_date=payload.scheduled_date,
        scheduled_time=payload.scheduled_time,
        address=payload.address,
        description=payload.description or "",
        urgency=payload.urgency,
        budget=payload.budget,
        payment_method=payload.payment_method,
        selected_payment_method=payload.selected_payment_method or payload.payment_method,
        card_details=mask_card_details(payload.card_details),
        status="pending",
        estimated_cost=round(service.base_price + materials_cost, 2),
        payment_status="pending",
        selected_inventory=lines,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)

    if lines:
        reduction = reserve_inventory(db, lines)
        if not reduction["success"]:
            # Lines already reserved are not rolled back
            db.delete(booking)
            db.commit()
            log.warning("booking_inventory_failed", failed=reduction.get("failedItems"))
            return JSONResponse(
                status_code=400,
                content={
                    "detail": "Booking failed due to inventory issues",
                    "message": "Booking failed due to inventory issues",
                    "details": reduction["message"],
                    "failedItems": reduction.get("failedItems", []),
                },
            )

    try:
        notify_admins(
            db,
            type="booking_created",
            title="New Service Booking - Assign Technician",
            message=(
                f"{user.username} has booked {service.name} for {booking.scheduled_date.isoformat()} at "
                f"{booking.scheduled_time}. Urgency: {booking.urgency}. Please assign a technician before accepting."
            ),
            related_entity="booking",
            entity_id=booking.id,
            priority=priority_for_urgency(booking.urgency),
            action_required=True,
        )
        if booking.payment_method == "cash":
            notify_admins(
                db,
                type="cash_payment",
                title="Cash Payment Expected",
                message=(
                    f"Customer {user.username} booked service for LKR {booking.estimated_cost:.2f}. "
                    "Collect cash when service is completed."
                ),
                related_entity="booking",
                entity_id=booking.id,
                priority="medium",
                action_required=True,
                metadata={
                    "paymentAmount": booking.estimated_cost,
                    "paymentMethod": "cash",
                    "customerName": user.username,
                    "serviceDate": booking.scheduled_date.isoformat(),
                    "serviceTime": booking.scheduled_time,
                },
            )
    except Exception as e:
        log.warning("booking_created_notify_failed", booking_id=str(booking.id), error=str(e))

    log.info("booking_created", booking_id=str(booking.id), user_id=str(user.id))
    return {"success": True, "message": "Booking created successfully", "booking": serialize_booking(booking)}


@router.get("")
def list_bookings(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    q = db.query(Booking)
    if user.role == "house_owner":
        q = q.filter(Booking.house_owner_id == user.id)
    elif user.role == "technician":
        q = q.filter(Booking.technician_id == user.id)
    if status and status != "all":
        q = q.filter(Booking.status == status)
    return _paged(q, page, limit, [Booking.created_at.desc()])


@router.get("/available")
def available_bookings(
    category: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    _=Depends(require_roles("technician")),
):
    q = db.query(Booking).filter(Booking.status == "pending")
    if category:
        q = q.join(Service, Booking.service_id == Service.id).filter(Service.category == category)
    urgency_rank = case((Booking.urgency == "high", 2), (Booking.urgency == "medium", 1), else_=0)
    return _paged(q, page, limit, [urgency_rank.desc(), Booking.created_at.desc()])


@router.get("/technicians/available")
def available_technicians(
    scheduled_date: Optional[date] = Query(None, alias="date"),
    scheduled_time: Optional[str] = Query(None, alias="time"),
    db: Session = Depends(get_db),
    _=Depends(require_roles("admin")),
):
    if not scheduled_date or not scheduled_time:
        raise HTTPException(status_code=400, detail="Date and time are required")
    busy = busy_technician_ids(db, scheduled_date, scheduled_time)
    q = db.query(User).filter(User.role == "technician", User.is_active.is_(True))
    if busy:
        q = q.filter(User.id.notin_(busy))
    return {
        "success": True,
        "technicians": [TechnicianSummary.model_validate(t).model_dump(mode="json", by_alias=True) for t in q.all()],
    }


@router.get("/admin/pending")
def admin_pending(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    _=Depends(require_roles("admin")),
):
    q = db.query(Booking).filter(Booking.status == "pending")
    return _paged(q, page, limit, [Booking.created_at.desc()])


@router.get("/{booking_id}")
def get_booking(booking_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    b = get_booking_or_404(db, booking_id)
    check_booking_access(b, user)
    return {"success": True, "booking": serialize_booking(b)}


@router.put("/{booking_id}")
def update_booking(booking_id: uuid.UUID, payload: BookingUpdate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    b = get_booking_or_404(db, booking_id)
    if user.role == "house_owner" and b.house_owner_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")
    if b.status in ("completed", "cancelled"):
        raise HTTPException(status_code=400, detail="Cannot update completed or cancelled bookings")
    data = payload.model_dump(exclude_unset=True)
    for field, value in data.items():
        if value is None:
            continue
        setattr(b, field, value)
    db.commit()
    db.refresh(b)
    return {"success": True, "message": "Booking updated successfully", "booking": serialize_booking(b)}


@router.put("/{booking_id}/status")
def update_status(booking_id: uuid.UUID, payload: StatusUpdate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    b = get_booking_or_404(db, booking_id)
    check_booking_access(b, user)
    b = change_status(
        db,
        b,
        user,
        payload.status.value,
        technician_notes=payload.technician_notes,
        completion_notes=payload.completion_notes,
        rating=payload.rating,
        feedback=payload.feedback,
    )
    return {"success": True, "message": "Booking status updated successfully", "booking": serialize_booking(b)}


@router.delete("/{booking_id}")
def delete_booking(booking_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    b = get_booking_or_404(db, booking_id)
    if user.role == "house_owner" and b.house_owner_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")
    if b.status not in ("pending", "accepted"):
        raise HTTPException(status_code=400, detail="Cannot cancel booking in current status")
    cancel_booking(db, b, user)
    db.refresh(b)
    return {"success": True, "message": "Booking cancelled successfully", "booking": serialize_booking(b)}


@router.post("/{booking_id}/accept")
def technician_accept(booking_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_roles("technician"))):
    b = get_booking_or_404(db, booking_id)
    if b.status != "pending":
        raise HTTPException(status_code=400, detail="Booking is not available for acceptance")
    if has_time_conflict(db, user.id, b):
        raise HTTPException(status_code=400, detail="You have another booking at the same time")
    b.status = "accepted"
    b.technician_id = user.id
    b.accepted_at = utcnow()
    db.commit()
    db.refresh(b)
    structlog.get_logger().info("booking_self_accepted", booking_id=str(b.id), technician_id=str(user.id))
    return {"success": True, "message": "Booking accepted successfully", "booking": serialize_booking(b)}


@router.put("/{booking_id}/assign-technician")
def assign(booking_id: uuid.UUID, payload: AssignTechnicianRequest, db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    if not payload.technician_id:
        raise HTTPException(status_code=400, detail="Technician ID is required")
    b = get_booking_or_404(db, booking_id)
    technician = db.query(User).filter(User.id == payload.technician_id).first()
    if not technician or technician.role != "technician":
        raise HTTPException(status_code=400, detail="Invalid technician")
    b = assign_technician(db, b, technician)
    return {
        "success": True,
        "message": "Technician assigned successfully. Booking remains pending until technician accepts.",
        "booking": serialize_booking(b),
    }


@router.put("/{booking_id}/payment-status")
def update_payment_status(booking_id: uuid.UUID, payload: PaymentStatusUpdate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    b = get_booking_or_404(db, booking_id)
    if user.role == "house_owner" and b.house_owner_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")
    if payload.payment_status not in PAYMENT_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid payment status")
    b.payment_status = payload.payment_status
    db.commit()
    db.refresh(b)
    return {"success": True, "message": "Payment status updated successfully", "booking": serialize_booking(b)}
