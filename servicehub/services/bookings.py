"""
Booking lifecycle: the status transition table and the side effects of each move.
"""
from typing import Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..config import settings
from ..logging import structlog
from ..models.models import Booking, Feedback, User, utcnow
from ..schemas.bookings import BookingResponse
from ..schemas.feedback import FEEDBACK_CATEGORIES
from .inventory import consume_inventory, restore_inventory
from .notifications import create_notification, priority_for_urgency
from .realtime import emit
from .sms import sms_client


VALID_TRANSITIONS: Dict[str, List[str]] = {
    "pending": ["accepted", "rejected", "cancelled"],
    "accepted": ["in_progress", "cancelled"],
    "in_progress": ["completed", "cancelled"],
    "completed": [],
    "rejected": [],
    "cancelled": [],
}

ACTIVE_SLOT_STATUSES = ("accepted", "in_progress")
AUTO_FEEDBACK_COMMENT = "Service completed successfully. Thank you for choosing our service!"


def can_transition(current: str, target: str) -> bool:
    return target in VALID_TRANSITIONS.get(current, [])


def serialize_booking(booking: Booking) -> dict:
    return BookingResponse.model_validate(booking).model_dump(mode="json", by_alias=True)


def has_time_conflict(db: Session, technician_id, booking: Booking) -> bool:
    """True when the technician already holds an active booking in the same slot."""
    q = db.query(Booking).filter(
        Booking.technician_id == technician_id,
        Booking.scheduled_date == booking.scheduled_date,
        Booking.scheduled_time == booking.scheduled_time,
        Booking.status.in_(ACTIVE_SLOT_STATUSES),
        Booking.id != booking.id,
    )
    return db.query(q.exists()).scalar()


def busy_technician_ids(db: Session, scheduled_date, scheduled_time: str) -> set:
    rows = db.query(Booking.technician_id).filter(
        Booking.scheduled_date == scheduled_date,
        Booking.scheduled_time == scheduled_time,
        Booking.status.in_(ACTIVE_SLOT_STATUSES),
        Booking.technician_id.isnot(None),
    ).all()
    return {r[0] for r in rows}


def _materials_lines(booking: Booking) -> str:
    lines = booking.selected_inventory or []
    if not lines:
        return ""
    out = "\nRequired Materials:\n"
    for item in lines:
        out += f"- {item.get('name')} ({item.get('quantity')} {item.get('unit') or 'pieces'}) - LKR {item.get('totalPrice', 0)}\n"
    total = sum(float(item.get("totalPrice") or 0) for item in lines)
    out += f"\nTotal Materials Cost: LKR {total:.2f}\n"
    return out


def notify_technician_assigned(db: Session, booking: Booking, technician: User) -> None:
    message = (
        "You have been assigned to a new booking!\n\n"
        f"Service: {booking.service.name}\n"
        f"Customer: {booking.house_owner.username}\n"
        f"Date: {booking.scheduled_date.isoformat()}\n"
        f"Time: {booking.scheduled_time}\n"
        f"Address: {booking.address}\n"
    )
    if booking.description:
        message += f"Description: {booking.description}\n"
    message += _materials_lines(booking)
    message += f"\nService Cost: LKR {booking.service.base_price}\n"
    message += f"Total Cost: LKR {booking.estimated_cost}\n"
    message += f"Payment Method: {(booking.payment_method or 'cash').replace('_', ' ').upper()}\n"
    if booking.urgency != "normal":
        message += f"\nUrgency: {booking.urgency.upper()}\n"

    create_notification(
        db,
        technician.id,
        type="booking_assigned",
        title="New Booking Assignment",
        message=message,
        related_entity="booking",
        entity_id=booking.id,
        priority="high" if booking.urgency == "high" else "medium",
        action_required=True,
        action_url=f"/technician/bookings/{booking.id}",
    )


def notify_owner_technician_assigned(db: Session, booking: Booking, technician: User) -> None:
    owner = booking.house_owner
    message = (
        f"Dear {owner.username},\n\n"
        "A technician has been assigned to your service booking. "
        "The booking will be confirmed once the technician accepts it.\n\n"
        "Booking Details:\n"
        f"- Service: {booking.service.name}\n"
        f"- Date: {booking.scheduled_date.isoformat()}\n"
        f"- Time: {booking.scheduled_time}\n"
        f"- Address: {booking.address}\n"
        f"- Total Cost: LKR {booking.estimated_cost}\n\n"
        "Your Assigned Technician:\n"
        f"- Name: {technician.username}\n"
        f"- Mobile: {technician.mobile or 'n/a'}\n"
        f"- Email: {technician.email}\n"
    )
    if technician.rating:
        message += f"- Rating: {technician.rating:.1f}\n"
    message += "\nThe technician will contact you directly before the scheduled time.\n"

    create_notification(
        db,
        owner.id,
        type="technician_assigned",
        title=f"Technician Assigned - {booking.service.name}",
        message=message,
        related_entity="booking",
        entity_id=booking.id,
        priority="high",
    )
    try:
        sms_client.send_technician_assignment(
            owner.mobile,
            service_name=booking.service.name,
            scheduled_date=booking.scheduled_date,
            scheduled_time=booking.scheduled_time,
            technician_name=technician.username,
            technician_mobile=technician.mobile,
        )
    except Exception as e:
        structlog.get_logger().warning("technician_assignment_sms_failed", booking_id=str(booking.id), error=str(e))


def notify_cancellation(db: Session, booking: Booking) -> None:
    message = (
        "A booking has been cancelled!\n\n"
        f"Service: {booking.service.name}\n"
        f"Customer: {booking.house_owner.username}\n"
        f"Date: {booking.scheduled_date.isoformat()}\n"
        f"Time: {booking.scheduled_time}\n"
        f"Address: {booking.address}\n"
    )
    if booking.description:
        message += f"Description: {booking.description}\n"
    message += f"\nCancelled at: {utcnow().isoformat()}\n"
    create_notification(
        db,
        booking.technician_id,
        type="booking_cancelled",
        title="Booking Cancelled",
        message=message,
        related_entity="booking",
        entity_id=booking.id,
        priority="medium",
    )
    emit([booking.technician_id], "notification", {
        "type": "booking_cancelled",
        "title": "Booking Cancelled",
        "message": f"A booking has been cancelled for {booking.service.name}",
        "bookingId": str(booking.id),
        "priority": "medium",
    })


def create_auto_feedback(db: Session, booking: Booking, completion_notes: Optional[str] = None) -> Feedback:
    """Five-star approved feedback for a completed booking, unless one already exists."""
    existing = db.query(Feedback).filter(Feedback.booking_id == booking.id).first()
    if existing:
        return existing
    feedback = Feedback(
        house_owner_id=booking.house_owner_id,
        technician_id=booking.technician_id,
        service_id=booking.service_id,
        booking_id=booking.id,
        rating=5,
        comment=completion_notes or AUTO_FEEDBACK_COMMENT,
        categories=[{"category": c, "rating": 5} for c in FEEDBACK_CATEGORIES],
        is_anonymous=False,
        is_public=True,
        status="approved",
    )
    db.add(feedback)
    db.commit()
    db.refresh(feedback)
    return feedback


def cancel_booking(db: Session, booking: Booking, user: User) -> None:
    """Mark cancelled, restore reserved stock and tell the assigned technician."""
    log = structlog.get_logger()
    booking.status = "cancelled"
    booking.cancelled_at = utcnow()
    booking.cancelled_by_id = user.id
    db.commit()

    if booking.selected_inventory:
        try:
            result = restore_inventory(db, booking.selected_inventory)
            log.info("inventory_restored", booking_id=str(booking.id), results=result.get("results"))
        except Exception as e:
            log.warning("inventory_restore_failed", booking_id=str(booking.id), error=str(e))

    if booking.technician_id:
        try:
            notify_cancellation(db, booking)
        except Exception as e:
            log.warning("booking_cancel_notify_failed", booking_id=str(booking.id), error=str(e))


def change_status(
    db: Session,
    booking: Booking,
    user: User,
    target: str,
    technician_notes: Optional[str] = None,
    completion_notes: Optional[str] = None,
    rating: Optional[int] = None,
    feedback: Optional[str] = None,
) -> Booking:
    """
    Move a booking along the transition table and run the side effects.

    Raises:
        HTTPException 400: target not reachable from the current status, or
            accepting without an assigned technician
        HTTPException 403: a non-admin tries to accept
    """
    log = structlog.get_logger()
    if not can_transition(booking.status, target):
        raise HTTPException(status_code=400, detail=f"Invalid status transition from {booking.status} to {target}")

    if target == "accepted":
        if user.role != "admin":
            raise HTTPException(status_code=403, detail="Only admin can accept bookings")
        if not booking.technician_id:
            raise HTTPException(status_code=400, detail="Cannot accept booking without assigning a technician first")

    if technician_notes:
        booking.technician_notes = technician_notes

    if target == "cancelled":
        cancel_booking(db, booking, user)
        db.refresh(booking)
        return booking

    booking.status = target
    now = utcnow()
    if target == "accepted":
        booking.accepted_at = now
    elif target == "in_progress":
        booking.started_at = now
    elif target == "completed":
        booking.completed_at = now
        if completion_notes:
            booking.completion_notes = completion_notes
        if rating:
            booking.rating = rating
        if feedback:
            booking.feedback = feedback
    db.commit()
    db.refresh(booking)

    if target == "accepted":
        technician = booking.technician
        try:
            notify_technician_assigned(db, booking, technician)
            notify_owner_technician_assigned(db, booking, technician)
            emit([technician.id], "notification", {
                "type": "booking_assigned",
                "title": "New Booking Assignment",
                "message": f"You have been assigned to {booking.service.name} on {booking.scheduled_date.isoformat()}",
                "bookingId": str(booking.id),
                "priority": "high" if booking.urgency == "high" else "medium",
            })
        except Exception as e:
            log.warning("booking_accept_notify_failed", booking_id=str(booking.id), error=str(e))

    if target == "completed":
        try:
            consume_inventory(db, booking, decrement=settings.inventory_consume_on_complete)
        except Exception as e:
            log.warning("inventory_consume_failed", booking_id=str(booking.id), error=str(e))
        try:
            create_auto_feedback(db, booking, completion_notes)
        except Exception as e:
            log.warning("auto_feedback_failed", booking_id=str(booking.id), error=str(e))

    log.info("booking_status_changed", booking_id=str(booking.id), status=booking.status, by=str(user.id))
    return booking


def assign_technician(db: Session, booking: Booking, technician: User) -> Booking:
    """Attach a technician while the booking stays pending; both parties are notified."""
    if has_time_conflict(db, technician.id, booking):
        raise HTTPException(status_code=400, detail="Technician is already assigned to another booking at the same time")
    booking.technician_id = technician.id
    db.commit()
    db.refresh(booking)

    try:
        create_notification(
            db,
            technician.id,
            type="booking_assigned",
            title="New Service Assignment - Pending Acceptance",
            message=(
                f"You have been assigned to {booking.service.name} on {booking.scheduled_date.isoformat()} "
                f"at {booking.scheduled_time}. Address: {booking.address}. "
                "Please accept this booking to confirm your assignment."
            ),
            related_entity="booking",
            entity_id=booking.id,
            priority=priority_for_urgency(booking.urgency),
            action_required=True,
        )
        notify_owner_technician_assigned(db, booking, technician)
    except Exception as e:
        structlog.get_logger().warning("technician_assign_notify_failed", booking_id=str(booking.id), error=str(e))
    return booking
