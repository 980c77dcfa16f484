import csv
import io
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Announcement, Booking, Feedback, Service, User, utcnow
from ..auth.security import get_current_user, require_roles
from ..schemas.common import TechnicianSummary, pagination
from ..schemas.feedback import (
    FeedbackCreate,
    FeedbackUpdate,
    FeedbackStatusUpdate,
    ReplyRequest,
    AssignTechnicianRequest,
    FeedbackResponse,
)
from ..services.feedback import validate_comment, technician_average_rating, feedback_stats
from ..services.notifications import create_notification, notify_admins, priority_for_rating
from ..logging import structlog


router = APIRouter(prefix="/feedback", tags=["feedback"])

FEEDBACK_STATUSES = ("pending", "approved", "rejected", "hidden")


def feedback_out(f: Feedback) -> dict:
    return FeedbackResponse.model_validate(f).model_dump(mode="json", by_alias=True)


def get_feedback_or_404(db: Session, feedback_id: uuid.UUID) -> Feedback:
    f = db.query(Feedback).filter(Feedback.id == feedback_id).first()
    if not f:
        raise HTTPException(status_code=404, detail="Feedback not found")
    return f


@router.post("", status_code=201)
def create_feedback(payload: FeedbackCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    log = structlog.get_logger()
    validate_comment(payload.comment)

    booking = db.query(Booking).filter(Booking.id == payload.booking_id).first()
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    if booking.house_owner_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")
    service = db.query(Service).filter(Service.id == payload.service_id).first()
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")

    # One feedback per booking; checked, not constrained
    if db.query(Feedback).filter(Feedback.booking_id == booking.id).first():
        raise HTTPException(status_code=400, detail="Feedback already exists for this booking")

    feedback = Feedback(
        house_owner_id=user.id,
        technician_id=payload.technician_id,
        service_id=service.id,
        booking_id=booking.id,
        rating=payload.rating,
        comment=payload.comment or "",
        categories=[c.model_dump() for c in payload.categories],
        is_anonymous=payload.is_anonymous,
        is_public=payload.is_public,
        status="pending",
    )
    db.add(feedback)
    db.commit()
    db.refresh(feedback)

    technician_name = feedback.technician.username if feedback.technician else "Needs Assignment"
    try:
        notify_admins(
            db,
            type="feedback_received",
            title="New Customer Feedback - Needs Assignment",
            message=(
                f"{user.username} has submitted feedback for {service.name} service. Rating: {payload.rating}/5 stars. "
                + (f"Assigned to: {technician_name}" if feedback.technician_id else "Please assign to a technician.")
            ),
            related_entity="feedback",
            entity_id=feedback.id,
            priority=priority_for_rating(payload.rating),
            action_required=True,
            action_url=f"/admin/feedback/{feedback.id}",
        )
        comment_part = f'. Comment: "{payload.comment}"' if payload.comment else ""
        db.add(Announcement(
            title=f"New Feedback Received - {service.name}",
            content=(
                f"Feedback received from {user.username} for {service.name} service "
                f"(Technician: {technician_name}). Rating: {payload.rating}/5 stars{comment_part}"
            )[:2000],
            type="feedback",
            target_audience="admins",
            priority="high" if payload.rating <= 2 else ("normal" if payload.rating <= 3 else "low"),
            created_by_id=user.id,
            related_feedback_id=feedback.id,
        ))
        db.commit()
    except Exception as e:
        db.rollback()
        log.warning("feedback_created_notify_failed", feedback_id=str(feedback.id), error=str(e))

    log.info("feedback_created", feedback_id=str(feedback.id), booking_id=str(booking.id))
    return {"success": True, "message": "Feedback submitted successfully", "feedback": feedback_out(feedback)}


@router.get("/user")
def my_feedback(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    q = db.query(Feedback)
    if user.role == "house_owner":
        q = q.filter(Feedback.house_owner_id == user.id)
    elif user.role == "technician":
        q = q.filter(Feedback.technician_id == user.id)
    else:
        raise HTTPException(status_code=403, detail="Access denied")
    return {"success": True, "feedbacks": [feedback_out(f) for f in q.order_by(Feedback.created_at.desc()).all()]}


@router.get("")
def list_feedback(
    status: Optional[str] = None,
    rating: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    _=Depends(require_roles("admin")),
):
    q = db.query(Feedback)
    if status and status != "all":
        q = q.filter(Feedback.status == status)
    if rating and rating != "all":
        try:
            q = q.filter(Feedback.rating == int(rating))
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid rating filter")
    total = q.count()
    rows = q.order_by(Feedback.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "success": True,
        "feedbacks": [feedback_out(f) for f in rows],
        "pagination": pagination(page, limit, total, "totalFeedbacks"),
    }


@router.get("/stats")
def stats(db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    return {"success": True, "stats": feedback_stats(db)}


@router.get("/export")
def export_csv(db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL)
    writer.writerow(["Date", "Customer", "Technician", "Service", "Rating", "Comment", "Status", "Helpful Count", "Reported Count"])
    for f in db.query(Feedback).order_by(Feedback.created_at.desc()).all():
        customer = "Anonymous" if f.is_anonymous else (f.house_owner.username if f.house_owner else "N/A")
        writer.writerow([
            f.created_at.date().isoformat() if f.created_at else "",
            customer,
            f.technician.username if f.technician else "N/A",
            f.service.name if f.service else "N/A",
            f.rating,
            f.comment or "",
            f.status,
            f.helpful_count or 0,
            f.reported_count or 0,
        ])
    return Response(
        content=buf.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=feedbacks.csv"},
    )


@router.get("/technicians")
def technicians(db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    rows = db.query(User).filter(User.role == "technician").order_by(User.username.asc()).all()
    return {"success": True, "technicians": [TechnicianSummary.model_validate(t).model_dump(mode="json", by_alias=True) for t in rows]}


@router.get("/technician")
def technician_feedback(db: Session = Depends(get_db), user: User = Depends(require_roles("technician"))):
    rows = db.query(Feedback).filter(
        Feedback.technician_id == user.id,
        Feedback.status.in_(["approved", "pending"]),
    ).order_by(Feedback.created_at.desc()).all()
    return {"success": True, "feedbacks": [feedback_out(f) for f in rows]}


@router.get("/technician/{technician_id}/rating")
def technician_rating(technician_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(get_current_user)):
    return {"success": True, **technician_average_rating(db, technician_id)}


@router.put("/{feedback_id}/status")
def update_status(feedback_id: uuid.UUID, payload: FeedbackStatusUpdate, db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    f = get_feedback_or_404(db, feedback_id)
    if payload.status not in FEEDBACK_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    f.status = payload.status
    db.commit()
    db.refresh(f)
    return {"success": True, "message": "Feedback status updated successfully", "feedback": feedback_out(f)}


@router.post("/{feedback_id}/reply")
def reply(feedback_id: uuid.UUID, payload: ReplyRequest, db: Session = Depends(get_db), admin: User = Depends(require_roles("admin"))):
    if not payload.content or not payload.content.strip():
        raise HTTPException(status_code=400, detail="Reply content is required")
    f = get_feedback_or_404(db, feedback_id)
    f.admin_response = {
        "content": payload.content.strip(),
        "respondedBy": str(admin.id),
        "respondedAt": utcnow().isoformat(),
    }
    db.commit()
    db.refresh(f)
    try:
        create_notification(
            db,
            f.house_owner_id,
            type="feedback_reply",
            title="Admin Response to Your Feedback",
            message=f"Admin has replied to your feedback for {f.service.name} service. Check your feedback for the response.",
            related_entity="feedback",
            entity_id=f.id,
            sender_id=admin.id,
            priority="medium",
            action_url="/dashboard",
        )
    except Exception as e:
        structlog.get_logger().warning("feedback_reply_notify_failed", feedback_id=str(f.id), error=str(e))
    return {"success": True, "message": "Reply added successfully", "feedback": feedback_out(f)}


@router.post("/{feedback_id}/helpful")
def mark_helpful(feedback_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(get_current_user)):
    f = get_feedback_or_404(db, feedback_id)
    count = f.mark_helpful()
    db.commit()
    return {"success": True, "message": "Feedback marked as helpful", "helpfulCount": count}


@router.post("/{feedback_id}/report")
def report(feedback_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(get_current_user)):
    f = get_feedback_or_404(db, feedback_id)
    count = f.report()
    db.commit()
    return {"success": True, "message": "Feedback reported successfully", "reportedCount": count}


def _owner_or_admin(f: Feedback, user: User) -> bool:
    if f.house_owner_id != user.id and user.role != "admin":
        raise HTTPException(status_code=403, detail="Access denied")
    return user.role == "admin"


@router.delete("/{feedback_id}")
def delete_feedback(feedback_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    f = get_feedback_or_404(db, feedback_id)
    _owner_or_admin(f, user)
    db.delete(f)
    db.commit()
    return {"success": True, "message": "Feedback deleted successfully"}


@router.put("/{feedback_id}")
def update_feedback(feedback_id: uuid.UUID, payload: FeedbackUpdate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    f = get_feedback_or_404(db, feedback_id)
    admin = _owner_or_admin(f, user)
    data = payload.model_dump(exclude_unset=True)
    if "comment" in data:
        validate_comment(data["comment"])
    status = data.pop("status", None)
    if "categories" in data and data["categories"] is not None:
        data["categories"] = [c.model_dump() for c in payload.categories]
    for field, value in data.items():
        if value is not None:
            setattr(f, field, value)
    # Only admins moderate
    if admin and status is not None:
        f.status = status
    db.commit()
    db.refresh(f)
    return {"success": True, "message": "Feedback updated successfully", "feedback": feedback_out(f)}


@router.put("/{feedback_id}/assign-technician")
def assign_technician(feedback_id: uuid.UUID, payload: AssignTechnicianRequest, db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    if not payload.technician_id:
        raise HTTPException(status_code=400, detail="Technician ID is required")
    technician = db.query(User).filter(User.id == payload.technician_id).first()
    if not technician:
        raise HTTPException(status_code=404, detail="Technician not found")
    if technician.role != "technician":
        raise HTTPException(status_code=400, detail="User is not a technician")
    f = get_feedback_or_404(db, feedback_id)
    f.technician_id = technician.id
    # Assigning approves
    f.status = "approved"
    db.commit()
    db.refresh(f)
    try:
        create_notification(
            db,
            technician.id,
            type="feedback_assigned",
            title="New Feedback Assigned",
            message=f"You have been assigned feedback for {f.service.name} service. Rating: {f.rating}/5",
            related_entity="feedback",
            entity_id=f.id,
            priority="medium",
            action_url=f"/technician/feedback/{f.id}",
        )
    except Exception as e:
        structlog.get_logger().warning("feedback_assign_notify_failed", feedback_id=str(f.id), error=str(e))
    structlog.get_logger().info("feedback_assigned", feedback_id=str(f.id), technician_id=str(technician.id))
    return {"success": True, "message": "Feedback assigned to technician successfully", "feedback": feedback_out(f)}
