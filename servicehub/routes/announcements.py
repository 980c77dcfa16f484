import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Announcement, Feedback, User, utcnow
from ..auth.security import get_current_user, require_roles
from ..schemas.announcements import (
    AnnouncementCreate,
    AnnouncementUpdate,
    AnnouncementResponse,
    FeedbackAnnouncementRequest,
)


router = APIRouter(prefix="/announcements", tags=["announcements"])

AUDIENCES_BY_ROLE = {
    "house_owner": ["all", "customers"],
    "technician": ["all", "technicians"],
    "admin": ["all", "admins"],
}
PRIORITY_RANK = {"urgent": 3, "high": 2, "normal": 1, "low": 0}


def announcement_out(a: Announcement, user: Optional[User] = None) -> dict:
    data = AnnouncementResponse.model_validate(a).model_dump(mode="json", by_alias=True)
    if user is not None:
        data["isRead"] = a.is_read_by(user.id)
    return data


def active_for_user(db: Session, user: User) -> List[Announcement]:
    """Live announcements for the caller's audience, most urgent first."""
    rows = db.query(Announcement).filter(
        Announcement.is_active.is_(True),
        Announcement.target_audience.in_(AUDIENCES_BY_ROLE.get(user.role, ["all"])),
    ).order_by(Announcement.created_at.desc()).all()
    live = [a for a in rows if a.status == "active"]
    return sorted(live, key=lambda a: PRIORITY_RANK.get(a.priority, 0), reverse=True)


def get_announcement_or_404(db: Session, announcement_id: uuid.UUID) -> Announcement:
    a = db.query(Announcement).filter(Announcement.id == announcement_id).first()
    if not a:
        raise HTTPException(status_code=404, detail="Announcement not found")
    return a


@router.get("")
def list_for_user(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, "announcements": [announcement_out(a, user) for a in active_for_user(db, user)]}


@router.get("/admin")
def list_admin(
    type: Optional[str] = None,
    target_audience: Optional[str] = Query(None, alias="targetAudience"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    _=Depends(require_roles("admin")),
):
    q = db.query(Announcement)
    if type:
        q = q.filter(Announcement.type == type)
    if target_audience:
        q = q.filter(Announcement.target_audience == target_audience)
    if is_active is not None:
        q = q.filter(Announcement.is_active.is_(is_active))
    total = q.count()
    rows = q.order_by(Announcement.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "success": True,
        "announcements": [announcement_out(a) for a in rows],
        "totalPages": -(-total // limit),
        "currentPage": page,
        "total": total,
    }


@router.get("/stats")
def stats(db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    rows = db.query(Announcement).all()
    active = sum(1 for a in rows if a.status == "active")
    by_type = {}
    for a in rows:
        by_type[a.type] = by_type.get(a.type, 0) + 1
    return {
        "success": True,
        "stats": {"total": len(rows), "active": active, "inactive": len(rows) - active, "byType": by_type},
    }


@router.post("", status_code=201)
def create(payload: AnnouncementCreate, db: Session = Depends(get_db), admin: User = Depends(require_roles("admin"))):
    a = Announcement(
        title=payload.title,
        content=payload.content,
        type=payload.type,
        target_audience=payload.target_audience,
        priority=payload.priority,
        start_date=payload.start_date or utcnow(),
        end_date=payload.end_date,
        created_by_id=admin.id,
        related_feedback_id=payload.related_feedback,
        offer_details=payload.offer_details.model_dump(mode="json", by_alias=True) if payload.offer_details else None,
        read_by=[],
    )
    db.add(a)
    db.commit()
    db.refresh(a)
    return {"success": True, "message": "Announcement created successfully", "announcement": announcement_out(a)}


@router.post("/read-all")
def read_all(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    marked = sum(1 for a in active_for_user(db, user) if a.mark_as_read(user.id))
    db.commit()
    return {"success": True, "message": f"Marked {marked} announcements as read"}


@router.post("/feedback/{feedback_id}", status_code=201)
def create_for_feedback(
    feedback_id: uuid.UUID,
    payload: FeedbackAnnouncementRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles("admin")),
):
    f = db.query(Feedback).filter(Feedback.id == feedback_id).first()
    if not f:
        raise HTTPException(status_code=404, detail="Feedback not found")
    service_name = f.service.name if f.service else "Service"
    owner_name = f.house_owner.username if f.house_owner else "Customer"
    a = Announcement(
        title=payload.title or f"New Feedback Received - {service_name}",
        content=payload.content or f"Feedback received from {owner_name} for {service_name}. Rating: {f.rating}/5",
        type="feedback",
        target_audience=payload.target_audience,
        priority="high" if f.rating <= 2 else "normal",
        created_by_id=admin.id,
        related_feedback_id=f.id,
        read_by=[],
    )
    db.add(a)
    db.commit()
    db.refresh(a)
    return {"success": True, "message": "Feedback announcement created successfully", "announcement": announcement_out(a)}


@router.put("/{announcement_id}")
def update(announcement_id: uuid.UUID, payload: AnnouncementUpdate, db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    a = get_announcement_or_404(db, announcement_id)
    data = payload.model_dump(exclude_unset=True)
    if "offer_details" in data:
        data["offer_details"] = payload.offer_details.model_dump(mode="json", by_alias=True) if payload.offer_details else None
    if data.get("type", a.type) in ("offer", "festival") and not data.get("end_date", a.end_date):
        raise HTTPException(status_code=400, detail="End date is required for offers and festivals")
    for field, value in data.items():
        setattr(a, field, value)
    db.commit()
    db.refresh(a)
    return {"success": True, "message": "Announcement updated successfully", "announcement": announcement_out(a)}


@router.delete("/{announcement_id}")
def delete(announcement_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    a = get_announcement_or_404(db, announcement_id)
    db.delete(a)
    db.commit()
    return {"success": True, "message": "Announcement deleted successfully"}


@router.post("/{announcement_id}/read")
def mark_read(announcement_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    a = get_announcement_or_404(db, announcement_id)
    if a.mark_as_read(user.id):
        db.commit()
    return {"success": True, "message": "Announcement marked as read"}
