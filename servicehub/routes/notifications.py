import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Notification, User, utcnow
from ..auth.security import get_current_user
from ..schemas.notifications import NotificationCreate
from ..services.notifications import create_notification, serialize


router = APIRouter(prefix="/notifications", tags=["notifications"])


def _scoped(db: Session, user: User):
    # Admins see every notification
    q = db.query(Notification)
    if user.role != "admin":
        q = q.filter(Notification.recipient_id == user.id)
    return q


@router.get("")
def list_notifications(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    rows = _scoped(db, user).order_by(Notification.created_at.desc()).limit(50).all()
    return {"success": True, "notifications": [serialize(n) for n in rows]}


@router.get("/unread-count")
def unread_count(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    count = _scoped(db, user).filter(Notification.is_read.is_(False)).count()
    return {"success": True, "unreadCount": count}


@router.put("/read-all")
def read_all(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    db.query(Notification).filter(
        Notification.recipient_id == user.id,
        Notification.is_read.is_(False),
    ).update({Notification.is_read: True, Notification.read_at: utcnow()}, synchronize_session=False)
    db.commit()
    return {"success": True, "message": "All notifications marked as read"}


@router.post("", status_code=201)
def create(payload: NotificationCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    recipient_id = payload.recipient or user.id
    if payload.recipient and not db.query(User).filter(User.id == payload.recipient).first():
        raise HTTPException(status_code=404, detail="Recipient not found")
    n = create_notification(
        db,
        recipient_id,
        type=payload.type,
        title=payload.title,
        message=payload.message,
        related_entity=payload.related_entity,
        entity_id=payload.entity_id or user.id,
        priority=payload.priority,
        action_required=payload.action_required,
        action_url=payload.action_url,
        sender_id=user.id,
    )
    return {"success": True, "message": "Notification created successfully", "notification": serialize(n)}


@router.put("/{notification_id}/read")
def mark_read(notification_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    n = db.query(Notification).filter(Notification.id == notification_id).first()
    if not n:
        raise HTTPException(status_code=404, detail="Notification not found")
    if n.recipient_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")
    n.mark_as_read()
    db.commit()
    return {"success": True, "message": "Notification marked as read"}


@router.delete("/{notification_id}")
def delete(notification_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    n = db.query(Notification).filter(Notification.id == notification_id).first()
    if not n:
        raise HTTPException(status_code=404, detail="Notification not found")
    if n.recipient_id != user.id and user.role != "admin":
        raise HTTPException(status_code=403, detail="Access denied")
    db.delete(n)
    db.commit()
    return {"success": True, "message": "Notification deleted successfully"}
