from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.models import Feedback


BLOCKED_WORDS = ("spam", "fake", "scam", "test", "dummy")


def validate_comment(comment: Optional[str]) -> None:
    """Comments are optional, but when present must be 10-1000 chars and free of blocked words."""
    if not comment or not comment.strip():
        return
    if len(comment) > 1000:
        raise HTTPException(status_code=400, detail="Comment cannot exceed 1000 characters")
    if len(comment.strip()) < 10:
        raise HTTPException(status_code=400, detail="Please provide more detailed feedback (at least 10 characters)")
    lowered = comment.lower()
    if any(word in lowered for word in BLOCKED_WORDS):
        raise HTTPException(status_code=400, detail="Please provide constructive feedback")


def technician_average_rating(db: Session, technician_id) -> dict:
    avg, total = db.query(func.avg(Feedback.rating), func.count(Feedback.id)).filter(
        Feedback.technician_id == technician_id,
        Feedback.status == "approved",
    ).one()
    return {
        "averageRating": round(float(avg), 2) if avg is not None else 0,
        "totalFeedbacks": int(total or 0),
    }


def feedback_stats(db: Session) -> dict:
    approved = db.query(Feedback.rating).filter(Feedback.status == "approved").all()
    ratings = [r for (r,) in approved]
    by_status = dict(db.query(Feedback.status, func.count(Feedback.id)).group_by(Feedback.status).all())
    unassigned = db.query(Feedback).filter(Feedback.technician_id.is_(None)).count()
    return {
        "total": len(ratings),
        "pending": by_status.get("pending", 0),
        "approved": by_status.get("approved", 0),
        "rejected": by_status.get("rejected", 0),
        "hidden": by_status.get("hidden", 0),
        "unassigned": unassigned,
        "averageRating": round(sum(ratings) / len(ratings), 2) if ratings else 0,
        "ratingDistribution": ratings,
    }
