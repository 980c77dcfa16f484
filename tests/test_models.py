from datetime import date, timedelta

from servicehub.config import settings
from servicehub.models.models import Booking, Feedback, utcnow


def _booking(status="pending", days_ahead=2, time="10:00"):
    return Booking(status=status, scheduled_date=date.today() + timedelta(days=days_ahead), scheduled_time=time)


def test_can_be_cancelled_uses_configured_window(monkeypatch):
    b = _booking()
    assert b.can_be_cancelled() is True
    monkeypatch.setattr(settings, "cancellation_window_hours", 24 * 5)
    assert b.can_be_cancelled() is False
    assert b.can_be_cancelled(window_hours=1) is True


def test_can_be_cancelled_only_while_open():
    assert _booking(status="accepted").can_be_cancelled() is True
    for status in ("in_progress", "completed", "rejected", "cancelled"):
        assert _booking(status=status).can_be_cancelled() is False
    assert _booking(days_ahead=-1).can_be_cancelled() is False


def test_booking_can_be_edited():
    assert _booking().can_be_edited() is True
    assert _booking(status="accepted").can_be_edited() is True
    assert _booking(status="in_progress").can_be_edited() is False
    assert _booking(status="completed").can_be_edited() is False


def test_feedback_edit_window():
    assert Feedback(created_at=utcnow() - timedelta(hours=1)).can_be_edited() is True
    assert Feedback(created_at=utcnow() - timedelta(hours=25)).can_be_edited() is False
