import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    Text,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..config import settings
from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255))
    google_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    is_google_user: Mapped[bool] = mapped_column(Boolean, default=False)
    mobile: Mapped[Optional[str]] = mapped_column(String(20), index=True)
    role: Mapped[str] = mapped_column(String(20), default="house_owner", nullable=False)  # admin|technician|house_owner

    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date)
    bio: Mapped[Optional[str]] = mapped_column(String(500))
    specialties: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    profile_picture: Mapped[Optional[str]] = mapped_column(String(500))
    rating: Mapped[Optional[float]] = mapped_column(Float)

    is_email_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    is_mobile_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    email_verification_code: Mapped[Optional[str]] = mapped_column(String(6))
    mobile_verification_code: Mapped[Optional[str]] = mapped_column(String(6))
    verification_code_expiry: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # [{id, type, address, city, state, zipCode, country, isDefault, instructions}]
    addresses: Mapped[Optional[list]] = mapped_column(JSON, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    password_reset_code: Mapped[Optional[str]] = mapped_column(String(6))
    password_reset_expires: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def is_verification_code_expired(self) -> bool:
        expiry = as_utc(self.verification_code_expiry)
        return expiry is None or utcnow() > expiry

    def has_active_reset_code(self) -> bool:
        expires = as_utc(self.password_reset_expires)
        return bool(self.password_reset_code) and expires is not None and expires > utcnow()


class Service(Base):
    __tablename__ = "services"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    base_price: Mapped[float] = mapped_column(Float, nullable=False)
    hourly_rate: Mapped[Optional[float]] = mapped_column(Float)
    estimated_duration: Mapped[str] = mapped_column(String(50), default="2-4 hours")
    image_url: Mapped[Optional[str]] = mapped_column(String(500), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    features: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    requirements: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = uuid_pk()
    house_owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    service_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("services.id"), nullable=False, index=True)
    technician_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), index=True)

    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_time: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, default="")
    urgency: Mapped[str] = mapped_column(String(10), default="normal")  # normal|medium|high
    budget: Mapped[Optional[float]] = mapped_column(Float)
    estimated_cost: Mapped[Optional[float]] = mapped_column(Float)

    technician_notes: Mapped[Optional[str]] = mapped_column(Text)
    completion_notes: Mapped[Optional[str]] = mapped_column(Text)
    rating: Mapped[Optional[int]] = mapped_column(Integer)
    feedback: Mapped[Optional[str]] = mapped_column(Text)

    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"))

    # [{itemId, name, unit, image, quantity, price, totalPrice}]
    selected_inventory: Mapped[Optional[list]] = mapped_column(JSON, default=list)

    payment_method: Mapped[str] = mapped_column(String(20), default="cash")  # cash|credit_card
    selected_payment_method: Mapped[Optional[str]] = mapped_column(String(20))
    payment_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|paid|failed|refunded
    card_details: Mapped[Optional[dict]] = mapped_column(JSON)
    payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255))
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    payment_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    # {collectedAmount, collectedAt, collectedBy, notes}
    cash_payment_details: Mapped[Optional[dict]] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    house_owner = relationship("User", foreign_keys=[house_owner_id])
    technician = relationship("User", foreign_keys=[technician_id])
    service = relationship("Service")

    __table_args__ = (
        Index("idx_bookings_slot", "technician_id", "scheduled_date", "scheduled_time"),
    )

    def scheduled_at(self) -> Optional[datetime]:
        if not self.scheduled_date:
            return None
        return datetime.combine(self.scheduled_date, parse_time_of_day(self.scheduled_time), tzinfo=timezone.utc)

    def can_be_cancelled(self, window_hours: Optional[int] = None) -> bool:
        if self.status not in ("pending", "accepted"):
            return False
        if window_hours is None:
            window_hours = settings.cancellation_window_hours
        when = self.scheduled_at()
        return when is not None and when - utcnow() > timedelta(hours=window_hours)

    def can_be_edited(self) -> bool:
        return self.status in ("pending", "accepted")


def parse_time_of_day(value: Optional[str]):
    """Accepts '14:30', '2:30 PM' or '14:30:00'; falls back to midnight."""
    for fmt in ("%H:%M", "%I:%M %p", "%I:%M%p", "%H:%M:%S"):
        try:
            return datetime.strptime((value or "").strip().upper(), fmt).time()
        except ValueError:
            continue
    return datetime.min.time()


class Inventory(Base):
    __tablename__ = "inventory"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    cost: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="piece")
    supplier: Mapped[Optional[dict]] = mapped_column(JSON)  # {name, contact, email}
    reorder_level: Mapped[int] = mapped_column(Integer, default=10)
    location: Mapped[str] = mapped_column(String(200), default="Main Storage")
    image: Mapped[Optional[str]] = mapped_column(String(500))
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_restocked: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=utcnow)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def stock_status(self) -> str:
        if self.quantity <= 0:
            return "out_of_stock"
        if self.quantity <= (self.reorder_level or 0):
            return "low_stock"
        return "in_stock"

    @property
    def profit_margin(self) -> float:
        if not self.cost:
            return 0
        return round((self.price - self.cost) / self.cost * 100, 2)

    def update_quantity(self, change: int, operation: str = "add") -> int:
        if operation == "subtract":
            self.quantity = max(0, (self.quantity or 0) - change)
        else:
            self.quantity = (self.quantity or 0) + change
            if change > 0:
                self.last_restocked = utcnow()
        return self.quantity


class Feedback(Base):
    __tablename__ = "feedback"

    id: Mapped[uuid.UUID] = uuid_pk()
    house_owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    technician_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), index=True)
    service_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("services.id"), nullable=False)
    # No unique constraint: one-per-booking is a pre-insert check
    booking_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(String(1000), default="")
    categories: Mapped[Optional[list]] = mapped_column(JSON, default=list)  # [{category, rating}]
    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)
    admin_response: Mapped[Optional[dict]] = mapped_column(JSON)  # {content, respondedBy, respondedAt}
    helpful_count: Mapped[int] = mapped_column(Integer, default=0)
    reported_count: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    house_owner = relationship("User", foreign_keys=[house_owner_id])
    technician = relationship("User", foreign_keys=[technician_id])
    service = relationship("Service")
    booking = relationship("Booking")

    @property
    def average_category_rating(self) -> float:
        if not self.categories:
            return float(self.rating)
        total = sum(c.get("rating", 0) for c in self.categories)
        return round(total / len(self.categories), 1)

    def can_be_edited(self) -> bool:
        created = as_utc(self.created_at)
        return created is not None and utcnow() - created < timedelta(hours=24)

    def mark_helpful(self) -> int:
        self.helpful_count = (self.helpful_count or 0) + 1
        return self.helpful_count

    def report(self) -> int:
        self.reported_count = (self.reported_count or 0) + 1
        if self.reported_count >= 5:
            self.status = "hidden"
        return self.reported_count


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = uuid_pk()
    recipient_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    related_entity: Mapped[Optional[str]] = mapped_column(String(20))  # booking|feedback|inventory|user|service
    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    priority: Mapped[str] = mapped_column(String(10), default="medium")  # low|medium|high|urgent
    action_required: Mapped[bool] = mapped_column(Boolean, default=False)
    action_url: Mapped[Optional[str]] = mapped_column(String(500))
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    metadata_json: Mapped[Optional[dict]] = mapped_column("metadata", JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_notifications_recipient_read", "recipient_id", "is_read"),
        Index("idx_notifications_created", "created_at"),
    )

    def mark_as_read(self) -> None:
        if not self.is_read:
            self.is_read = True
            self.read_at = utcnow()


class Announcement(Base):
    __tablename__ = "announcements"

    id: Mapped[uuid.UUID] = uuid_pk()
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(String(2000), nullable=False)
    type: Mapped[str] = mapped_column(String(20), default="general")
    target_audience: Mapped[str] = mapped_column(String(20), default="all")  # all|customers|technicians|admins
    priority: Mapped[str] = mapped_column(String(10), default="normal")  # low|normal|high|urgent
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_by_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    read_by: Mapped[Optional[list]] = mapped_column(JSON, default=list)  # [{user, readAt}]
    related_feedback_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("feedback.id", ondelete="SET NULL"))
    offer_details: Mapped[Optional[dict]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    created_by = relationship("User")

    @property
    def status(self) -> str:
        now = utcnow()
        end = as_utc(self.end_date)
        start = as_utc(self.start_date)
        if not self.is_active:
            return "inactive"
        if end and now > end:
            return "expired"
        if start and now < start:
            return "scheduled"
        return "active"

    def is_read_by(self, user_id) -> bool:
        uid = str(user_id)
        return any(r.get("user") == uid for r in (self.read_by or []))

    def mark_as_read(self, user_id) -> bool:
        """Append a read receipt; returns False when the user already had one."""
        if self.is_read_by(user_id):
            return False
        # Reassign so the JSON column is flagged dirty
        self.read_by = list(self.read_by or []) + [{"user": str(user_id), "readAt": utcnow().isoformat()}]
        return True
