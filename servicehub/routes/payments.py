import uuid
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import Booking, User, utcnow
from ..auth.security import get_current_user, require_roles
from ..schemas.payments import PaymentIntentRequest, ConfirmPaymentRequest, CashPaymentRequest
from ..services.bookings import serialize_booking
from ..services.notifications import create_notification, notify_admins
from ..services.payment_gateway import PaymentGatewayClient, WebhookSignatureError, construct_webhook_event, get_gateway
from ..logging import structlog


router = APIRouter(prefix="/payments", tags=["payments"])

PAYABLE_STATUSES = ("pending", "accepted", "in_progress")
CASH_COLLECTABLE_STATUSES = ("accepted", "in_progress", "completed")


def _require_gateway() -> PaymentGatewayClient:
    gateway = get_gateway()
    if gateway is None:
        raise HTTPException(status_code=503, detail="Payment gateway not available. Please use cash payment.")
    return gateway


def _owned_booking(db: Session, booking_id: uuid.UUID, user: User) -> Booking:
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    if booking.house_owner_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")
    return booking


@router.post("/create-payment-intent")
def create_payment_intent(payload: PaymentIntentRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    gateway = _require_gateway()
    booking = _owned_booking(db, payload.booking_id, user)
    if booking.status not in PAYABLE_STATUSES:
        raise HTTPException(status_code=400, detail="Booking is not in a valid state for payment")

    try:
        intent = gateway.create_payment_intent(
            amount=payload.amount,
            currency=payload.currency or settings.payment_currency,
            metadata={
                "bookingId": str(booking.id),
                "userId": str(user.id),
                "serviceName": booking.service.name if booking.service else "Service",
            },
            description=f"Payment for booking {booking.id}",
        )
    except httpx.HTTPError as e:
        structlog.get_logger().warning("payment_intent_create_failed", booking_id=str(booking.id), error=str(e))
        raise HTTPException(status_code=502, detail="Error creating payment intent")

    booking.payment_intent_id = intent.get("id")
    db.commit()
    return {"clientSecret": intent.get("client_secret"), "paymentIntentId": intent.get("id")}


@router.post("/confirm-payment")
def confirm_payment(payload: ConfirmPaymentRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    gateway = _require_gateway()
    try:
        intent = gateway.retrieve_payment_intent(payload.payment_intent_id)
    except httpx.HTTPError as e:
        structlog.get_logger().warning("payment_intent_retrieve_failed", intent_id=payload.payment_intent_id, error=str(e))
        raise HTTPException(status_code=502, detail="Error confirming payment")
    booking = _owned_booking(db, payload.booking_id, user)

    status = intent.get("status")
    if status == "requires_payment_method":
        raise HTTPException(status_code=400, detail="Payment requires a valid payment method")
    if status == "requires_confirmation":
        raise HTTPException(status_code=400, detail="Payment requires confirmation")
    if status != "succeeded":
        raise HTTPException(status_code=400, detail=f"Payment failed: {status}")
    if (intent.get("metadata") or {}).get("bookingId") != str(booking.id):
        raise HTTPException(status_code=400, detail="Payment does not belong to this booking")

    booking.payment_status = "paid"
    booking.payment_method = "credit_card"
    booking.payment_completed_at = utcnow()
    booking.stripe_payment_intent_id = payload.payment_intent_id
    db.commit()
    db.refresh(booking)

    amount = (intent.get("amount") or 0) / 100
    try:
        notify_admins(
            db,
            type="payment_received",
            title="Payment Received",
            message=f"Payment of {settings.payment_currency.upper()} {amount:.2f} received for booking {booking.id} from {user.username}",
            related_entity="booking",
            entity_id=booking.id,
            priority="medium",
            metadata={
                "paymentAmount": intent.get("amount"),
                "paymentMethod": "credit_card",
                "stripePaymentIntentId": payload.payment_intent_id,
            },
        )
    except Exception as e:
        db.rollback()
        structlog.get_logger().warning("payment_notify_failed", booking_id=str(booking.id), error=str(e))

    return {
        "success": True,
        "message": "Payment confirmed successfully",
        "paymentStatus": "succeeded",
        "booking": serialize_booking(booking),
    }


@router.get("/payment-status/{booking_id}")
def payment_status(booking_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    if booking.house_owner_id != user.id and user.role != "admin":
        raise HTTPException(status_code=403, detail="Access denied")

    gateway_status: Optional[dict] = None
    gateway = get_gateway()
    if booking.stripe_payment_intent_id and gateway is not None:
        try:
            intent = gateway.retrieve_payment_intent(booking.stripe_payment_intent_id)
            gateway_status = {
                "status": intent.get("status"),
                "amount": intent.get("amount"),
                "currency": intent.get("currency"),
                "created": intent.get("created"),
            }
        except httpx.HTTPError as e:
            structlog.get_logger().warning("payment_status_lookup_failed", booking_id=str(booking.id), error=str(e))

    return {
        "bookingId": str(booking.id),
        "paymentStatus": booking.payment_status,
        "paymentMethod": booking.payment_method,
        "paymentCompletedAt": booking.payment_completed_at.isoformat() if booking.payment_completed_at else None,
        "stripePaymentStatus": gateway_status,
    }


@router.post("/webhook")
async def webhook(request: Request, db: Session = Depends(get_db)):
    log = structlog.get_logger()
    if not settings.stripe_secret_key:
        raise HTTPException(status_code=503, detail="Payment gateway not available")

    body = await request.body()
    try:
        event = construct_webhook_event(body, request.headers.get("Stripe-Signature"), settings.stripe_webhook_secret)
    except WebhookSignatureError as e:
        log.warning("webhook_signature_failed", error=str(e))
        raise HTTPException(status_code=400, detail=f"Webhook Error: {e}")

    event_type = event.get("type")
    intent = (event.get("data") or {}).get("object") or {}
    new_status = {"payment_intent.succeeded": "paid", "payment_intent.payment_failed": "failed"}.get(event_type)
    if new_status is None:
        log.info("webhook_unhandled_event", event_type=event_type)
        return {"received": True}

    intent_id = intent.get("id")
    booking = db.query(Booking).filter(
        or_(Booking.stripe_payment_intent_id == intent_id, Booking.payment_intent_id == intent_id)
    ).first() if intent_id else None
    if booking:
        booking.payment_status = new_status
        if new_status == "paid":
            booking.payment_completed_at = utcnow()
            booking.stripe_payment_intent_id = intent_id
        db.commit()
        log.info("webhook_booking_payment_updated", booking_id=str(booking.id), payment_status=new_status)
    return {"received": True}


@router.post("/confirm-cash-payment")
def confirm_cash_payment(payload: CashPaymentRequest, db: Session = Depends(get_db), admin: User = Depends(require_roles("admin"))):
    booking = db.query(Booking).filter(Booking.id == payload.booking_id).first()
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    if booking.status not in CASH_COLLECTABLE_STATUSES:
        raise HTTPException(status_code=400, detail="Booking is not in a valid state for cash payment collection")

    now = utcnow()
    booking.payment_status = "paid"
    booking.payment_method = "cash"
    booking.payment_completed_at = now
    booking.cash_payment_details = {
        "collectedAmount": payload.collected_amount,
        "collectedAt": now.isoformat(),
        "collectedBy": str(admin.id),
        "notes": payload.notes or "",
    }
    db.commit()
    db.refresh(booking)

    try:
        create_notification(
            db,
            booking.house_owner_id,
            type="payment_confirmed",
            title="Cash Payment Confirmed",
            message=f"Your cash payment of {settings.payment_currency.upper()} {payload.collected_amount:.2f} has been confirmed for booking {booking.id}. Thank you for your payment!",
            related_entity="booking",
            entity_id=booking.id,
            priority="low",
            sender_id=admin.id,
            metadata={"paymentAmount": payload.collected_amount, "paymentMethod": "cash", "confirmedBy": admin.username},
        )
    except Exception as e:
        db.rollback()
        structlog.get_logger().warning("cash_payment_notify_failed", booking_id=str(booking.id), error=str(e))

    return {"success": True, "message": "Cash payment confirmed successfully", "booking": serialize_booking(booking)}


@router.get("/cash-payments")
def cash_payments(status: str = "pending", db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    rows = db.query(Booking).filter(
        Booking.payment_method == "cash",
        Booking.payment_status == status,
    ).order_by(Booking.created_at.desc()).all()
    return {
        "success": True,
        "bookings": [serialize_booking(b) for b in rows],
        "totalPendingAmount": sum(b.estimated_cost or 0 for b in rows),
        "count": len(rows),
    }
