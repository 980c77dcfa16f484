import hashlib
import hmac
import json
import time

import pytest

from servicehub.config import settings
from servicehub.models.models import Booking, Notification
from servicehub.services import payment_gateway
from servicehub.services.payment_gateway import WebhookSignatureError, construct_webhook_event

from .conftest import auth_headers


SECRET = "whsec_unit"


def _sign(payload: bytes, secret: str = SECRET, ts: int = None) -> str:
    ts = int(time.time()) if ts is None else ts
    digest = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


class FakeGateway:
    # intent id -> metadata, shared across instances like the real gateway
    intents = {}

    def __init__(self, status="succeeded"):
        self.status = status

    def create_payment_intent(self, amount, currency, metadata=None, description=None):
        self.intents["pi_123"] = metadata or {}
        return {"id": "pi_123", "client_secret": "pi_123_secret", "amount": int(amount * 100), "currency": currency}

    def retrieve_payment_intent(self, intent_id):
        return {
            "id": intent_id,
            "status": self.status,
            "amount": 150000,
            "currency": "lkr",
            "created": 0,
            "metadata": self.intents.get(intent_id, {}),
        }


@pytest.fixture
def gateway_configured(monkeypatch):
    monkeypatch.setattr(FakeGateway, "intents", {})
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_unit")
    monkeypatch.setattr(settings, "stripe_webhook_secret", SECRET)


def test_intent_unavailable_without_gateway(client, owner, make_booking):
    booking = make_booking()
    r = client.post(
        "/api/payments/create-payment-intent",
        json={"bookingId": booking["id"], "amount": 1500},
        headers=auth_headers(owner),
    )
    assert r.status_code == 503
    assert r.json()["detail"] == "Payment gateway not available. Please use cash payment."


def test_create_intent_and_confirm(client, owner, admin, make_booking, monkeypatch, gateway_configured, db):
    monkeypatch.setattr("servicehub.routes.payments.get_gateway", lambda: FakeGateway())
    booking = make_booking()
    h = auth_headers(owner)
    r = client.post("/api/payments/create-payment-intent", json={"bookingId": booking["id"], "amount": 1500}, headers=h)
    assert r.status_code == 200, r.text
    assert r.json() == {"clientSecret": "pi_123_secret", "paymentIntentId": "pi_123"}

    c = client.post("/api/payments/confirm-payment", json={"paymentIntentId": "pi_123", "bookingId": booking["id"]}, headers=h)
    assert c.status_code == 200
    assert c.json()["booking"]["paymentStatus"] == "paid"
    assert c.json()["booking"]["paymentMethod"] == "credit_card"
    assert db.query(Notification).filter(Notification.type == "payment_received").count() == 1


def test_confirm_reports_unfinished_intent(client, owner, make_booking, monkeypatch, gateway_configured):
    monkeypatch.setattr("servicehub.routes.payments.get_gateway", lambda: FakeGateway("requires_payment_method"))
    booking = make_booking()
    r = client.post(
        "/api/payments/confirm-payment",
        json={"paymentIntentId": "pi_9", "bookingId": booking["id"]},
        headers=auth_headers(owner),
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Payment requires a valid payment method"


def test_confirm_refuses_intent_made_for_another_booking(client, owner, make_booking, monkeypatch, gateway_configured, db):
    monkeypatch.setattr("servicehub.routes.payments.get_gateway", lambda: FakeGateway())
    first = make_booking()
    second = make_booking(scheduled_time="15:00")
    h = auth_headers(owner)
    assert client.post("/api/payments/create-payment-intent", json={"bookingId": first["id"], "amount": 1500}, headers=h).status_code == 200

    r = client.post("/api/payments/confirm-payment", json={"paymentIntentId": "pi_123", "bookingId": second["id"]}, headers=h)
    assert r.status_code == 400
    assert r.json()["detail"] == "Payment does not belong to this booking"
    assert db.query(Booking).filter(Booking.payment_status == "paid").count() == 0


def test_intent_only_for_own_booking(client, other_owner, make_booking, monkeypatch, gateway_configured):
    monkeypatch.setattr("servicehub.routes.payments.get_gateway", lambda: FakeGateway())
    booking = make_booking()
    r = client.post(
        "/api/payments/create-payment-intent",
        json={"bookingId": booking["id"], "amount": 1500},
        headers=auth_headers(other_owner),
    )
    assert r.status_code == 403


def test_webhook_signature_rejected(client, gateway_configured):
    payload = json.dumps({"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1"}}}).encode()
    r = client.post(
        "/api/payments/webhook",
        content=payload,
        headers={"Stripe-Signature": _sign(payload, secret="wrong"), "Content-Type": "application/json"},
    )
    assert r.status_code == 400
    assert r.json()["detail"].startswith("Webhook Error")


def test_webhook_marks_booking_paid(client, make_booking, gateway_configured, db):
    booking = make_booking()
    row = db.query(Booking).one()
    row.stripe_payment_intent_id = "pi_hook"
    db.commit()

    payload = json.dumps({"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_hook"}}}).encode()
    r = client.post(
        "/api/payments/webhook",
        content=payload,
        headers={"Stripe-Signature": _sign(payload), "Content-Type": "application/json"},
    )
    assert r.status_code == 200
    assert r.json() == {"received": True}
    db.expire_all()
    assert db.query(Booking).one().payment_status == "paid"

    failed = json.dumps({"type": "payment_intent.payment_failed", "data": {"object": {"id": "pi_hook"}}}).encode()
    client.post("/api/payments/webhook", content=failed, headers={"Stripe-Signature": _sign(failed)})
    db.expire_all()
    assert db.query(Booking).one().payment_status == "failed"


def test_construct_event_rejects_stale_timestamp():
    payload = b'{"type": "ping"}'
    with pytest.raises(WebhookSignatureError):
        construct_webhook_event(payload, _sign(payload, ts=int(time.time()) - 3600), SECRET, tolerance=300)
    assert construct_webhook_event(payload, _sign(payload), SECRET)["type"] == "ping"
    with pytest.raises(WebhookSignatureError):
        construct_webhook_event(payload, None, SECRET)


def test_gateway_factory_follows_settings(monkeypatch):
    monkeypatch.setattr(settings, "stripe_secret_key", None)
    assert payment_gateway.get_gateway() is None
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_unit")
    assert isinstance(payment_gateway.get_gateway(), payment_gateway.PaymentGatewayClient)


def test_cash_payment_confirmation(client, admin, owner, technician, make_booking, db):
    booking = make_booking()
    h = auth_headers(admin)
    body = {"bookingId": booking["id"], "collectedAmount": 1500, "notes": "Paid at door"}
    pending = client.post("/api/payments/confirm-cash-payment", json=body, headers=h)
    assert pending.status_code == 400

    client.put(f"/api/bookings/{booking['id']}/assign-technician", json={"technicianId": str(technician.id)}, headers=h)
    client.put(f"/api/bookings/{booking['id']}/status", json={"status": "accepted"}, headers=h)

    listing = client.get("/api/payments/cash-payments", headers=h).json()
    assert listing["count"] == 1
    assert listing["totalPendingAmount"] == 1500

    r = client.post("/api/payments/confirm-cash-payment", json=body, headers=h)
    assert r.status_code == 200
    details = r.json()["booking"]["cashPaymentDetails"]
    assert details["collectedAmount"] == 1500
    assert details["collectedBy"] == str(admin.id)
    assert db.query(Notification).filter(Notification.recipient_id == owner.id, Notification.type == "payment_confirmed").count() == 1
    assert client.post("/api/payments/confirm-cash-payment", json=body, headers=auth_headers(owner)).status_code == 403


def test_payment_status_lookup(client, owner, other_owner, admin, make_booking):
    booking = make_booking()
    r = client.get(f"/api/payments/payment-status/{booking['id']}", headers=auth_headers(owner))
    assert r.json()["paymentStatus"] == "pending"
    assert r.json()["stripePaymentStatus"] is None
    assert client.get(f"/api/payments/payment-status/{booking['id']}", headers=auth_headers(other_owner)).status_code == 403
    assert client.get(f"/api/payments/payment-status/{booking['id']}", headers=auth_headers(admin)).status_code == 200
