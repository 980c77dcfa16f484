import pytest

from servicehub.config import settings
from servicehub.models.models import Feedback, Inventory, Notification

from .conftest import auth_headers, booking_payload, line_for, new_id


def _assign_and_accept(client, admin, technician, booking_id):
    h = auth_headers(admin)
    r = client.put(f"/api/bookings/{booking_id}/assign-technician", json={"technicianId": str(technician.id)}, headers=h)
    assert r.status_code == 200, r.text
    r = client.put(f"/api/bookings/{booking_id}/status", json={"status": "accepted"}, headers=h)
    assert r.status_code == 200, r.text
    return r.json()["booking"]


def _complete(client, technician, booking_id, **extra):
    h = auth_headers(technician)
    assert client.put(f"/api/bookings/{booking_id}/status", json={"status": "in_progress"}, headers=h).status_code == 200
    r = client.put(f"/api/bookings/{booking_id}/status", json={"status": "completed", **extra}, headers=h)
    assert r.status_code == 200, r.text
    return r.json()["booking"]


def test_create_booking_computes_estimated_cost(client, owner, service, item, make_booking, db):
    booking = make_booking(lines=[line_for(item, 3)])
    assert booking["status"] == "pending"
    assert booking["estimatedCost"] == 1500 + 3 * 200
    assert booking["selectedInventory"][0]["totalPrice"] == 600
    db.refresh(item)
    assert item.quantity == 7


def test_create_booking_notifies_admins(client, admin, make_booking, db):
    make_booking()
    types = {n.type for n in db.query(Notification).filter(Notification.recipient_id == admin.id)}
    assert types == {"booking_created", "cash_payment"}


def test_insufficient_stock_rejects_booking(client, owner, service, item, db):
    r = client.post(
        "/api/bookings",
        json=booking_payload(service.id, [line_for(item, 11)]),
        headers=auth_headers(owner),
    )
    assert r.status_code == 400
    body = r.json()
    assert body["message"] == "Booking failed due to inventory issues"
    assert body["failedItems"][0]["itemName"] == "PVC Pipe"
    listing = client.get("/api/bookings", headers=auth_headers(owner)).json()
    assert listing["pagination"]["totalBookings"] == 0
    db.refresh(item)
    assert item.quantity == 10


def test_missing_or_inactive_service(client, owner, service, db):
    h = auth_headers(owner)
    assert client.post("/api/bookings", json=booking_payload(new_id()), headers=h).status_code == 404
    service.is_active = False
    db.commit()
    assert client.post("/api/bookings", json=booking_payload(service.id), headers=h).status_code == 400


def test_card_details_are_masked(client, owner, service):
    payload = booking_payload(service.id, payment_method="credit_card")
    payload["cardDetails"] = {"cardNumber": "4242 4242 4242 4242", "cvc": "123", "brand": "visa", "expMonth": 12, "expYear": 2030}
    r = client.post("/api/bookings", json=payload, headers=auth_headers(owner))
    assert r.status_code == 201
    from servicehub.models.models import Booking
    from .conftest import TestingSessionLocal

    with TestingSessionLocal() as s:
        card = s.query(Booking).one().card_details
    assert card == {"last4": "4242", "brand": "visa", "expMonth": 12, "expYear": 2030}


def test_invalid_transition_is_rejected(client, admin, make_booking):
    booking = make_booking()
    r = client.put(f"/api/bookings/{booking['id']}/status", json={"status": "completed"}, headers=auth_headers(admin))
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid status transition from pending to completed"


def test_accept_requires_admin_and_technician(client, admin, owner, make_booking):
    booking = make_booking()
    url = f"/api/bookings/{booking['id']}/status"
    r = client.put(url, json={"status": "accepted"}, headers=auth_headers(owner))
    assert r.status_code == 403
    assert r.json()["detail"] == "Only admin can accept bookings"
    r = client.put(url, json={"status": "accepted"}, headers=auth_headers(admin))
    assert r.status_code == 400
    assert r.json()["detail"] == "Cannot accept booking without assigning a technician first"


def test_assign_then_accept_notifies_both_parties(client, admin, owner, technician, make_booking, db):
    booking = make_booking()
    accepted = _assign_and_accept(client, admin, technician, booking["id"])
    assert accepted["status"] == "accepted"
    assert accepted["acceptedAt"]
    assert accepted["technician"]["username"] == "tech_one"
    tech_types = [n.type for n in db.query(Notification).filter(Notification.recipient_id == technician.id)]
    assert tech_types.count("booking_assigned") == 2
    owner_types = [n.type for n in db.query(Notification).filter(Notification.recipient_id == owner.id)]
    assert "technician_assigned" in owner_types


def test_assign_rejects_non_technician_and_conflicts(client, admin, owner, technician, make_booking):
    h = auth_headers(admin)
    first = make_booking()
    second = make_booking()
    r = client.put(f"/api/bookings/{first['id']}/assign-technician", json={"technicianId": str(owner.id)}, headers=h)
    assert r.status_code == 400
    assert client.put(f"/api/bookings/{first['id']}/assign-technician", json={}, headers=h).status_code == 400

    _assign_and_accept(client, admin, technician, first["id"])
    r = client.put(f"/api/bookings/{second['id']}/assign-technician", json={"technicianId": str(technician.id)}, headers=h)
    assert r.status_code == 400
    assert r.json()["detail"] == "Technician is already assigned to another booking at the same time"


def test_available_technicians_excludes_busy(client, admin, technician, technician_two, make_booking):
    booking = make_booking()
    _assign_and_accept(client, admin, technician, booking["id"])
    h = auth_headers(admin)
    assert client.get("/api/bookings/technicians/available", headers=h).status_code == 400
    r = client.get(
        "/api/bookings/technicians/available",
        params={"date": booking["scheduledDate"], "time": booking["scheduledTime"]},
        headers=h,
    )
    assert [t["username"] for t in r.json()["technicians"]] == ["tech_two"]


def test_technician_self_accept(client, technician, technician_two, make_booking):
    booking = make_booking()
    r = client.post(f"/api/bookings/{booking['id']}/accept", headers=auth_headers(technician))
    assert r.status_code == 200
    assert r.json()["booking"]["technicianId"] == str(technician.id)
    again = client.post(f"/api/bookings/{booking['id']}/accept", headers=auth_headers(technician_two))
    assert again.status_code == 400


def test_available_bookings_ranked_by_urgency(client, owner, technician, service):
    h = auth_headers(owner)
    for urgency in ("normal", "high", "medium"):
        payload = booking_payload(service.id)
        payload["urgency"] = urgency
        assert client.post("/api/bookings", json=payload, headers=h).status_code == 201
    r = client.get("/api/bookings/available", headers=auth_headers(technician))
    assert [b["urgency"] for b in r.json()["bookings"]] == ["high", "medium", "normal"]
    assert client.get("/api/bookings/available", headers=h).status_code == 403


def test_cancel_restores_inventory(client, owner, item, make_booking, db):
    booking = make_booking(lines=[line_for(item, 4)])
    db.refresh(item)
    assert item.quantity == 6
    r = client.delete(f"/api/bookings/{booking['id']}", headers=auth_headers(owner))
    assert r.status_code == 200
    assert r.json()["booking"]["status"] == "cancelled"
    db.refresh(item)
    assert item.quantity == 10
    again = client.delete(f"/api/bookings/{booking['id']}", headers=auth_headers(owner))
    assert again.status_code == 400


def test_owner_cannot_see_other_owners_booking(client, other_owner, make_booking):
    booking = make_booking()
    r = client.get(f"/api/bookings/{booking['id']}", headers=auth_headers(other_owner))
    assert r.status_code == 403


def test_completion_consumes_stock_and_creates_feedback(client, admin, technician, item, make_booking, db):
    booking = make_booking(lines=[line_for(item, 3)])
    _assign_and_accept(client, admin, technician, booking["id"])
    done = _complete(client, technician, booking["id"], completionNotes="Replaced the trap")
    assert done["completedAt"] and done["startedAt"]

    db.refresh(item)
    # reserved on create and charged again on completion
    assert item.quantity == 4
    fb = db.query(Feedback).filter(Feedback.booking_id == booking["id"]).one()
    assert fb.rating == 5
    assert fb.status == "approved"
    assert fb.comment == "Replaced the trap"
    assert len(fb.categories) == 6


def test_completion_without_second_decrement(client, admin, technician, item, make_booking, db, monkeypatch):
    monkeypatch.setattr(settings, "inventory_consume_on_complete", False)
    booking = make_booking(lines=[line_for(item, 3)])
    _assign_and_accept(client, admin, technician, booking["id"])
    _complete(client, technician, booking["id"])
    db.refresh(item)
    assert item.quantity == 7


def test_completion_never_drives_stock_negative(client, admin, technician, item, make_booking, db):
    booking = make_booking(lines=[line_for(item, 8)])
    _assign_and_accept(client, admin, technician, booking["id"])
    _complete(client, technician, booking["id"])
    db.refresh(item)
    assert item.quantity == 2
    alerts = db.query(Notification).filter(Notification.type == "inventory_alert", Notification.recipient_id == admin.id).all()
    assert any(n.title == "Insufficient Stock Alert" for n in alerts)


def test_update_blocked_after_completion(client, admin, technician, owner, make_booking):
    booking = make_booking()
    _assign_and_accept(client, admin, technician, booking["id"])
    _complete(client, technician, booking["id"])
    r = client.put(f"/api/bookings/{booking['id']}", json={"address": "New address"}, headers=auth_headers(owner))
    assert r.status_code == 400
    assert r.json()["detail"] == "Cannot update completed or cancelled bookings"


def test_payment_status_validation(client, owner, make_booking):
    booking = make_booking()
    url = f"/api/bookings/{booking['id']}/payment-status"
    assert client.put(url, json={"paymentStatus": "bogus"}, headers=auth_headers(owner)).status_code == 400
    r = client.put(url, json={"paymentStatus": "paid"}, headers=auth_headers(owner))
    assert r.json()["booking"]["paymentStatus"] == "paid"


def test_cancel_with_deleted_inventory_item(client, owner, item, make_booking, db):
    booking = make_booking(lines=[line_for(item, 2)])
    db.delete(db.query(Inventory).one())
    db.commit()
    r = client.delete(f"/api/bookings/{booking['id']}", headers=auth_headers(owner))
    assert r.status_code == 200


def _drive_to(client, admin, owner, technician, booking_id, state):
    if state == "completed":
        _assign_and_accept(client, admin, technician, booking_id)
        _complete(client, technician, booking_id)
    elif state == "rejected":
        r = client.put(f"/api/bookings/{booking_id}/status", json={"status": "rejected"}, headers=auth_headers(admin))
        assert r.status_code == 200, r.text
        assert r.json()["booking"]["status"] == "rejected"
    else:
        assert client.delete(f"/api/bookings/{booking_id}", headers=auth_headers(owner)).status_code == 200


@pytest.mark.parametrize("terminal", ["completed", "rejected", "cancelled"])
def test_terminal_states_refuse_every_transition(client, admin, owner, technician, make_booking, terminal):
    booking = make_booking()
    _drive_to(client, admin, owner, technician, booking["id"], terminal)
    for target in ("pending", "accepted", "rejected", "in_progress", "completed", "cancelled"):
        r = client.put(f"/api/bookings/{booking['id']}/status", json={"status": target}, headers=auth_headers(admin))
        assert r.status_code == 400, target
        assert r.json()["detail"] == f"Invalid status transition from {terminal} to {target}"


def test_cancel_in_progress_via_status_restores_stock_and_tells_technician(client, admin, technician, item, make_booking, db):
    booking = make_booking(lines=[line_for(item, 4)])
    _assign_and_accept(client, admin, technician, booking["id"])
    h = auth_headers(technician)
    assert client.put(f"/api/bookings/{booking['id']}/status", json={"status": "in_progress"}, headers=h).status_code == 200
    db.refresh(item)
    assert item.quantity == 6

    r = client.put(f"/api/bookings/{booking['id']}/status", json={"status": "cancelled"}, headers=h)
    assert r.status_code == 200, r.text
    assert r.json()["booking"]["status"] == "cancelled"
    db.refresh(item)
    assert item.quantity == 10
    cancelled = db.query(Notification).filter(
        Notification.recipient_id == technician.id,
        Notification.type == "booking_cancelled",
    ).all()
    assert len(cancelled) == 1


def test_owner_cancel_tells_assigned_technician(client, admin, owner, technician, make_booking, db):
    booking = make_booking()
    _assign_and_accept(client, admin, technician, booking["id"])
    assert client.delete(f"/api/bookings/{booking['id']}", headers=auth_headers(owner)).status_code == 200
    n = db.query(Notification).filter(
        Notification.recipient_id == technician.id,
        Notification.type == "booking_cancelled",
    ).one()
    assert n.related_entity == "booking"


def test_completion_keeps_existing_owner_feedback(client, admin, owner, technician, make_booking, db):
    booking = make_booking()
    r = client.post(
        "/api/feedback",
        json={"bookingId": booking["id"], "serviceId": booking["serviceId"], "rating": 3, "comment": "Decent job but arrived late."},
        headers=auth_headers(owner),
    )
    assert r.status_code == 201, r.text
    _assign_and_accept(client, admin, technician, booking["id"])
    _complete(client, technician, booking["id"])

    rows = db.query(Feedback).filter(Feedback.booking_id == booking["id"]).all()
    assert len(rows) == 1
    assert rows[0].rating == 3
