from servicehub.models.models import Inventory, Notification
from servicehub.services.inventory import reserve_inventory, restore_inventory

from .conftest import auth_headers, line_for, new_id


NEW_ITEM = {
    "name": "Copper Wire",
    "description": "2.5mm copper wire",
    "category": "electrical",
    "quantity": 50,
    "unit": "meter",
    "price": 120,
    "cost": 80,
    "supplier": {"name": "Lanka Cables", "contact": "", "email": ""},
    "expiryDate": "2030-01-01T00:00:00Z",
}


def test_create_and_duplicate(client, admin):
    h = auth_headers(admin)
    r = client.post("/api/inventory", json=NEW_ITEM, headers=h)
    assert r.status_code == 201, r.text
    inv = r.json()["inventory"]
    assert inv["stockStatus"] == "in_stock"
    assert inv["supplier"] == {"name": "Lanka Cables", "contact": None, "email": None}
    assert inv["profitMargin"] == 50.0

    dup = client.post("/api/inventory", json={**NEW_ITEM, "name": "copper wire"}, headers=h)
    assert dup.status_code == 400
    assert dup.json()["detail"] == "An item with this name already exists in this category"
    other_category = client.post("/api/inventory", json={**NEW_ITEM, "category": "general"}, headers=h)
    assert other_category.status_code == 201


def test_low_stock_on_create_alerts_admins(client, admin, db):
    r = client.post("/api/inventory", json={**NEW_ITEM, "quantity": 3}, headers=auth_headers(admin))
    assert r.json()["inventory"]["stockStatus"] == "low_stock"
    assert db.query(Notification).filter(Notification.type == "inventory_alert").count() == 1


def test_listing_requires_auth_and_filters(client, owner, admin, item):
    assert client.get("/api/inventory").status_code == 401
    client.post("/api/inventory", json=NEW_ITEM, headers=auth_headers(admin))
    body = client.get("/api/inventory", params={"category": "plumbing"}, headers=auth_headers(owner)).json()
    assert [i["name"] for i in body["inventory"]] == ["PVC Pipe"]
    assert body["pagination"]["totalItems"] == 1
    assert body["pagination"]["itemsPerPage"] == 20
    assert body["categories"] == ["electrical", "plumbing"]


def test_restock_and_stats(client, admin, item):
    h = auth_headers(admin)
    r = client.post(f"/api/inventory/{item.id}/restock", json={"quantity": 5}, headers=h)
    assert r.status_code == 200
    assert r.json()["message"] == "Restocked 5 meter of PVC Pipe"
    assert r.json()["inventory"]["quantity"] == 15

    stats = client.get("/api/inventory/stats/overview", headers=h).json()
    assert stats["stats"]["totalItems"] == 1
    assert stats["stats"]["totalValue"] == 3000.0
    assert stats["categoryStats"][0]["category"] == "plumbing"


def test_missing_item(client, admin):
    r = client.get(f"/api/inventory/{new_id()}", headers=auth_headers(admin))
    assert r.status_code == 404
    assert r.json()["detail"] == "Inventory item not found"


def test_update_and_delete_are_admin_only(client, owner, admin, item):
    assert client.put(f"/api/inventory/{item.id}", json={"price": 250}, headers=auth_headers(owner)).status_code == 403
    r = client.put(f"/api/inventory/{item.id}", json={"price": 250}, headers=auth_headers(admin))
    assert r.json()["inventory"]["price"] == 250
    assert client.delete(f"/api/inventory/{item.id}", headers=auth_headers(admin)).status_code == 200


def test_reserve_partial_failure_keeps_successful_lines(db, item):
    spare = Inventory(name="Tape", category="plumbing", quantity=1, unit="roll", price=50, cost=20, reorder_level=0)
    db.add(spare)
    db.commit()
    result = reserve_inventory(db, [line_for(item, 4), line_for(spare, 2), {"itemId": new_id(), "name": "Ghost", "quantity": 1}])
    assert result["success"] is False
    assert len(result["failedItems"]) == 2
    assert result["successfulItems"][0]["newQuantity"] == 6
    db.refresh(spare)
    assert spare.quantity == 1


def test_restore_adds_back(db, item):
    restore_inventory(db, [line_for(item, 3)])
    db.refresh(item)
    assert item.quantity == 13


def test_update_quantity_clamps_at_zero(item):
    assert item.update_quantity(25, "subtract") == 0
    assert item.stock_status == "out_of_stock"
