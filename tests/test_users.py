from .conftest import auth_headers


ADDRESS = {"address": "12 Temple Road", "city": "Colombo", "zipCode": "00300", "isDefault": True}


def test_admin_lists_users_by_role(client, admin, owner, technician):
    r = client.get("/api/users", params={"role": "technician"}, headers=auth_headers(admin))
    assert r.status_code == 200
    assert [u["username"] for u in r.json()["users"]] == ["tech_one"]
    assert r.json()["pagination"]["totalUsers"] == 1
    assert client.get("/api/users", headers=auth_headers(owner)).status_code == 403


def test_profile_update_rejects_taken_username(client, owner, other_owner):
    h = auth_headers(owner)
    r = client.put("/api/users/profile", json={"username": other_owner.username}, headers=h)
    assert r.status_code == 400
    ok = client.put("/api/users/profile", json={"firstName": "Nimal", "mobile": "0712345678"}, headers=h)
    assert ok.status_code == 200
    assert ok.json()["user"]["firstName"] == "Nimal"
    assert ok.json()["user"]["mobile"] == "+94712345678"


def test_single_default_address(client, owner):
    h = auth_headers(owner)
    first = client.post("/api/users/addresses", json=ADDRESS, headers=h).json()["address"]
    assert first["country"] == "India"
    second = client.post("/api/users/addresses", json={**ADDRESS, "city": "Kandy"}, headers=h).json()["address"]

    addresses = client.get("/api/users/addresses", headers=h).json()["addresses"]
    defaults = [a["id"] for a in addresses if a["isDefault"]]
    assert defaults == [second["id"]]

    client.put(f"/api/users/addresses/{first['id']}", json=ADDRESS, headers=h)
    addresses = client.get("/api/users/addresses", headers=h).json()["addresses"]
    assert [a["id"] for a in addresses if a["isDefault"]] == [first["id"]]


def test_missing_address(client, owner):
    h = auth_headers(owner)
    assert client.delete("/api/users/addresses/nope", headers=h).status_code == 404
    assert client.put("/api/users/addresses/nope", json=ADDRESS, headers=h).status_code == 404
