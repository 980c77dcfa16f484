from .conftest import auth_headers


REGISTER = {
    "username": "nimal_p",
    "email": "Nimal@Example.com",
    "password": "secret123",
    "mobile": "0771234567",
}


def test_register_returns_token_and_normalizes_fields(client):
    r = client.post("/api/auth/register", json=REGISTER)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["token"]
    assert body["user"]["email"] == "nimal@example.com"
    assert body["user"]["mobile"] == "+94771234567"
    assert body["user"]["role"] == "house_owner"
    assert body["user"]["isEmailVerified"] is False


def test_register_duplicate_is_rejected(client):
    assert client.post("/api/auth/register", json=REGISTER).status_code == 201
    r = client.post("/api/auth/register", json={**REGISTER, "username": "someone_else"})
    assert r.status_code == 400
    assert r.json()["detail"] == "User with this email, username, or mobile number already exists"


def test_register_rejects_bad_mobile(client):
    r = client.post("/api/auth/register", json={**REGISTER, "mobile": "12345"})
    assert r.status_code == 422


def test_login_and_me(client, owner):
    r = client.post("/api/auth/login", json={"email": owner.email, "password": "secret123"})
    assert r.status_code == 200
    token = r.json()["token"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["user"]["username"] == owner.username


def test_login_wrong_password(client, owner):
    r = client.post("/api/auth/login", json={"email": owner.email, "password": "nope1234"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid credentials"


def test_login_deactivated_account(client, db, owner):
    owner.is_active = False
    db.commit()
    r = client.post("/api/auth/login", json={"email": owner.email, "password": "secret123"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Account is deactivated"


def test_me_requires_token(client):
    assert client.get("/api/auth/me").status_code == 401
    r = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_password_reset_flow_without_mail_transport(client, owner):
    r = client.post("/api/auth/forgot-password", json={"email": owner.email})
    assert r.status_code == 200

    code = client.get(f"/api/auth/get-reset-code/{owner.email}").json()["resetCode"]
    assert len(code) == 6

    bad = client.post("/api/auth/verify-reset-code", json={"email": owner.email, "code": "000000" if code != "000000" else "111111"})
    assert bad.status_code == 400

    ok = client.post("/api/auth/verify-reset-code", json={"email": owner.email, "code": code})
    assert ok.status_code == 200

    reset = client.post("/api/auth/reset-password", json={"email": owner.email, "code": code, "password": "newpass99"})
    assert reset.status_code == 200
    assert client.post("/api/auth/login", json={"email": owner.email, "password": "newpass99"}).status_code == 200
    # Code is single use
    assert client.get(f"/api/auth/get-reset-code/{owner.email}").status_code == 404


def test_forgot_password_unknown_email_is_generic(client):
    r = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert r.status_code == 200
    assert r.json()["success"] is True


def test_change_password(client, owner):
    h = auth_headers(owner)
    wrong = client.put("/api/auth/change-password", json={"currentPassword": "bad", "newPassword": "another1"}, headers=h)
    assert wrong.status_code == 400
    ok = client.put("/api/auth/change-password", json={"currentPassword": "secret123", "newPassword": "another1"}, headers=h)
    assert ok.status_code == 200
    assert client.post("/api/auth/login", json={"email": owner.email, "password": "another1"}).status_code == 200


def test_verify_email_with_issued_code(client):
    body = client.post("/api/auth/register", json=REGISTER).json()
    h = {"Authorization": f"Bearer {body['token']}"}
    wrong = client.post("/api/auth/verify-email", json={"verificationCode": "abcdef"}, headers=h)
    assert wrong.status_code == 400

    from servicehub.models.models import User
    from .conftest import TestingSessionLocal

    with TestingSessionLocal() as s:
        code = s.query(User).filter(User.email == "nimal@example.com").one().email_verification_code
    ok = client.post("/api/auth/verify-email", json={"verificationCode": code}, headers=h)
    assert ok.status_code == 200
    assert ok.json()["user"]["isEmailVerified"] is True


def test_google_login_unconfigured(client):
    r = client.get("/api/auth/google", follow_redirects=False)
    assert r.status_code == 503
