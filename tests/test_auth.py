from localnest.models import User

from conftest import PASSWORD, auth_headers, fetch


def _registration(**overrides):
    body = {
        "first_name": "Maria",
        "last_name": "Lopez",
        "email": "maria@localnest.com",
        "password": "Secret123",
        "phone": "+15550001111",
        "user_type": "customer",
    }
    body.update(overrides)
    return body


async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": "localnest-api", "events_enabled": False}


async def test_register_customer(client):
    r = await client.post("/api/auth/register", json=_registration())
    assert r.status_code == 201
    body = r.json()
    assert body["message"] == "User registered successfully"
    assert body["user"]["user_type"] == "CUSTOMER"
    assert body["user"]["name"] == "Maria Lopez"
    assert "password" not in body["user"]
    assert body["token"]

    profile = await client.get("/api/auth/profile", headers={"Authorization": f"Bearer {body['token']}"})
    assert profile.status_code == 200
    assert profile.json()["customer"]["bookings"] == []
    assert profile.json()["provider"] is None


async def test_register_provider_creates_provider_row(client):
    r = await client.post(
        "/api/auth/register",
        json=_registration(email="pro@localnest.com", user_type="PROVIDER"),
    )
    assert r.status_code == 201

    token = r.json()["token"]
    profile = await client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})
    provider = profile.json()["provider"]
    assert provider["verified"] is False
    assert provider["services"] == []


async def test_register_duplicate_email(client, factory):
    await factory.customer(email="maria@localnest.com")
    r = await client.post("/api/auth/register", json=_registration())
    assert r.status_code == 400
    assert r.json()["detail"] == "User already exists with this email"


async def test_register_weak_password(client):
    r = await client.post("/api/auth/register", json=_registration(password="alllowercase1"))
    assert r.status_code == 400
    assert r.json()["detail"] == "Validation failed"
    assert r.json()["error"] == "VALIDATION_ERROR"


async def test_register_cannot_self_register_as_admin(client):
    r = await client.post("/api/auth/register", json=_registration(user_type="admin"))
    assert r.status_code == 400


async def test_login(client, factory):
    user = await factory.customer()
    r = await client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD})
    assert r.status_code == 200
    assert r.json()["user"]["id"] == user.id
    assert r.json()["token"]


async def test_login_wrong_password(client, factory):
    user = await factory.customer()
    r = await client.post("/api/auth/login", json={"email": user.email, "password": "Wrong1234"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid email or password"


async def test_login_deactivated(client, factory):
    user = await factory.customer(is_active=False)
    r = await client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD})
    assert r.status_code == 401
    assert r.json()["detail"] == "Account is deactivated"


async def test_profile_requires_token(client):
    r = await client.get("/api/auth/profile")
    assert r.status_code == 401
    assert r.json()["detail"] == "Missing Bearer token"


async def test_profile_rejects_garbage_token(client):
    r = await client.get("/api/auth/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid or expired token"


async def test_update_profile_for_provider(client, factory):
    user = await factory.provider()
    r = await client.put(
        "/api/auth/profile",
        json={"first_name": "Sarah", "location": "Uptown", "hourly_rate": 40},
        headers=auth_headers(user),
    )
    assert r.status_code == 200
    body = r.json()["user"]
    assert body["first_name"] == "Sarah"
    assert body["provider"]["location"] == "Uptown"
    assert body["provider"]["hourly_rate"] == 40

    stored = await fetch(User, user.id)
    assert stored.first_name == "Sarah"


async def test_update_profile_ignores_provider_fields_for_customers(client, factory):
    user = await factory.customer()
    r = await client.put(
        "/api/auth/profile",
        json={"phone": "+15559998888", "location": "Uptown"},
        headers=auth_headers(user),
    )
    assert r.status_code == 200
    assert r.json()["user"]["phone"] == "+15559998888"
    assert r.json()["user"]["provider"] is None
