from localnest.security import decode_token, issue_access_token, issue_refresh_token

from conftest import PASSWORD, admin_headers, audit_actions, auth_headers


async def _login(client, email, password=PASSWORD):
    return await client.post("/api/admin/login", json={"email": email, "password": password})


async def test_admin_login(client, factory):
    admin = await factory.admin()

    r = await _login(client, admin.email)

    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Admin login successful"
    assert body["user"]["user_type"] == "ADMIN"
    assert body["user"]["admin"]["id"] == admin.admin.id
    assert body["tokens"]["expires_in"] == 28800
    assert body["access_token"] == body["tokens"]["access"]

    claims = decode_token(body["tokens"]["access"])
    assert claims["exp"] - claims["iat"] == 28800
    assert claims["user_type"] == "ADMIN"
    assert decode_token(body["tokens"]["refresh"])["scope"] == "refresh"

    assert await audit_actions() == ["LOGIN_SUCCESS"]


async def test_admin_login_missing_fields(client):
    r = await client.post("/api/admin/login", json={"email": "admin@localnest.com"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Email and password are required"


async def test_admin_login_wrong_password_is_audited(client, factory):
    admin = await factory.admin()

    r = await _login(client, admin.email, "Wrong1234")

    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid admin credentials"
    assert await audit_actions() == ["LOGIN_ATTEMPT"]


async def test_admin_login_rejects_non_admins(client, factory):
    customer = await factory.customer()
    r = await _login(client, customer.email)
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid admin credentials"


async def test_admin_login_unknown_email(client):
    r = await _login(client, "nobody@localnest.com")
    assert r.status_code == 401


async def test_admin_login_deactivated(client, factory):
    admin = await factory.admin(is_active=False)
    r = await _login(client, admin.email)
    assert r.status_code == 403
    assert r.json()["detail"] == "Admin account is deactivated"


async def test_refresh_token(client, factory):
    admin = await factory.admin()

    r = await client.post("/api/admin/refresh-token", json={"refresh_token": issue_refresh_token(admin)})

    assert r.status_code == 200
    body = r.json()
    assert body["expires_in"] == 28800
    claims = decode_token(body["access_token"])
    assert claims["sub"] == str(admin.id)
    assert claims["scope"] == "access"


async def test_refresh_token_missing(client):
    r = await client.post("/api/admin/refresh-token", json={})
    assert r.status_code == 400
    assert r.json()["detail"] == "Refresh token is required"


async def test_refresh_token_rejects_access_tokens(client, factory):
    admin = await factory.admin()
    r = await client.post("/api/admin/refresh-token", json={"refresh_token": issue_access_token(admin)})
    assert r.status_code == 403
    assert r.json()["detail"] == "Invalid refresh token"


async def test_refresh_token_rejects_garbage(client):
    r = await client.post("/api/admin/refresh-token", json={"refresh_token": "abc.def.ghi"})
    assert r.status_code == 403
    assert r.json()["detail"] == "Invalid refresh token"


async def test_refresh_token_for_non_admin(client, factory):
    customer = await factory.customer()
    r = await client.post("/api/admin/refresh-token", json={"refresh_token": issue_refresh_token(customer)})
    assert r.status_code == 403
    assert r.json()["detail"] == "Invalid admin account"


async def test_admin_profile(client, factory):
    admin = await factory.admin()
    r = await client.get("/api/admin/profile", headers=admin_headers(admin))
    assert r.status_code == 200
    assert r.json()["email"] == admin.email
    assert r.json()["admin"]["id"] == admin.admin.id


async def test_admin_profile_without_token(client):
    r = await client.get("/api/admin/profile")
    assert r.status_code == 401
    assert r.json()["detail"] == "Admin access token required"


async def test_admin_profile_with_customer_token(client, factory):
    customer = await factory.customer()
    r = await client.get("/api/admin/profile", headers=auth_headers(customer))
    assert r.status_code == 403
    assert r.json()["detail"] == "Admin privileges required"


async def test_admin_profile_with_expired_token(client, factory):
    admin = await factory.admin()
    token = issue_access_token(admin, ttl=-60)
    r = await client.get("/api/admin/profile", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Admin session expired"


async def test_admin_profile_with_refresh_token(client, factory):
    admin = await factory.admin()
    token = issue_refresh_token(admin)
    r = await client.get("/api/admin/profile", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid admin token"


async def test_deactivated_admin_session(client, factory):
    admin = await factory.admin(is_active=False)
    r = await client.get("/api/admin/profile", headers=admin_headers(admin))
    assert r.status_code == 403
    assert r.json()["detail"] == "Invalid admin session"


async def test_admin_logout(client, factory):
    admin = await factory.admin()
    r = await client.post("/api/admin/logout", headers=admin_headers(admin))
    assert r.status_code == 200
    assert r.json()["message"] == "Successfully logged out"
    assert await audit_actions() == ["LOGOUT"]
