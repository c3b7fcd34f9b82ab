from localnest.models import Booking, User

from conftest import admin_headers, audit_actions, fetch


async def test_list_users_only_active(client, factory):
    admin = await factory.admin()
    active = await factory.customer()
    await factory.customer(is_active=False)

    r = await client.get("/api/admin/users", headers=admin_headers(admin))

    assert r.status_code == 200
    ids = {u["id"] for u in r.json()["data"]}
    assert active.id in ids
    assert len(ids) == 2  # the admin and the active customer
    assert r.json()["meta"]["total"] == 2


async def test_list_users_filters(client, factory):
    admin = await factory.admin()
    await factory.customer(first_name="Maria")
    pro = await factory.provider(first_name="Sarah")

    r = await client.get("/api/admin/users", params={"user_type": "provider"}, headers=admin_headers(admin))
    assert [u["id"] for u in r.json()["data"]] == [pro.id]

    r = await client.get("/api/admin/users", params={"search": "maria"}, headers=admin_headers(admin))
    assert [u["first_name"] for u in r.json()["data"]] == ["Maria"]

    r = await client.get("/api/admin/users", params={"search": "Sarah Provider"}, headers=admin_headers(admin))
    assert [u["id"] for u in r.json()["data"]] == [pro.id]


async def test_list_users_limit_bounds(client, factory):
    admin = await factory.admin()
    r = await client.get("/api/admin/users", params={"limit": 500}, headers=admin_headers(admin))
    assert r.status_code == 400


async def test_user_detail_metadata(client, factory):
    admin = await factory.admin()
    customer = await factory.customer()
    pro = await factory.provider(verified=True)
    service = await factory.service()
    await factory.offer(pro, service)
    await factory.booking(customer, pro, service)

    r = await client.get(f"/api/admin/users/{customer.id}", headers=admin_headers(admin))
    assert r.json()["metadata"] == {"type": "customer", "customer_id": customer.customer.id, "total_bookings": 1}

    r = await client.get(f"/api/admin/users/{pro.id}", headers=admin_headers(admin))
    meta = r.json()["metadata"]
    assert meta["type"] == "provider"
    assert meta["verified"] is True
    assert meta["verification_state"] == "verified"
    assert meta["total_services"] == 1
    assert meta["total_bookings"] == 1

    r = await client.get(f"/api/admin/users/{admin.id}", headers=admin_headers(admin))
    assert r.json()["metadata"]["type"] == "admin"


async def test_user_detail_not_found(client, factory):
    admin = await factory.admin()
    r = await client.get("/api/admin/users/9999", headers=admin_headers(admin))
    assert r.status_code == 404
    assert r.json()["detail"] == "User not found"


async def test_update_user(client, factory):
    admin = await factory.admin()
    customer = await factory.customer()

    r = await client.put(
        f"/api/admin/users/{customer.id}",
        json={"first_name": "Renamed", "email": "renamed@localnest.com"},
        headers=admin_headers(admin),
    )

    assert r.status_code == 200
    assert r.json()["message"] == "User updated successfully"
    assert r.json()["user"]["email"] == "renamed@localnest.com"
    assert (await fetch(User, customer.id)).first_name == "Renamed"
    assert await audit_actions() == ["USER_UPDATED"]


async def test_update_user_duplicate_email(client, factory):
    admin = await factory.admin()
    first = await factory.customer()
    second = await factory.customer()

    r = await client.put(
        f"/api/admin/users/{second.id}",
        json={"email": first.email},
        headers=admin_headers(admin),
    )
    assert r.status_code == 409
    assert r.json()["error"] == "DUPLICATE_ENTRY"


async def test_admin_users_are_protected(client, factory):
    admin = await factory.admin()
    other = await factory.admin()
    headers = admin_headers(admin)

    r = await client.put(f"/api/admin/users/{other.id}", json={"first_name": "X"}, headers=headers)
    assert (r.status_code, r.json()["detail"]) == (403, "Cannot update admin user")

    r = await client.put(f"/api/admin/users/{other.id}/status", json={"is_active": False}, headers=headers)
    assert (r.status_code, r.json()["detail"]) == (403, "Cannot modify admin user status")

    r = await client.delete(f"/api/admin/users/{other.id}", headers=headers)
    assert (r.status_code, r.json()["detail"]) == (403, "Cannot delete admin user")


async def test_deactivate_and_reactivate(client, factory):
    admin = await factory.admin()
    customer = await factory.customer()
    headers = admin_headers(admin)

    r = await client.put(
        f"/api/admin/users/{customer.id}/status",
        json={"is_active": False, "reason": "Spam bookings"},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["message"] == "User deactivated successfully"
    assert r.json()["user"]["is_active"] is False

    r = await client.put(f"/api/admin/users/{customer.id}/status", json={"is_active": False}, headers=headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "User is already inactive"

    r = await client.put(f"/api/admin/users/{customer.id}/status", json={"is_active": True}, headers=headers)
    assert r.json()["message"] == "User activated successfully"

    assert await audit_actions() == ["USER_DEACTIVATED", "USER_ACTIVATED"]


async def test_activate_active_user(client, factory):
    admin = await factory.admin()
    customer = await factory.customer()
    r = await client.put(
        f"/api/admin/users/{customer.id}/status",
        json={"is_active": True},
        headers=admin_headers(admin),
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "User is already active"


async def test_delete_user_removes_bookings(client, factory):
    admin = await factory.admin()
    customer = await factory.customer()
    pro = await factory.provider()
    service = await factory.service()
    booking = await factory.booking(customer, pro, service)

    r = await client.delete(f"/api/admin/users/{customer.id}", headers=admin_headers(admin))

    assert r.status_code == 200
    assert r.json()["message"] == "User deleted successfully"
    assert await fetch(User, customer.id) is None
    assert await fetch(Booking, booking.id) is None
    assert await audit_actions() == ["USER_DELETED"]


async def test_delete_provider(client, factory):
    admin = await factory.admin()
    pro = await factory.provider()
    service = await factory.service()
    await factory.offer(pro, service)

    r = await client.delete(f"/api/admin/users/{pro.id}", headers=admin_headers(admin))
    assert r.status_code == 200

    r = await client.get(f"/api/services/{service.id}")
    assert r.json()["provider_count"] == 0
