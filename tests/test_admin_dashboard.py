from datetime import datetime, timezone

from localnest.stats import dashboard_overview, percent

from conftest import admin_headers, audit_actions


def test_percent_rounds_half_up():
    assert percent(2, 3) == 67
    assert percent(1, 8) == 13
    assert percent(1, 2) == 50
    assert percent(5, 0) == 0


async def _marketplace(factory):
    alice = await factory.customer()
    bob = await factory.customer()
    pro = await factory.provider(verified=True)
    await factory.provider(verification_requested=True)
    await factory.customer(is_active=False)

    cleaning = await factory.service()
    await factory.booking(alice, pro, cleaning, status="PENDING")
    await factory.booking(alice, pro, cleaning, status="CONFIRMED")
    await factory.booking(bob, pro, cleaning, status="COMPLETED")
    await factory.booking(bob, pro, cleaning, status="COMPLETED")
    await factory.booking(bob, pro, cleaning, status="CANCELLED")


async def test_dashboard_stats(client, factory):
    admin = await factory.admin()
    await _marketplace(factory)

    r = await client.get("/api/admin/dashboard/stats", headers=admin_headers(admin))

    assert r.status_code == 200
    body = r.json()
    assert set(body) == {"overview", "recent_activities", "trends"}

    overview = body["overview"]
    assert overview["total_users"] == 4
    assert overview["total_providers"] == 1
    assert overview["active_bookings"] == 2
    assert overview["completed_bookings"] == {"count": 2, "completion_rate": "67%"}
    assert overview["pending_verifications"] == 1

    registrations = body["trends"]["user_registrations"]
    assert sum(day["count"] for day in registrations) == 5
    assert all(len(day["date"]) == 10 for day in registrations)

    assert await audit_actions() == ["DASHBOARD_ACCESS"]


async def test_dashboard_recent_activities_come_from_audit_log(client, factory):
    admin = await factory.admin()
    headers = admin_headers(admin)

    await client.get("/api/admin/dashboard/stats", headers=headers)
    r = await client.get("/api/admin/dashboard/stats", headers=headers)

    activities = r.json()["recent_activities"]
    assert len(activities) == 1
    assert activities[0]["action"] == "DASHBOARD_ACCESS"
    assert activities[0]["timestamp"]
    assert activities[0]["admin"] == {"name": admin.name, "email": admin.email}


async def test_empty_dashboard(db):
    overview = await dashboard_overview(db, now=datetime.now(timezone.utc))
    assert overview == {
        "total_users": 0,
        "total_providers": 0,
        "active_bookings": 0,
        "completed_bookings": {"count": 0, "completion_rate": "0%"},
        "pending_verifications": 0,
    }


async def test_dashboard_requires_admin(client):
    r = await client.get("/api/admin/dashboard/stats")
    assert r.status_code == 401
