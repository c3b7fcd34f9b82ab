"""
Aggregation queries behind the admin dashboard and analytics pages.

Counts that belong to one response are issued as scalar subqueries of a single
SELECT, so the database evaluates them together in one round trip.
"""
import math
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .models import (
    ACTIVE_BOOKING_STATUSES,
    CLOSED_BOOKING_STATUSES,
    Admin,
    AuditLog,
    Booking,
    Provider,
    User,
    utcnow,
)

COMPLETION_WINDOW_DAYS = 30
REGISTRATION_WINDOW_DAYS = 7
DEFAULT_TREND_DAYS = 30

_MEMBER_TYPES = ("CUSTOMER", "PROVIDER")


def _count(model, *criteria):
    return select(func.count()).select_from(model).where(*criteria).scalar_subquery()


def percent(part: int, whole: int) -> int:
    """Whole-number percentage, rounding halves up; 0 when there is nothing to divide by."""
    if whole <= 0:
        return 0
    return int(math.floor(part * 100 / whole + 0.5))


def _day(value) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    return str(value)[:10]


async def dashboard_overview(db: AsyncSession, now: datetime | None = None) -> dict:
    now = now or utcnow()
    window_start = now - timedelta(days=COMPLETION_WINDOW_DAYS)

    stmt = select(
        _count(
            User,
            User.user_type.in_(_MEMBER_TYPES),
            User.is_active.is_(True),
        ).label("total_users"),
        _count(Provider, Provider.verified.is_(True)).label("total_providers"),
        _count(Booking, Booking.status.in_(ACTIVE_BOOKING_STATUSES)).label("active_bookings"),
        _count(
            Booking,
            Booking.status == "COMPLETED",
            Booking.updated_at >= window_start,
        ).label("completed_bookings"),
        _count(
            Booking,
            Booking.status.in_(CLOSED_BOOKING_STATUSES),
            Booking.updated_at >= window_start,
        ).label("closed_bookings"),
        _count(
            Provider,
            Provider.verified.is_(False),
            Provider.verification_requested.is_(True),
        ).label("pending_verifications"),
    )
    row = (await db.execute(stmt)).one()

    return {
        "total_users": row.total_users,
        "total_providers": row.total_providers,
        "active_bookings": row.active_bookings,
        "completed_bookings": {
            "count": row.completed_bookings,
            "completion_rate": f"{percent(row.completed_bookings, row.closed_bookings)}%",
        },
        "pending_verifications": row.pending_verifications,
    }


async def registration_trend(db: AsyncSession, since: datetime) -> list[dict]:
    day = func.date(User.created_at)
    result = await db.execute(
        select(day.label("day"), func.count().label("count"))
        .where(User.created_at >= since, User.user_type.in_(_MEMBER_TYPES))
        .group_by(day)
        .order_by(day)
    )
    return [{"date": _day(r.day), "count": r.count} for r in result.all()]


def serialize_activity(entry: AuditLog) -> dict:
    admin = None
    if entry.admin is not None and entry.admin.user is not None:
        admin = {"name": entry.admin.user.name, "email": entry.admin.user.email}
    return {
        "id": entry.id,
        "action": entry.action,
        "target_type": entry.target_type,
        "target_id": entry.target_id,
        "details": entry.details,
        "timestamp": entry.created_at,
        "admin": admin,
    }


def audit_log_query():
    return select(AuditLog).options(selectinload(AuditLog.admin).selectinload(Admin.user))


async def recent_activities(db: AsyncSession, limit: int = 20) -> list[dict]:
    result = await db.execute(
        audit_log_query().order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
    )
    return [serialize_activity(a) for a in result.scalars().all()]


async def dashboard_stats(db: AsyncSession, now: datetime | None = None) -> dict:
    now = now or utcnow()
    overview = await dashboard_overview(db, now)
    activities = await recent_activities(db)
    registrations = await registration_trend(db, now - timedelta(days=REGISTRATION_WINDOW_DAYS))
    return {
        "overview": overview,
        "recent_activities": activities,
        "trends": {"user_registrations": registrations},
    }


async def analytics_overview(db: AsyncSession) -> dict:
    stmt = select(
        _count(User).label("users"),
        _count(User, User.user_type == "PROVIDER").label("providers"),
        _count(User, User.user_type == "CUSTOMER").label("customers"),
        _count(Booking).label("bookings"),
        _count(Booking, Booking.status == "COMPLETED").label("completed"),
        _count(Booking, Booking.status == "CANCELLED").label("cancelled"),
        select(func.coalesce(func.sum(Booking.total_price), 0)).scalar_subquery().label("revenue"),
    )
    row = (await db.execute(stmt)).one()

    return {
        "totals": {
            "users": row.users,
            "providers": row.providers,
            "customers": row.customers,
            "bookings": row.bookings,
        },
        "bookings": {
            "completed": row.completed,
            "cancelled": row.cancelled,
            "completion_rate": percent(row.completed, row.bookings),
        },
        "revenue": {"total": float(row.revenue or 0)},
    }


async def analytics_trends(db: AsyncSession, days: int = DEFAULT_TREND_DAYS, now: datetime | None = None) -> dict:
    since = (now or utcnow()) - timedelta(days=days)

    users = await db.execute(select(User.created_at).where(User.created_at >= since))
    bookings = await db.execute(
        select(Booking.created_at, Booking.status, Booking.total_price).where(Booking.created_at >= since)
    )

    registrations: dict[str, int] = {}
    for (created_at,) in users.all():
        k = _day(created_at)
        registrations[k] = registrations.get(k, 0) + 1

    booking_trend: dict[str, dict] = {}
    for created_at, status, total_price in bookings.all():
        k = _day(created_at)
        bucket = booking_trend.setdefault(k, {"total": 0, "completed": 0, "revenue": 0.0})
        bucket["total"] += 1
        if status == "COMPLETED":
            bucket["completed"] += 1
            bucket["revenue"] += total_price or 0

    return {
        "registrations": dict(sorted(registrations.items())),
        "bookings": dict(sorted(booking_trend.items())),
    }


async def revenue_report(db: AsyncSession, start: datetime, end: datetime) -> dict:
    criteria = (
        Booking.status == "COMPLETED",
        Booking.updated_at >= start,
        Booking.updated_at <= end,
    )
    total = await db.scalar(select(func.coalesce(func.sum(Booking.total_price), 0)).where(*criteria))
    result = await db.execute(
        select(Booking.id, Booking.total_price, Booking.updated_at)
        .where(*criteria)
        .order_by(Booking.updated_at)
    )
    items = [
        {"id": r.id, "total_price": r.total_price, "updated_at": r.updated_at}
        for r in result.all()
    ]
    return {"total": float(total or 0), "count": len(items), "items": items}
