from datetime import datetime, timedelta, timezone
from typing import Optional

from dateutil import parser as dateparser
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..models import Admin, utcnow
from ..security import get_current_admin
from ..stats import DEFAULT_TREND_DAYS, analytics_overview, analytics_trends, revenue_report

router = APIRouter(prefix="/api/admin/analytics", tags=["Admin Analytics"])

REVENUE_WINDOW_DAYS = 30


def parse_bound(value: Optional[str], default: datetime) -> datetime:
    """ISO-8601 query value to an aware UTC datetime; naive input is taken as UTC."""
    if not value:
        return default
    try:
        parsed = dateparser.isoparse(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@router.get("/overview")
async def get_overview(admin: Admin = Depends(get_current_admin), db: AsyncSession = Depends(get_db)):
    return await analytics_overview(db)


@router.get("/trends")
async def get_trends(
    days: int = Query(DEFAULT_TREND_DAYS, ge=1, le=365),
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    return await analytics_trends(db, days)


@router.get("/revenue")
async def get_revenue(
    start: Optional[str] = Query(None, alias="from"),
    end: Optional[str] = Query(None, alias="to"),
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    start_at = parse_bound(start, now - timedelta(days=REVENUE_WINDOW_DAYS))
    end_at = parse_bound(end, now)
    if start_at > end_at:
        raise HTTPException(status_code=400, detail="from must be before to")

    report = await revenue_report(db, start_at, end_at)
    return {"from": start_at, "to": end_at, **report}
