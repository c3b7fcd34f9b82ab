from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .schemas import page_meta


async def paginate(db: AsyncSession, stmt, page: int, limit: int, scalars: bool = True):
    """Run stmt for one page; returns (rows, meta)."""
    total = await db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery()))
    result = await db.execute(stmt.offset((page - 1) * limit).limit(limit))
    rows = result.scalars().all() if scalars else result.all()
    return rows, page_meta(total or 0, page, limit)
