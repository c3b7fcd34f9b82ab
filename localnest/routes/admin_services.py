from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..audit import record_admin_action
from ..db import get_db
from ..models import Admin, Booking, Service, provider_services
from ..pagination import paginate
from ..schemas import CategoryRename, ServiceCreate, ServiceUpdate
from ..security import get_current_admin
from .services import create_service_as_admin, service_body

router = APIRouter(prefix="/api/admin/services", tags=["Admin Services"])

_SORTABLE = {
    "name": Service.name,
    "category": Service.category,
    "average_price": Service.average_price,
    "created_at": Service.created_at,
}


def _counted_services():
    provider_count = (
        select(func.count())
        .select_from(provider_services)
        .where(provider_services.c.service_id == Service.id)
        .scalar_subquery()
        .label("provider_count")
    )
    booking_count = (
        select(func.count())
        .select_from(Booking)
        .where(Booking.service_id == Service.id)
        .scalar_subquery()
        .label("booking_count")
    )
    return select(Service, provider_count, booking_count)


@router.get("")
async def list_services(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    category: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    column = _SORTABLE.get(sort_by, Service.created_at)
    order = column.asc() if sort_order.lower() == "asc" else column.desc()

    stmt = _counted_services().order_by(order, Service.id.asc())
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Service.name.ilike(pattern), Service.description.ilike(pattern)))
    if category:
        stmt = stmt.where(Service.category == category)

    rows, meta = await paginate(db, stmt, page, limit, scalars=False)
    return {
        "data": [
            service_body(s, provider_count=providers, booking_count=bookings)
            for s, providers, bookings in rows
        ],
        "meta": meta,
    }


@router.post("", status_code=201)
async def create_service(
    data: ServiceCreate,
    background_tasks: BackgroundTasks,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    return await create_service_as_admin(data, background_tasks, admin, db)


@router.get("/categories")
async def list_categories(admin: Admin = Depends(get_current_admin), db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Service.category).distinct().order_by(Service.category))
    return [c for c in result.scalars().all() if c]


@router.put("/categories/rename")
async def rename_category(
    data: CategoryRename,
    background_tasks: BackgroundTasks,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    if not data.from_ or not data.to:
        raise HTTPException(status_code=400, detail="from and to are required")

    result = await db.execute(
        update(Service).where(Service.category == data.from_).values(category=data.to)
    )
    await db.commit()

    record_admin_action(
        background_tasks,
        "CATEGORY_RENAMED",
        "SERVICE",
        admin_id=admin.id,
        details={"from": data.from_, "to": data.to, "updated": result.rowcount},
    )
    return {"message": "Category renamed", "updated": result.rowcount}


@router.put("/{service_id}")
async def update_service(
    service_id: int,
    data: ServiceUpdate,
    background_tasks: BackgroundTasks,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    service = await db.get(Service, service_id)
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")

    fields = data.model_dump(exclude_none=True)
    for key, value in fields.items():
        setattr(service, key, value)
    await db.commit()

    record_admin_action(
        background_tasks,
        "SERVICE_UPDATED",
        "SERVICE",
        admin_id=admin.id,
        target_id=service.id,
        details={"fields": sorted(fields)},
    )
    return {"message": "Service updated successfully", "service": service_body(service)}


@router.delete("/{service_id}")
async def delete_service(
    service_id: int,
    background_tasks: BackgroundTasks,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    service = await db.get(Service, service_id)
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")

    bookings = await db.scalar(
        select(func.count()).select_from(Booking).where(Booking.service_id == service_id)
    )
    if bookings:
        raise HTTPException(status_code=409, detail="Cannot delete service with existing bookings")

    name = service.name
    await db.execute(provider_services.delete().where(provider_services.c.service_id == service_id))
    await db.execute(delete(Service).where(Service.id == service_id))
    await db.commit()

    record_admin_action(
        background_tasks,
        "SERVICE_DELETED",
        "SERVICE",
        admin_id=admin.id,
        target_id=service_id,
        details={"name": name},
    )
    return {"message": "Service deleted successfully"}
