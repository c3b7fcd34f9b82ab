from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..audit import record_admin_action
from ..db import get_db
from ..models import Admin, Provider, Service, provider_services
from ..schemas import AttachService, ServiceCreate, ServiceOut
from ..security import get_current_admin, get_current_user
from .providers import load_owned_provider, load_provider, provider_body

router = APIRouter(prefix="/api/services", tags=["Services"])


def provider_count_query():
    count = func.count(provider_services.c.provider_id).label("provider_count")
    return (
        select(Service, count)
        .outerjoin(provider_services, provider_services.c.service_id == Service.id)
        .group_by(Service.id)
    )


def service_body(service: Service, **extra) -> dict:
    return {**ServiceOut.model_validate(service).model_dump(), **extra}


def build_service(data: ServiceCreate) -> Service:
    if not data.name or not data.description or not data.category or data.average_price is None:
        raise HTTPException(status_code=400, detail="All fields are required")
    return Service(
        name=data.name,
        description=data.description,
        category=data.category,
        average_price=float(data.average_price),
    )


async def create_service_as_admin(
    data: ServiceCreate,
    background_tasks: BackgroundTasks,
    admin: Admin,
    db: AsyncSession,
) -> dict:
    service = build_service(data)
    db.add(service)
    await db.commit()

    record_admin_action(
        background_tasks,
        "SERVICE_CREATED",
        "SERVICE",
        admin_id=admin.id,
        target_id=service.id,
        details={"name": service.name},
    )
    return service_body(service)


@router.get("")
async def list_services(db: AsyncSession = Depends(get_db)):
    result = await db.execute(provider_count_query().order_by(Service.id))
    return [service_body(s, provider_count=n) for s, n in result.all()]


@router.get("/provider/{provider_id}")
async def list_provider_services(provider_id: int, current=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    provider = await load_provider(db, provider_id)
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")
    return [service_body(s) for s in provider.services]


@router.post("/provider/{provider_id}")
async def attach_service(
    provider_id: int,
    data: AttachService,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    provider = await load_owned_provider(db, provider_id, current["id"], "Not authorized")

    service = await db.get(Service, data.service_id)
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")

    if service not in provider.services:
        provider.services.append(service)
        await db.commit()

    provider = await load_provider(db, provider_id)
    return [service_body(s) for s in provider.services]


@router.delete("/provider/{provider_id}/{service_id}")
async def detach_service(
    provider_id: int,
    service_id: int,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    provider = await load_owned_provider(db, provider_id, current["id"], "Not authorized")

    remaining = [s for s in provider.services if s.id != service_id]
    if len(remaining) != len(provider.services):
        provider.services = remaining
        await db.commit()

    provider = await load_provider(db, provider_id)
    return [service_body(s) for s in provider.services]


@router.get("/{service_id}")
async def get_service(service_id: int, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Service)
        .where(Service.id == service_id)
        .options(
            selectinload(Service.providers).selectinload(Provider.user),
            selectinload(Service.providers).selectinload(Provider.services),
        )
    )
    service = result.scalar_one_or_none()
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")

    providers = [provider_body(p) for p in service.providers]

    return service_body(service, providers=providers, provider_count=len(service.providers))


@router.post("", status_code=201)
async def create_service(
    data: ServiceCreate,
    background_tasks: BackgroundTasks,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    return await create_service_as_admin(data, background_tasks, admin, db)
