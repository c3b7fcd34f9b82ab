from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..db import get_db
from ..events import emit
from ..models import Booking, Customer, Provider, Service
from ..rbac import require_user_type
from ..schemas import BookingOut, ProviderCreate, ProviderOut, ProviderUpdate, ServiceOut, UserOut
from ..security import get_current_user
from ..verification import VerificationError, request_verification, verification_state

router = APIRouter(prefix="/api/providers", tags=["Providers"])

_DETAIL_OPTIONS = (
    selectinload(Provider.user),
    selectinload(Provider.services),
    selectinload(Provider.bookings).selectinload(Booking.service),
    selectinload(Provider.bookings).selectinload(Booking.customer).selectinload(Customer.user),
)


def provider_body(provider: Provider, with_bookings: bool = False) -> dict:
    body = ProviderOut.model_validate(provider).model_dump()
    body["verification_state"] = verification_state(provider)
    body["user"] = UserOut.model_validate(provider.user).model_dump()
    body["services"] = [ServiceOut.model_validate(s).model_dump() for s in provider.services]
    if with_bookings:
        body["bookings"] = [
            {
                **BookingOut.model_validate(b).model_dump(),
                "service": ServiceOut.model_validate(b.service).model_dump(),
                "customer": {"id": b.customer.id, "name": b.customer.user.name},
            }
            for b in provider.bookings
        ]
    return body


async def load_provider(db: AsyncSession, provider_id: int, *options) -> Provider | None:
    result = await db.execute(
        select(Provider)
        .where(Provider.id == provider_id)
        .options(*(options or (selectinload(Provider.user), selectinload(Provider.services))))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def load_owned_provider(db: AsyncSession, provider_id: int, user_id: int, forbidden: str) -> Provider:
    provider = await load_provider(db, provider_id)
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")
    if provider.user_id != user_id:
        raise HTTPException(status_code=403, detail=forbidden)
    return provider


@router.get("")
async def list_providers(verified: Optional[bool] = None, db: AsyncSession = Depends(get_db)):
    stmt = (
        select(Provider)
        .options(selectinload(Provider.user), selectinload(Provider.services))
        .order_by(Provider.id)
    )
    if verified is not None:
        stmt = stmt.where(Provider.verified.is_(verified))
    result = await db.execute(stmt)
    return [provider_body(p) for p in result.scalars().all()]


@router.get("/service/{service_id}")
async def list_providers_by_service(service_id: int, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Provider)
        .where(Provider.services.any(Service.id == service_id))
        .options(selectinload(Provider.user), selectinload(Provider.services))
        .order_by(Provider.id)
    )
    return [provider_body(p) for p in result.scalars().all()]


@router.get("/user/{user_id}")
async def get_provider_by_user(user_id: int, current=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Provider).where(Provider.user_id == user_id).options(*_DETAIL_OPTIONS))
    provider = result.scalar_one_or_none()
    if not provider:
        raise HTTPException(status_code=404, detail="Provider profile not found")
    return provider_body(provider, with_bookings=True)


@router.get("/{provider_id}")
async def get_provider(provider_id: int, db: AsyncSession = Depends(get_db)):
    provider = await load_provider(db, provider_id, *_DETAIL_OPTIONS)
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")
    return provider_body(provider, with_bookings=True)


@router.post("", status_code=201)
async def create_provider(data: ProviderCreate, current=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    require_user_type(current, ["PROVIDER"])

    result = await db.execute(select(Provider).where(Provider.user_id == current["id"]))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Provider profile already exists")

    services = []
    if data.service_ids:
        res = await db.execute(select(Service).where(Service.id.in_(data.service_ids)))
        services = list(res.scalars().all())

    provider = Provider(
        user_id=current["id"],
        experience=data.experience,
        location=data.location,
        hourly_rate=data.hourly_rate,
        bio=data.bio,
        services=services,
    )
    db.add(provider)
    await db.commit()

    provider = await load_provider(db, provider.id)
    return provider_body(provider)


@router.put("/{provider_id}")
async def update_provider(
    provider_id: int,
    data: ProviderUpdate,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    provider = await load_owned_provider(db, provider_id, current["id"], "Not authorized to update this provider")

    for key, value in data.model_dump(exclude_none=True).items():
        setattr(provider, key, value)

    await db.commit()

    provider = await load_provider(db, provider_id)
    return provider_body(provider)


@router.post("/{provider_id}/verify")
async def request_provider_verification(
    provider_id: int,
    background_tasks: BackgroundTasks,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    provider = await load_owned_provider(db, provider_id, current["id"], "Not authorized")

    try:
        request_verification(provider)
    except VerificationError as e:
        raise HTTPException(status_code=400, detail=e.message)

    await db.commit()

    background_tasks.add_task(
        emit,
        "provider.verification_requested",
        {"provider_id": provider.id, "user_id": provider.user_id},
    )

    provider = await load_provider(db, provider_id)
    return {"message": "Verification requested successfully", "provider": provider_body(provider)}
