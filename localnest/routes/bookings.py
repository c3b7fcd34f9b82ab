from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..db import get_db
from ..events import emit
from ..models import BOOKING_STATUSES, CLOSED_BOOKING_STATUSES, Booking, Customer, Provider
from ..rbac import require_user_type
from ..schemas import BookingOut, CreateBooking, ServiceOut, UpdateBookingStatus
from ..security import get_current_user

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])

_BOOKING_OPTIONS = (
    selectinload(Booking.service),
    selectinload(Booking.provider).selectinload(Provider.user),
    selectinload(Booking.customer).selectinload(Customer.user),
)


def booking_body(booking: Booking) -> dict:
    return {
        **BookingOut.model_validate(booking).model_dump(),
        "service": ServiceOut.model_validate(booking.service).model_dump(),
        "provider": {
            "id": booking.provider.id,
            "name": booking.provider.user.name,
            "phone": booking.provider.user.phone,
        },
        "customer": {
            "id": booking.customer.id,
            "name": booking.customer.user.name,
            "email": booking.customer.user.email,
        },
    }


async def _load_booking(db: AsyncSession, booking_id: int) -> Booking | None:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .options(*_BOOKING_OPTIONS)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _party_ids(db: AsyncSession, user_id: int) -> tuple[int | None, int | None]:
    customer_id = await db.scalar(select(Customer.id).where(Customer.user_id == user_id))
    provider_id = await db.scalar(select(Provider.id).where(Provider.user_id == user_id))
    return customer_id, provider_id


async def _ensure_party(db: AsyncSession, booking: Booking, current: dict):
    if current.get("user_type") == "ADMIN":
        return
    customer_id, provider_id = await _party_ids(db, current["id"])
    if booking.customer_id != customer_id and booking.provider_id != provider_id:
        raise HTTPException(status_code=403, detail="Not authorized to access this booking")


@router.post("", status_code=201)
async def create_booking(
    data: CreateBooking,
    background_tasks: BackgroundTasks,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    require_user_type(current, ["CUSTOMER"])

    customer_id, _ = await _party_ids(db, current["id"])
    if customer_id is None:
        raise HTTPException(status_code=404, detail="Customer profile not found")

    provider = await db.execute(
        select(Provider).where(Provider.id == data.provider_id).options(selectinload(Provider.services))
    )
    provider = provider.scalar_one_or_none()
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")

    service = next((s for s in provider.services if s.id == data.service_id), None)
    if service is None:
        raise HTTPException(status_code=404, detail="Service not found for this provider")

    booking = Booking(
        customer_id=customer_id,
        provider_id=provider.id,
        service_id=service.id,
        date=data.date,
        time=data.time,
        notes=data.notes,
        status="PENDING",
        total_price=data.total_price if data.total_price is not None else service.average_price,
    )
    db.add(booking)
    await db.commit()

    background_tasks.add_task(
        emit,
        "booking.created",
        {
            "booking_id": booking.id,
            "customer_id": customer_id,
            "provider_id": provider.id,
            "service_id": service.id,
            "date": data.date.isoformat(),
        },
    )

    booking = await _load_booking(db, booking.id)
    return booking_body(booking)


@router.get("")
async def list_bookings(current=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    stmt = select(Booking).options(*_BOOKING_OPTIONS).order_by(Booking.created_at.desc(), Booking.id.desc())

    if current.get("user_type") != "ADMIN":
        customer_id, provider_id = await _party_ids(db, current["id"])
        stmt = stmt.where(or_(Booking.customer_id == customer_id, Booking.provider_id == provider_id))

    result = await db.execute(stmt)
    return [booking_body(b) for b in result.scalars().all()]


@router.get("/{booking_id}")
async def get_booking(booking_id: int, current=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    booking = await _load_booking(db, booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")

    await _ensure_party(db, booking, current)
    return booking_body(booking)


@router.put("/{booking_id}/status")
async def update_booking_status(
    booking_id: int,
    data: UpdateBookingStatus,
    background_tasks: BackgroundTasks,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    status = (data.status or "").strip().upper()
    if status not in BOOKING_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid booking status")

    booking = await _load_booking(db, booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")

    await _ensure_party(db, booking, current)

    if booking.status in CLOSED_BOOKING_STATUSES:
        raise HTTPException(status_code=409, detail=f"Booking is already {booking.status}")

    previous = booking.status
    booking.status = status
    await db.commit()

    background_tasks.add_task(
        emit,
        "booking.status_changed",
        {"booking_id": booking.id, "from": previous, "to": status},
    )

    booking = await _load_booking(db, booking_id)
    return booking_body(booking)
