from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..db import get_db
from ..events import emit
from ..models import Booking, Customer, Provider, User
from ..schemas import (
    BookingOut,
    Login,
    ProfileUpdate,
    ProviderOut,
    Register,
    ServiceOut,
    UserOut,
)
from ..security import get_current_user, hash_password, issue_access_token, verify_password

router = APIRouter(prefix="/api/auth", tags=["Auth"])

_PROFILE_OPTIONS = (
    selectinload(User.customer).selectinload(Customer.bookings).selectinload(Booking.service),
    selectinload(User.customer)
    .selectinload(Customer.bookings)
    .selectinload(Booking.provider)
    .selectinload(Provider.user),
    selectinload(User.provider).selectinload(Provider.services),
    selectinload(User.provider).selectinload(Provider.bookings).selectinload(Booking.service),
    selectinload(User.provider)
    .selectinload(Provider.bookings)
    .selectinload(Booking.customer)
    .selectinload(Customer.user),
)


def _profile(user: User) -> dict:
    body = UserOut.model_validate(user).model_dump()
    body["customer"] = None
    body["provider"] = None

    if user.customer is not None:
        body["customer"] = {
            "id": user.customer.id,
            "bookings": [
                {
                    **BookingOut.model_validate(b).model_dump(),
                    "service": ServiceOut.model_validate(b.service).model_dump(),
                    "provider": {
                        "id": b.provider.id,
                        "name": b.provider.user.name,
                        "phone": b.provider.user.phone,
                    },
                }
                for b in user.customer.bookings
            ],
        }

    if user.provider is not None:
        body["provider"] = {
            **ProviderOut.model_validate(user.provider).model_dump(),
            "services": [ServiceOut.model_validate(s).model_dump() for s in user.provider.services],
            "bookings": [
                {
                    **BookingOut.model_validate(b).model_dump(),
                    "service": ServiceOut.model_validate(b.service).model_dump(),
                    "customer": {
                        "id": b.customer.id,
                        "name": b.customer.user.name,
                        "phone": b.customer.user.phone,
                        "email": b.customer.user.email,
                    },
                }
                for b in user.provider.bookings
            ],
        }

    return body


async def _load_profile(db: AsyncSession, user_id: int) -> User | None:
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .options(*_PROFILE_OPTIONS)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@router.post("/register", status_code=201)
async def register(data: Register, background_tasks: BackgroundTasks, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.email == data.email))
    existing = result.scalar_one_or_none()

    if existing:
        raise HTTPException(status_code=400, detail="User already exists with this email")

    user = User(
        first_name=data.first_name,
        last_name=data.last_name,
        email=data.email,
        password=hash_password(data.password),
        phone=data.phone,
        user_type=data.user_type,
    )
    # user and role row go in with the same commit
    if data.user_type == "CUSTOMER":
        user.customer = Customer()
    else:
        user.provider = Provider(experience="", location="", hourly_rate=0)

    db.add(user)
    await db.commit()

    background_tasks.add_task(
        emit,
        "user.registered",
        {"user_id": user.id, "email": user.email, "user_type": user.user_type},
    )

    return {
        "message": "User registered successfully",
        "user": UserOut.model_validate(user).model_dump(),
        "token": issue_access_token(user),
    }


@router.post("/login")
async def login(data: Login, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.email == data.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(data.password, user.password):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is deactivated")

    return {
        "message": "Login successful",
        "user": UserOut.model_validate(user).model_dump(),
        "token": issue_access_token(user),
    }


@router.get("/profile")
async def get_profile(current=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    user = await _load_profile(db, current["id"])
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return _profile(user)


@router.put("/profile")
async def update_profile(
    data: ProfileUpdate,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await _load_profile(db, current["id"])
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    fields = data.model_dump(exclude_none=True)
    for key in ("first_name", "last_name", "phone"):
        if key in fields:
            setattr(user, key, fields[key])

    if user.user_type == "PROVIDER" and user.provider is not None:
        for key in ("experience", "location", "hourly_rate", "bio"):
            if key in fields:
                setattr(user.provider, key, fields[key])

    await db.commit()

    user = await _load_profile(db, current["id"])
    return {"message": "Profile updated successfully", "user": _profile(user)}
