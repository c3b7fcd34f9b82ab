from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..audit import record_admin_action
from ..db import get_db
from ..models import Admin, Booking, Customer, Provider, User
from ..pagination import paginate
from ..schemas import AdminUserUpdate, UserOut, UserStatusUpdate
from ..security import get_current_admin
from ..verification import verification_state

router = APIRouter(prefix="/api/admin/users", tags=["Admin Users"])

_USER_OPTIONS = (
    selectinload(User.customer),
    selectinload(User.provider).selectinload(Provider.services),
    selectinload(User.admin),
)

# everything the ORM cascade walks when a user row goes away
_DELETE_OPTIONS = (
    selectinload(User.customer).selectinload(Customer.bookings),
    selectinload(User.provider).selectinload(Provider.bookings),
    selectinload(User.provider).selectinload(Provider.services),
    selectinload(User.admin),
)


async def _load_user(db: AsyncSession, user_id: int, *options) -> User:
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .options(*(options or _USER_OPTIONS))
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def _user_metadata(db: AsyncSession, user: User) -> dict | None:
    if user.user_type == "CUSTOMER" and user.customer is not None:
        total = await db.scalar(
            select(func.count()).select_from(Booking).where(Booking.customer_id == user.customer.id)
        )
        return {"type": "customer", "customer_id": user.customer.id, "total_bookings": total}

    if user.user_type == "PROVIDER" and user.provider is not None:
        provider = user.provider
        total = await db.scalar(
            select(func.count()).select_from(Booking).where(Booking.provider_id == provider.id)
        )
        return {
            "type": "provider",
            "provider_id": provider.id,
            "verified": provider.verified,
            "verification_requested": provider.verification_requested,
            "verification_state": verification_state(provider),
            "rating": provider.rating,
            "hourly_rate": provider.hourly_rate,
            "location": provider.location,
            "total_services": len(provider.services),
            "total_bookings": total,
        }

    if user.user_type == "ADMIN" and user.admin is not None:
        return {"type": "admin", "admin_id": user.admin.id, "created_at": user.admin.created_at}

    return None


def _ensure_not_admin(user: User, message: str):
    if user.user_type == "ADMIN":
        raise HTTPException(status_code=403, detail=message)


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_type: Optional[str] = None,
    search: Optional[str] = None,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(User).where(User.is_active.is_(True)).order_by(User.created_at.desc(), User.id.desc())

    if user_type:
        stmt = stmt.where(User.user_type == user_type.strip().upper())
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.email.ilike(pattern),
                (User.first_name + " " + User.last_name).ilike(pattern),
            )
        )

    users, meta = await paginate(db, stmt, page, limit)
    return {"data": [UserOut.model_validate(u).model_dump() for u in users], "meta": meta}


@router.get("/{user_id}")
async def get_user(user_id: int, admin: Admin = Depends(get_current_admin), db: AsyncSession = Depends(get_db)):
    user = await _load_user(db, user_id)
    body = UserOut.model_validate(user).model_dump()
    body["metadata"] = await _user_metadata(db, user)
    return body


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    data: AdminUserUpdate,
    background_tasks: BackgroundTasks,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await _load_user(db, user_id)
    _ensure_not_admin(user, "Cannot update admin user")

    fields = data.model_dump(exclude_none=True)
    for key, value in fields.items():
        setattr(user, key, value)

    # duplicate email surfaces as IntegrityError -> 409
    await db.commit()

    record_admin_action(
        background_tasks,
        "USER_UPDATED",
        "USER",
        admin_id=admin.id,
        target_id=user.id,
        details={"fields": sorted(fields)},
    )

    user = await _load_user(db, user_id)
    return {"message": "User updated successfully", "user": UserOut.model_validate(user).model_dump()}


@router.put("/{user_id}/status")
async def update_user_status(
    user_id: int,
    data: UserStatusUpdate,
    background_tasks: BackgroundTasks,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await _load_user(db, user_id)
    _ensure_not_admin(user, "Cannot modify admin user status")

    if user.is_active == data.is_active:
        state = "active" if user.is_active else "inactive"
        raise HTTPException(status_code=400, detail=f"User is already {state}")

    user.is_active = data.is_active
    await db.commit()

    record_admin_action(
        background_tasks,
        "USER_ACTIVATED" if data.is_active else "USER_DEACTIVATED",
        "USER",
        admin_id=admin.id,
        target_id=user.id,
        details={"reason": data.reason, "email": user.email},
    )

    verb = "activated" if data.is_active else "deactivated"
    return {
        "message": f"User {verb} successfully",
        "user": UserOut.model_validate(user).model_dump(),
    }


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    background_tasks: BackgroundTasks,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await _load_user(db, user_id, *_DELETE_OPTIONS)
    _ensure_not_admin(user, "Cannot delete admin user")

    details = {"email": user.email, "user_type": user.user_type}
    await db.delete(user)
    await db.commit()

    record_admin_action(
        background_tasks,
        "USER_DELETED",
        "USER",
        admin_id=admin.id,
        target_id=user_id,
        details=details,
    )
    return {"message": "User deleted successfully"}
