from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from jose import JWTError
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..audit import record_admin_action, write_audit_log
from ..config import ADMIN_ACCESS_TTL_SECONDS
from ..db import get_db
from ..events import emit
from ..models import Admin, AuditLog, Provider, User
from ..pagination import paginate
from ..schemas import (
    AdminLogin,
    RefreshTokenRequest,
    RejectProvider,
    ServiceOut,
    UserOut,
    VerifyProvider,
)
from ..security import (
    decode_token,
    get_current_admin,
    issue_access_token,
    issue_refresh_token,
    revoke,
    verify_password,
)
from ..stats import audit_log_query, dashboard_stats, serialize_activity
from ..verification import VerificationError, reject, validate_rejection_reason, verify

router = APIRouter(prefix="/api/admin", tags=["Admin"])


def admin_user_body(user: User, admin: Admin) -> dict:
    body = UserOut.model_validate(user).model_dump()
    body["admin"] = {"id": admin.id, "created_at": admin.created_at}
    return body


async def _load_admin_user(db: AsyncSession, **criteria) -> User | None:
    result = await db.execute(select(User).filter_by(**criteria).options(selectinload(User.admin)))
    return result.scalar_one_or_none()


# ---------- session ----------

@router.post("/login")
async def admin_login(data: AdminLogin, background_tasks: BackgroundTasks, db: AsyncSession = Depends(get_db)):
    if not data.email or not data.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    user = await _load_admin_user(db, email=data.email)
    if not user or user.user_type != "ADMIN" or user.admin is None:
        raise HTTPException(status_code=401, detail="Invalid admin credentials")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Admin account is deactivated")

    if not verify_password(data.password, user.password):
        # background tasks do not run once the handler raises
        await write_audit_log(
            "LOGIN_ATTEMPT",
            "AUTH",
            admin_id=user.admin.id,
            details={"user_id": user.id, "success": False, "reason": "Invalid password"},
        )
        raise HTTPException(status_code=401, detail="Invalid admin credentials")

    access = issue_access_token(user, ttl=ADMIN_ACCESS_TTL_SECONDS)
    refresh = issue_refresh_token(user)

    record_admin_action(
        background_tasks,
        "LOGIN_SUCCESS",
        "AUTH",
        admin_id=user.admin.id,
        details={"user_id": user.id},
    )

    return {
        "message": "Admin login successful",
        "user": admin_user_body(user, user.admin),
        "tokens": {"access": access, "refresh": refresh, "expires_in": ADMIN_ACCESS_TTL_SECONDS},
        "access_token": access,
    }


@router.get("/profile")
async def admin_profile(admin: Admin = Depends(get_current_admin)):
    return admin_user_body(admin.user, admin)


@router.post("/refresh-token")
async def refresh_admin_token(data: RefreshTokenRequest, db: AsyncSession = Depends(get_db)):
    if not data.refresh_token:
        raise HTTPException(status_code=400, detail="Refresh token is required")

    try:
        claims = decode_token(data.refresh_token)
    except JWTError:
        raise HTTPException(status_code=403, detail="Invalid refresh token")

    if claims.get("scope") != "refresh" or not claims.get("sub"):
        raise HTTPException(status_code=403, detail="Invalid refresh token")

    user = await _load_admin_user(db, id=int(claims["sub"]))
    if not user or user.user_type != "ADMIN" or user.admin is None or not user.is_active:
        raise HTTPException(status_code=403, detail="Invalid admin account")

    return {
        "access_token": issue_access_token(user, ttl=ADMIN_ACCESS_TTL_SECONDS),
        "expires_in": ADMIN_ACCESS_TTL_SECONDS,
    }


@router.post("/logout")
async def admin_logout(
    request: Request,
    background_tasks: BackgroundTasks,
    admin: Admin = Depends(get_current_admin),
):
    await revoke(request.state.token_claims)
    record_admin_action(background_tasks, "LOGOUT", "AUTH", admin_id=admin.id)
    return {"message": "Successfully logged out"}


# ---------- dashboard ----------

@router.get("/dashboard/stats")
async def get_dashboard_stats(
    background_tasks: BackgroundTasks,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    stats = await dashboard_stats(db)

    record_admin_action(
        background_tasks,
        "DASHBOARD_ACCESS",
        "DASHBOARD",
        admin_id=admin.id,
        details={"stats_overview": stats["overview"]},
    )
    return stats


# ---------- provider verification ----------

def pending_provider_body(provider: Provider) -> dict:
    user = provider.user
    return {
        "id": provider.id,
        "user_id": provider.user_id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "experience": provider.experience,
        "location": provider.location,
        "hourly_rate": provider.hourly_rate,
        "bio": provider.bio,
        "verification_requested_at": provider.verification_requested_at,
        "created_at": provider.created_at,
        "services": [ServiceOut.model_validate(s).model_dump() for s in provider.services],
        "total_services": len(provider.services),
    }


async def _pending_verifications(db: AsyncSession, page: int, limit: int, search: Optional[str]) -> dict:
    stmt = (
        select(Provider)
        .join(Provider.user)
        .where(Provider.verification_requested.is_(True), Provider.verified.is_(False))
        .options(selectinload(Provider.user), selectinload(Provider.services))
        .order_by(Provider.verification_requested_at.asc(), Provider.id.asc())
    )
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

    providers, meta = await paginate(db, stmt, page, limit)
    return {"data": [pending_provider_body(p) for p in providers], "meta": meta}


@router.get("/verifications/pending")
@router.get("/providers/pending-verifications")
async def list_pending_verifications(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    return await _pending_verifications(db, page, limit, search)


async def _load_provider_with_user(db: AsyncSession, provider_id: int) -> Provider:
    result = await db.execute(
        select(Provider).where(Provider.id == provider_id).options(selectinload(Provider.user))
    )
    provider = result.scalar_one_or_none()
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")
    return provider


@router.put("/providers/{provider_id}/verify")
async def verify_provider(
    provider_id: int,
    background_tasks: BackgroundTasks,
    data: Optional[VerifyProvider] = None,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    provider = await _load_provider_with_user(db, provider_id)

    try:
        verify(provider, admin.user_id)
    except VerificationError as e:
        raise HTTPException(status_code=400, detail=e.message)

    await db.commit()

    notes = data.notes if data else None
    record_admin_action(
        background_tasks,
        "PROVIDER_VERIFIED",
        "PROVIDER",
        admin_id=admin.id,
        target_id=provider.id,
        details={"provider_id": provider.id, "user_id": provider.user_id, "notes": notes},
    )
    background_tasks.add_task(
        emit,
        "provider.verified",
        {"provider_id": provider.id, "user_id": provider.user_id, "verified_by": admin.user_id},
    )

    return {
        "id": provider.id,
        "user_id": provider.user_id,
        "name": provider.user.name,
        "email": provider.user.email,
        "verified": provider.verified,
        "verified_at": provider.verified_at,
        "verified_by": provider.verified_by,
        "message": "Provider verified successfully",
    }


@router.put("/providers/{provider_id}/reject")
async def reject_provider(
    provider_id: int,
    background_tasks: BackgroundTasks,
    data: Optional[RejectProvider] = None,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    reason = data.reason if data else None
    try:
        validate_rejection_reason(reason)
    except VerificationError as e:
        raise HTTPException(status_code=400, detail=e.message)

    provider = await _load_provider_with_user(db, provider_id)

    try:
        reject(provider, reason)
    except VerificationError as e:
        raise HTTPException(status_code=400, detail=e.message)

    await db.commit()

    record_admin_action(
        background_tasks,
        "PROVIDER_VERIFICATION_REJECTED",
        "PROVIDER",
        admin_id=admin.id,
        target_id=provider.id,
        details={"provider_id": provider.id, "user_id": provider.user_id, "reason": reason},
    )
    background_tasks.add_task(
        emit,
        "provider.verification_rejected",
        {"provider_id": provider.id, "user_id": provider.user_id, "reason": reason},
    )

    return {
        "id": provider.id,
        "user_id": provider.user_id,
        "name": provider.user.name,
        "email": provider.user.email,
        "verification_requested": provider.verification_requested,
        "verification_rejected_reason": provider.verification_rejected_reason,
        "message": "Provider verification rejected",
    }


# ---------- audit ----------

@router.get("/audit/logs")
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    action: Optional[str] = None,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    stmt = audit_log_query().order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if action:
        stmt = stmt.where(AuditLog.action == action.upper())

    entries, meta = await paginate(db, stmt, page, limit)
    return {"data": [serialize_activity(e) for e in entries], "meta": meta}
