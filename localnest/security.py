import uuid
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .config import (
    ACCESS_TTL_SECONDS,
    JWT_ALGORITHM,
    JWT_SECRET,
    REFRESH_TTL_SECONDS,
)
from .db import get_db
from .models import Admin, User
from .redis_client import redis_client

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def _encode(payload: dict, ttl: int) -> str:
    now = datetime.now(timezone.utc)
    body = {
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl)).timestamp()),
        "jti": uuid.uuid4().hex,
        **payload,
    }
    return jwt.encode(body, JWT_SECRET, algorithm=JWT_ALGORITHM)


def issue_access_token(user: User, ttl: int = ACCESS_TTL_SECONDS) -> str:
    return _encode(
        {
            "sub": str(user.id),
            "email": user.email,
            "user_type": user.user_type,
            "scope": "access",
        },
        ttl,
    )


def issue_refresh_token(user: User) -> str:
    return _encode({"sub": str(user.id), "scope": "refresh"}, REFRESH_TTL_SECONDS)


def decode_token(token: str) -> dict:
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])


def _revoked_key(jti: str) -> str:
    return f"revoked:{jti}"


async def is_revoked(claims: dict) -> bool:
    jti = claims.get("jti")
    if redis_client is None or not jti:
        return False
    return bool(await redis_client.exists(_revoked_key(jti)))


async def revoke(claims: dict) -> bool:
    """
    Blacklist a token until it would have expired anyway.
    Returns False when there is no redis to remember it in.
    """
    jti = claims.get("jti")
    if redis_client is None or not jti:
        return False
    ttl = int(claims.get("exp", 0)) - int(datetime.now(timezone.utc).timestamp())
    if ttl <= 0:
        return True
    await redis_client.set(_revoked_key(jti), "1", ex=ttl)
    return True


def _bearer_token(creds: HTTPAuthorizationCredentials | None) -> str | None:
    if creds and creds.scheme.lower() == "bearer":
        return creds.credentials
    return None


async def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict:
    token = _bearer_token(creds)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Bearer token",
        )

    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    if payload.get("scope") != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")

    if await is_revoked(payload):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has been revoked")

    payload["id"] = int(payload["sub"])
    request.state.user_id = payload["id"]
    request.state.user_type = payload.get("user_type")
    return payload


async def get_current_admin(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Admin:
    token = _bearer_token(creds)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin access token required",
        )

    try:
        payload = decode_token(token)
    except ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin session expired")
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")

    if payload.get("scope") != "access" or await is_revoked(payload):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")

    if payload.get("user_type") != "ADMIN":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")

    result = await db.execute(
        select(Admin)
        .join(Admin.user)
        .where(User.id == int(payload["sub"]))
        .options(selectinload(Admin.user))
    )
    admin = result.scalar_one_or_none()

    if not admin or not admin.user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin session")

    request.state.user_id = admin.user_id
    request.state.user_type = "ADMIN"
    request.state.token_claims = payload
    return admin
