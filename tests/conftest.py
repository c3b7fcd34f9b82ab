import itertools
import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="localnest-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP}/test.db"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("REDIS_URL", None)
os.environ.pop("RABBIT_URL", None)

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import select  # noqa: E402

from localnest.config import ADMIN_ACCESS_TTL_SECONDS  # noqa: E402
from localnest.db import Base, SessionLocal, engine  # noqa: E402
from localnest.main import app  # noqa: E402
from localnest.models import (  # noqa: E402
    Admin,
    AuditLog,
    Booking,
    Customer,
    Provider,
    Service,
    User,
    provider_services,
    utcnow,
)
from localnest.security import hash_password, issue_access_token  # noqa: E402

PASSWORD = "Passw0rd"
_hashed = {}
_seq = itertools.count(1)


def _password_hash(password: str) -> str:
    if password not in _hashed:
        _hashed[password] = hash_password(password)
    return _hashed[password]


@pytest.fixture(autouse=True)
async def schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
async def db():
    async with SessionLocal() as session:
        yield session


class Factory:
    def __init__(self, db):
        self.db = db

    async def user(
        self,
        user_type: str = "CUSTOMER",
        email: str | None = None,
        password: str = PASSWORD,
        first_name: str = "Test",
        last_name: str | None = None,
        is_active: bool = True,
        **provider_fields,
    ) -> User:
        n = next(_seq)
        user = User(
            first_name=first_name,
            last_name=last_name or user_type.capitalize(),
            email=email or f"{user_type.lower()}{n}@localnest.com",
            password=_password_hash(password),
            phone=f"+1555000{n:04d}",
            user_type=user_type,
            is_active=is_active,
        )
        if user_type == "CUSTOMER":
            user.customer = Customer()
        elif user_type == "PROVIDER":
            fields = {"experience": "5 years", "location": "Downtown", "hourly_rate": 25.0}
            fields.update(provider_fields)
            user.provider = Provider(**fields)
        elif user_type == "ADMIN":
            user.admin = Admin()

        self.db.add(user)
        await self.db.commit()
        return user

    async def admin(self, **kwargs) -> User:
        return await self.user("ADMIN", **kwargs)

    async def customer(self, **kwargs) -> User:
        return await self.user("CUSTOMER", **kwargs)

    async def provider(self, **kwargs) -> User:
        return await self.user("PROVIDER", **kwargs)

    async def service(
        self,
        name: str = "Home Cleaning",
        category: str = "Home Services",
        average_price: float = 50.0,
        description: str = "Professional house cleaning services",
    ) -> Service:
        service = Service(name=name, category=category, average_price=average_price, description=description)
        self.db.add(service)
        await self.db.commit()
        return service

    async def offer(self, provider_user: User, service: Service):
        await self.db.execute(
            provider_services.insert().values(provider_id=provider_user.provider.id, service_id=service.id)
        )
        await self.db.commit()

    async def booking(
        self,
        customer_user: User,
        provider_user: User,
        service: Service,
        status: str = "PENDING",
        total_price: float | None = 50.0,
    ) -> Booking:
        booking = Booking(
            customer_id=customer_user.customer.id,
            provider_id=provider_user.provider.id,
            service_id=service.id,
            date=utcnow(),
            time="10:00",
            status=status,
            total_price=total_price,
        )
        self.db.add(booking)
        await self.db.commit()
        return booking


@pytest.fixture
def factory(db):
    return Factory(db)


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {issue_access_token(user)}"}


def admin_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {issue_access_token(user, ttl=ADMIN_ACCESS_TTL_SECONDS)}"}


async def fetch(model, ident):
    """Read a row through a fresh session so no stale identity map gets in the way."""
    async with SessionLocal() as session:
        return await session.get(model, ident)


async def audit_actions() -> list[str]:
    async with SessionLocal() as session:
        result = await session.execute(select(AuditLog.action).order_by(AuditLog.id))
        return list(result.scalars().all())
