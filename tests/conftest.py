"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; these must be set before gymdesk loads.
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("APP_ENV", "test")

from dataclasses import dataclass
from typing import Iterable

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from gymdesk.core.permissions import get_permission_catalog
from gymdesk.core.security import hash_password
from gymdesk.db.session import get_db
from gymdesk.models import Base, SuperAdmin
from gymdesk.schemas.role import RoleCreate
from gymdesk.schemas.tenant import CompanyRegister
from gymdesk.schemas.user import StaffCreate
from gymdesk.services.role_service import RoleService
from gymdesk.services.session_service import Identity
from gymdesk.services.tenant_service import TenantService
from gymdesk.services.user_service import UserService
from main import app

PASSWORD = "Passw0rd!secure"


@dataclass
class Seeded:
    identity: Identity
    email: str
    password: str = PASSWORD


@pytest.fixture
def catalog():
    return get_permission_catalog()


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ── Seed helpers ──────────────────────────────────────────────────────────────

async def make_company(
    db: AsyncSession, subdomain: str = "irontemple", verified: bool = True
) -> Seeded:
    """Company + protected admin role + admin user; returns the admin.
    The admin's email is confirmed with the issued code unless
    verified=False."""
    email = f"owner@{subdomain}.example.com"
    company, admin, code = await TenantService.register_company(
        db,
        CompanyRegister(
            name=f"{subdomain.title()} Gym",
            subdomain=subdomain,
            admin_name=f"{subdomain.title()} Owner",
            admin_email=email,
            admin_password=PASSWORD,
        ),
    )
    if verified:
        await UserService.verify_email(db, email, code)
    return Seeded(
        identity=Identity(
            user_id=admin.id,
            tenant_id=company.id,
            role_name="admin",
            display_name=admin.name,
            role_id=admin.role_id,
            email=admin.email,
        ),
        email=email,
    )


async def make_staff(
    db: AsyncSession,
    admin: Identity,
    permissions: Iterable[str],
    role_name: str = "front desk",
    email: str = "desk@example.com",
) -> Seeded:
    """Staff user on a fresh role holding exactly `permissions`."""
    catalog = get_permission_catalog()
    role = await RoleService.create_role(db, admin, RoleCreate(name=role_name), catalog)
    await RoleService.set_role_permissions(db, admin, role.id, list(permissions), catalog)
    user = await UserService.create_staff(
        db,
        admin,
        StaffCreate(name="Desk Clerk", email=email, password=PASSWORD, role_id=role.id),
    )
    return Seeded(
        identity=Identity(
            user_id=user.id,
            tenant_id=admin.tenant_id,
            role_name=role.name,
            display_name=user.name,
            role_id=role.id,
            email=user.email,
        ),
        email=email,
    )


async def make_super_admin(db: AsyncSession, email: str = "root@platform.example.com") -> SuperAdmin:
    admin = SuperAdmin(name="Platform Root", email=email, hashed_password=hash_password(PASSWORD))
    db.add(admin)
    await db.flush()
    return admin


async def login(client: AsyncClient, email: str, password: str = PASSWORD, path: str = "/auth/login") -> dict:
    """Log in and return Bearer headers. Cookies are dropped so each
    request is authenticated only by the header it carries."""
    response = await client.post(path, data={"username": email, "password": password})
    assert response.status_code == 200, response.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
