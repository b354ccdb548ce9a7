from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.security import create_session_token, decode_session_token, digest
from gymdesk.models.session import UserSession
from gymdesk.models.tenant import Company
from gymdesk.models.user import User
from gymdesk.services.session_service import SessionManager
from gymdesk.services.tenant_service import TenantService

from conftest import make_company


async def test_created_session_resolves_to_identity(db):
    owner = await make_company(db)
    me = owner.identity
    token, expires_at = await SessionManager.create_session(db, me.user_id, me.tenant_id, "admin")

    claims = decode_session_token(token)
    assert claims["sub"] == me.user_id
    assert claims["tenant_id"] == me.tenant_id
    assert claims["role"] == "admin"
    assert claims["exp"] - claims["iat"] == int(timedelta(days=7).total_seconds())

    identity = await SessionManager.resolve_session(db, token)
    assert identity is not None
    assert identity.user_id == me.user_id
    assert identity.tenant_id == me.tenant_id
    assert identity.role_name == "admin"
    assert identity.role_id == me.role_id
    assert not identity.is_super_admin


async def test_token_is_stored_as_digest(db):
    owner = await make_company(db)
    me = owner.identity
    token, _ = await SessionManager.create_session(db, me.user_id, me.tenant_id, "admin")
    stored = (await db.execute(select(UserSession.token_digest))).scalars().all()
    assert stored == [digest(token)]


async def test_garbage_and_missing_tokens_are_unauthenticated(db):
    assert await SessionManager.resolve_session(db, None) is None
    assert await SessionManager.resolve_session(db, "") is None
    assert await SessionManager.resolve_session(db, "not-a-jwt") is None


async def test_expired_signature_is_unauthenticated(db):
    owner = await make_company(db)
    me = owner.identity
    token, _ = create_session_token(
        me.user_id,
        me.tenant_id,
        "admin",
        issued_at=datetime.now(timezone.utc) - timedelta(days=8),
    )
    assert await SessionManager.resolve_session(db, token) is None


async def test_expired_session_row_is_unauthenticated(db):
    owner = await make_company(db)
    me = owner.identity
    token, _ = await SessionManager.create_session(db, me.user_id, me.tenant_id, "admin")
    await db.execute(
        update(UserSession).values(expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
    )
    assert await SessionManager.resolve_session(db, token) is None
    assert await SessionManager.cleanup_expired_sessions(db) == 1


async def test_signed_token_without_row_is_unauthenticated(db):
    owner = await make_company(db)
    me = owner.identity
    token, _ = create_session_token(me.user_id, me.tenant_id, "admin")
    assert await SessionManager.resolve_session(db, token) is None


async def test_destroy_is_idempotent(db):
    owner = await make_company(db)
    me = owner.identity
    token, _ = await SessionManager.create_session(db, me.user_id, me.tenant_id, "admin")
    await SessionManager.destroy_session(db, token)
    await SessionManager.destroy_session(db, token)
    await SessionManager.destroy_session(db, None)
    assert await SessionManager.resolve_session(db, token) is None


async def test_destroy_all_sessions(db):
    owner = await make_company(db)
    me = owner.identity
    first, _ = await SessionManager.create_session(db, me.user_id, me.tenant_id, "admin")
    second, _ = await SessionManager.create_session(db, me.user_id, me.tenant_id, "admin")
    assert first != second

    assert await SessionManager.destroy_all_sessions(db, me.user_id) == 2
    assert await SessionManager.resolve_session(db, first) is None
    assert await SessionManager.resolve_session(db, second) is None


async def test_role_change_applies_on_next_resolution(db):
    owner = await make_company(db)
    me = owner.identity
    token, _ = await SessionManager.create_session(db, me.user_id, me.tenant_id, "admin")
    await db.execute(update(User).where(User.id == me.user_id).values(role_id=None))
    identity = await SessionManager.resolve_session(db, token)
    assert identity is not None
    assert identity.role_name == ""
    assert identity.role_id is None


async def test_inactive_company_is_unauthenticated(db):
    owner = await make_company(db)
    me = owner.identity
    token, _ = await SessionManager.create_session(db, me.user_id, me.tenant_id, "admin")
    await TenantService.set_active(db, me.tenant_id, False)
    assert await SessionManager.resolve_session(db, token) is None

    company = (await db.execute(select(Company))).scalar_one()
    assert company.is_active is False


async def test_super_admin_token_needs_no_row(db):
    token, _ = SessionManager.create_super_admin_token("platform-1")
    identity = await SessionManager.resolve_session(db, token)
    assert identity is not None
    assert identity.is_super_admin
    assert identity.tenant_id is None
    assert identity.user_id == "platform-1"


async def test_database_error_during_resolution_is_unauthenticated(db, monkeypatch):
    owner = await make_company(db)
    me = owner.identity
    token, _ = await SessionManager.create_session(db, me.user_id, me.tenant_id, "admin")

    async def unavailable(self, *args, **kwargs):
        raise OperationalError("SELECT sessions", {}, Exception("connection lost"))

    monkeypatch.setattr(AsyncSession, "execute", unavailable)
    assert await SessionManager.resolve_session(db, token) is None

    monkeypatch.undo()
    assert await SessionManager.resolve_session(db, token) is not None
