import pytest
from sqlalchemy import select

from gymdesk.core.errors import NotFound, TenantContextMissing
from gymdesk.models.member import Member
from gymdesk.schemas.member import MemberCreate, MemberUpdate
from gymdesk.services.membership_service import MemberService
from gymdesk.services.session_service import Identity
from gymdesk.services.tenant_guard import TenantGuard, resolve_tenant_id

from conftest import make_company


def _identity(tenant_id):
    return Identity(user_id="u1", tenant_id=tenant_id, role_name="admin", display_name="Owner")


def test_guard_without_tenant_fails_fast():
    with pytest.raises(TenantContextMissing):
        TenantGuard(None)
    with pytest.raises(TenantContextMissing):
        TenantGuard("")
    with pytest.raises(TenantContextMissing):
        TenantGuard.for_identity(_identity(None))


def test_scope_appends_tenant_predicate():
    stmt = TenantGuard("gym-a").scope(select(Member), Member)
    compiled = stmt.compile(compile_kwargs={"literal_binds": True})
    assert "members.company_id = 'gym-a'" in str(compiled)


def test_stamp_assigns_tenant():
    member = TenantGuard("gym-a").stamp(Member(full_name="X", phone_number="1", member_number=1))
    assert member.company_id == "gym-a"


def test_session_tenant_beats_header():
    assert resolve_tenant_id(_identity("gym-a"), "gym-b") == "gym-a"
    assert resolve_tenant_id(_identity("gym-a"), None) == "gym-a"


def test_header_is_fallback_without_session():
    assert resolve_tenant_id(None, " gym-b ") == "gym-b"
    assert resolve_tenant_id(None, None) is None
    assert resolve_tenant_id(_identity(None), "gym-b") == "gym-b"


async def test_cross_tenant_fetch_is_not_found(db):
    gym_a = await make_company(db, "alpha")
    gym_b = await make_company(db, "bravo")
    member, _ = await MemberService.register(
        db, gym_b.identity, MemberCreate(full_name="Ben", phone_number="5550002")
    )

    assert (await MemberService.get_member(db, gym_b.identity, member.id)).id == member.id
    with pytest.raises(NotFound):
        await MemberService.get_member(db, gym_a.identity, member.id)
    with pytest.raises(NotFound):
        await MemberService.update_member(
            db, gym_a.identity, member.id, MemberUpdate(full_name="Hijacked")
        )
    with pytest.raises(NotFound):
        await MemberService.delete_member(db, gym_a.identity, member.id)

    assert (await MemberService.get_member(db, gym_b.identity, member.id)).full_name == "Ben"
    assert await MemberService.list_members(db, gym_a.identity) == []
