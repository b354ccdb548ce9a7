import pytest

from gymdesk.core.errors import Forbidden
from gymdesk.models.role import Role
from gymdesk.services.authorization import (
    AdminGrant,
    AuthorizationService,
    StaffGrant,
    effective_permissions,
    ensure_role_mutable,
    grant_for,
    has_all_permissions,
    has_any_permission,
    has_permission,
    is_admin,
)
from gymdesk.services.session_service import Identity

from conftest import make_company, make_staff


# ── Pure checks ───────────────────────────────────────────────────────────────

def test_has_permission_admin_bypass():
    assert has_permission([], "view_members", "admin") is True
    assert has_permission([], "view_members", "staff") is False
    assert has_permission(["view_members"], "view_members", "staff") is True


@pytest.mark.parametrize("role", ["admin", "Admin", "ADMIN", " admin "])
def test_admin_matched_case_insensitively(role):
    assert is_admin(role)
    assert has_permission(None, "delete_members", role)


def test_none_assigned_is_denied():
    assert has_permission(None, "view_members", "trainer") is False
    assert has_any_permission(None, ["view_members"], "trainer") is False
    assert has_all_permissions(None, ["view_members"], "trainer") is False


def test_any_and_all_semantics():
    assigned = ["view_members", "view_payments"]
    assert has_any_permission(assigned, ["add_members", "view_payments"], "desk")
    assert not has_any_permission(assigned, ["add_members", "manage_roles"], "desk")
    assert has_all_permissions(assigned, ["view_members", "view_payments"], "desk")
    assert not has_all_permissions(assigned, ["view_members", "add_members"], "desk")
    assert has_all_permissions([], ["manage_roles"], "admin")


def test_grant_for_admin_covers_catalog(catalog):
    grant = grant_for("Admin", [], catalog)
    assert isinstance(grant, AdminGrant)
    assert effective_permissions(grant, catalog) == catalog.names


def test_grant_for_staff_drops_stale_names(catalog):
    grant = grant_for("desk", ["view_members", "retired_permission"], catalog)
    assert isinstance(grant, StaffGrant)
    assert effective_permissions(grant, catalog) == frozenset({"view_members"})


def test_protected_role_is_immutable():
    with pytest.raises(Forbidden):
        ensure_role_mutable(Role(name="admin", is_protected=True))
    with pytest.raises(Forbidden):
        ensure_role_mutable(Role(name="Admin", is_protected=False))
    ensure_role_mutable(Role(name="trainer", is_protected=False))


# ── Database-backed engine ────────────────────────────────────────────────────

async def test_empty_role_fails_every_permission(db, catalog):
    owner = await make_company(db)
    staff = await make_staff(db, owner.identity, permissions=[])
    for name in catalog.names:
        result = await AuthorizationService.authorize(db, staff.identity, name, catalog)
        assert not result.allowed
    assert (await AuthorizationService.authorize(db, staff.identity, None, catalog)).allowed


async def test_admin_passes_without_stored_rows(db, catalog):
    owner = await make_company(db)
    assigned = await AuthorizationService.load_assigned_permissions(db, owner.identity)
    assert assigned == frozenset()
    for name in catalog.names:
        result = await AuthorizationService.authorize(db, owner.identity, name, catalog)
        assert result.allowed
        assert isinstance(result.grant, AdminGrant)


async def test_staff_gets_exactly_assigned(db, catalog):
    owner = await make_company(db)
    staff = await make_staff(db, owner.identity, permissions=["view_members", "add_members"])

    allowed = await AuthorizationService.authorize(db, staff.identity, "add_members", catalog)
    denied = await AuthorizationService.authorize(db, staff.identity, "delete_members", catalog)
    assert allowed.allowed
    assert not denied.allowed
    assert allowed.effective_permissions == frozenset({"view_members", "add_members"})

    any_result = await AuthorizationService.authorize_any(
        db, staff.identity, ["manage_roles", "view_members"], catalog
    )
    assert any_result.allowed


async def test_permissions_are_scoped_to_identity_company(db, catalog):
    gym_a = await make_company(db, "alpha")
    gym_b = await make_company(db, "bravo")
    staff_a = await make_staff(db, gym_a.identity, ["view_members"], email="a@example.com")

    # Same role id presented under another company's tenant finds nothing.
    forged = Identity(
        user_id=staff_a.identity.user_id,
        tenant_id=gym_b.identity.tenant_id,
        role_name=staff_a.identity.role_name,
        display_name="forged",
        role_id=staff_a.identity.role_id,
    )
    result = await AuthorizationService.authorize(db, forged, "view_members", catalog)
    assert not result.allowed


async def test_super_admin_holds_no_tenant_permissions(db, catalog):
    platform = Identity(
        user_id="root", tenant_id=None, role_name="SuperAdmin",
        display_name="Root", is_super_admin=True,
    )
    result = await AuthorizationService.authorize(db, platform, "view_members", catalog)
    assert not result.allowed
