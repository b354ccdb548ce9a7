"""
core/permissions.py
-------------------
Static permission catalog, grouped by functional module.

The catalog is built once at import time and never mutated; inject it via
get_permission_catalog() rather than reaching for module globals.

The admin role is not listed anywhere in here as data: it receives every
permission implicitly through the authorization engine. Staff roles are
assigned subsets of this pool, persisted as role_permissions rows.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Tuple


class PermissionCategory(str, Enum):
    read = "read"
    write = "write"
    admin = "admin"
    system = "system"


@dataclass(frozen=True)
class Permission:
    name: str
    description: str
    module: str
    category: PermissionCategory


@dataclass(frozen=True)
class Module:
    key: str
    name: str
    description: str
    permissions: Tuple[Permission, ...]


ADMIN_ROLE_NAME = "admin"
PROTECTED_ROLES = frozenset({ADMIN_ROLE_NAME})
DEFAULT_ROLE_PERMISSIONS = ("view_dashboard",)


class PermissionCatalog:
    """Read-only lookup over a fixed set of modules."""

    def __init__(self, modules: Iterable[Module]) -> None:
        self._modules: Dict[str, Module] = {m.key: m for m in modules}
        self._by_name: Dict[str, Permission] = {}
        for module in self._modules.values():
            for permission in module.permissions:
                if permission.name in self._by_name:
                    raise ValueError(f"Duplicate permission '{permission.name}'")
                self._by_name[permission.name] = permission
        self._names = frozenset(self._by_name)

    @property
    def names(self) -> frozenset:
        return self._names

    @property
    def modules(self) -> Mapping[str, Module]:
        return dict(self._modules)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __len__(self) -> int:
        return len(self._names)

    def is_valid_permission(self, name: str) -> bool:
        return name in self._names

    def get(self, name: str) -> Optional[Permission]:
        return self._by_name.get(name)

    def all(self) -> Tuple[Permission, ...]:
        return tuple(self._by_name.values())

    def permissions_for_module(self, module: str) -> Tuple[Permission, ...]:
        found = self._modules.get(module)
        return found.permissions if found else ()

    def validate(self, names: Iterable[str]) -> Tuple[list, list]:
        """Split names into (valid, invalid), preserving input order."""
        valid, invalid = [], []
        for name in names:
            (valid if name in self._names else invalid).append(name)
        return valid, invalid

    def group_by_module(self, names: Iterable[str]) -> Dict[str, list]:
        """Group known permission names by module; unknown names are dropped."""
        grouped: Dict[str, list] = {}
        for name in names:
            permission = self._by_name.get(name)
            if permission is not None:
                grouped.setdefault(permission.module, []).append(name)
        return grouped


def format_permission_name(name: str) -> str:
    """view_members -> View Members"""
    return " ".join(word.capitalize() for word in name.split("_"))


def _module(key: str, name: str, description: str, *entries: Tuple[str, str, str]) -> Module:
    return Module(
        key=key,
        name=name,
        description=description,
        permissions=tuple(
            Permission(name=p, description=d, module=key, category=PermissionCategory(c))
            for p, d, c in entries
        ),
    )


_MODULES = (
    _module(
        "dashboard", "Dashboard", "Main dashboard access and overview",
        ("view_dashboard", "View main dashboard and statistics", "read"),
    ),
    _module(
        "members", "Members", "Gym member management",
        ("view_members", "View members list and details", "read"),
        ("add_members", "Add new members to the system", "write"),
        ("edit_members", "Edit existing member information", "write"),
        ("delete_members", "Delete members from the system", "admin"),
    ),
    _module(
        "payments", "Payments", "Payment processing and management",
        ("view_payments", "View payment history and records", "read"),
        ("manage_payments", "Process new payments and refunds", "write"),
        ("view_revenue", "View revenue reports and financial data", "read"),
    ),
    _module(
        "staff", "Staff Management", "Staff user management",
        ("view_staff", "View staff members list", "read"),
        ("add_staff", "Add new staff members", "write"),
        ("edit_staff", "Edit staff member information", "write"),
        ("delete_staff", "Delete staff members", "admin"),
    ),
    _module(
        "roles", "Roles & Permissions", "Role and permission management",
        ("view_roles", "View roles and their permissions", "read"),
        ("manage_roles", "Create, edit, and assign role permissions", "admin"),
    ),
    _module(
        "reports", "Reports", "System reports and analytics",
        ("view_reports", "View system reports", "read"),
        ("export_reports", "Export reports to file", "write"),
    ),
    _module(
        "settings", "Settings", "System configuration",
        ("manage_settings", "Manage system settings and configuration", "admin"),
    ),
    _module(
        "plans", "Membership Plans", "Membership plan management",
        ("view_plans", "View membership plans", "read"),
        ("manage_plans", "Create and edit membership plans", "write"),
    ),
    _module(
        "audit", "Audit Logs", "System audit and activity logs",
        ("view_audit_logs", "View system audit logs", "read"),
    ),
)

CATALOG = PermissionCatalog(_MODULES)


def get_permission_catalog() -> PermissionCatalog:
    """FastAPI dependency / accessor for the process-wide catalog."""
    return CATALOG
