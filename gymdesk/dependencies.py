"""
dependencies.py
---------------
FastAPI dependency injection functions for authentication, authorisation
and tenant scoping.

Flow:
  1. The session token is read from an `Authorization: Bearer` header
     (OAuth2PasswordBearer, non-raising), falling back to the session cookie.
  2. SessionManager.resolve_session turns it into an Identity, re-reading
     role and company from the database on every request.
  3. get_identity raises 401 when there is no identity.
  4. require_permission / require_any_permission layer the authorization
     engine on top and raise 403 when the grant does not cover the route.

Tenant-scoped routes never take a company id from the client: the
TenantGuard is built from the session. Only routes that serve callers
without a session read the tenant header.
"""

from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.config import settings
from gymdesk.core.errors import Forbidden, Unauthenticated
from gymdesk.core.logging import bind_request_context, get_logger
from gymdesk.core.permissions import PermissionCatalog, get_permission_catalog
from gymdesk.db.session import get_db
from gymdesk.services.authorization import AuthorizationResult, AuthorizationService
from gymdesk.services.session_service import Identity, SessionManager
from gymdesk.services.tenant_guard import TenantGuard, resolve_tenant_id

logger = get_logger(__name__)

# tokenUrl must match the login endpoint path
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


async def get_session_token(
    request: Request,
    bearer: Annotated[Optional[str], Depends(oauth2_scheme)],
) -> Optional[str]:
    return bearer or request.cookies.get(settings.SESSION_COOKIE_NAME)


async def get_optional_identity(
    token: Annotated[Optional[str], Depends(get_session_token)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Optional[Identity]:
    identity = await SessionManager.resolve_session(db, token)
    if identity is not None:
        bind_request_context(user_id=identity.user_id, tenant_id=identity.tenant_id)
    return identity


async def get_identity(
    identity: Annotated[Optional[Identity], Depends(get_optional_identity)],
) -> Identity:
    """Raises 401 when the request carries no valid session."""
    if identity is None:
        raise Unauthenticated()
    return identity


async def require_super_admin(
    identity: Annotated[Identity, Depends(get_identity)],
) -> Identity:
    if not identity.is_super_admin:
        logger.warning("Super admin route refused", user_id=identity.user_id)
        raise Forbidden("Super admin privileges required")
    return identity


def require_permission(name: Optional[str]):
    """
    Dependency factory. `None` only demands an authenticated company user;
    platform identities never pass because they have no tenant.
    """

    async def dependency(
        identity: Annotated[Identity, Depends(get_identity)],
        db: Annotated[AsyncSession, Depends(get_db)],
        catalog: Annotated[PermissionCatalog, Depends(get_permission_catalog)],
    ) -> Identity:
        await _authorize(db, identity, catalog, required=name)
        return identity

    return dependency


def require_any_permission(*names: str):
    async def dependency(
        identity: Annotated[Identity, Depends(get_identity)],
        db: Annotated[AsyncSession, Depends(get_db)],
        catalog: Annotated[PermissionCatalog, Depends(get_permission_catalog)],
    ) -> Identity:
        TenantGuard.for_identity(identity)
        result = await AuthorizationService.authorize_any(db, identity, names, catalog)
        if not result.allowed:
            raise Forbidden()
        return identity

    return dependency


async def _authorize(
    db: AsyncSession,
    identity: Identity,
    catalog: PermissionCatalog,
    required: Optional[str],
) -> AuthorizationResult:
    TenantGuard.for_identity(identity)
    result = await AuthorizationService.authorize(db, identity, required, catalog)
    if not result.allowed:
        raise Forbidden()
    return result


async def get_request_tenant_guard(
    request: Request,
    identity: Annotated[Optional[Identity], Depends(get_optional_identity)],
) -> TenantGuard:
    """
    Guard for routes that also serve callers without a session. The
    session tenant wins; the tenant header is the fallback.
    """
    tenant_id = resolve_tenant_id(identity, request.headers.get(settings.TENANT_HEADER))
    return TenantGuard(tenant_id)
