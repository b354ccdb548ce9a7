"""
api/routes/auth.py
------------------
Authentication and credential endpoints.

POST /auth/login  Exchange credentials for a session (cookie + token).
                              Accepts OAuth2 form data (Swagger UI, curl -d).
POST /auth/logout  Destroy the current session.
POST /auth/logout-all  Destroy every session of the current user.
GET  /auth/me  Current identity and effective permissions.
POST /auth/verify-email  Confirm an email-verification code.
POST /auth/forgot-password  Issue a password-reset code.
POST /auth/reset-password  Consume a reset code and set a new password.
POST /auth/change-password  Change password; all sessions are revoked.
POST /superadmin/login  Platform operator login (no tenant).
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Response
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.errors import Forbidden, Unauthenticated
from gymdesk.core.permissions import PermissionCatalog, get_permission_catalog
from gymdesk.core.security import SUPER_ADMIN_ROLE
from gymdesk.db.session import get_db
from gymdesk.dependencies import (
    get_identity,
    get_optional_identity,
    get_session_token,
    require_permission,
)
from gymdesk.schemas.user import (
    EmailVerify,
    IdentityRead,
    MessageResponse,
    PasswordChange,
    PasswordReset,
    PasswordResetRequest,
    TokenResponse,
)
from gymdesk.services.audit_service import AuditAction, AuditService
from gymdesk.services.authorization import (
    AdminGrant,
    AuthorizationService,
    effective_permissions,
)
from gymdesk.services.credential_service import VerificationPurpose
from gymdesk.services.notification_service import dispatch_verification_code
from gymdesk.services.session_service import (
    Identity,
    SessionManager,
    clear_session_cookie,
    set_session_cookie,
)
from gymdesk.services.tenant_service import TenantService
from gymdesk.services.user_service import UserService

router = APIRouter(tags=["Authentication"])

_RESET_SENT = "If that email is registered, a reset code has been sent"


async def _identity_read(
    db: AsyncSession, identity: Identity, catalog: PermissionCatalog
) -> IdentityRead:
    if identity.is_super_admin:
        return IdentityRead(
            user_id=identity.user_id,
            tenant_id=None,
            role=identity.role_name,
            display_name=identity.display_name,
            is_admin=False,
            is_super_admin=True,
            permissions=[],
        )
    grant = await AuthorizationService.resolve_grant(db, identity, catalog)
    return IdentityRead(
        user_id=identity.user_id,
        tenant_id=identity.tenant_id,
        role=identity.role_name,
        display_name=identity.display_name,
        is_admin=isinstance(grant, AdminGrant),
        permissions=sorted(effective_permissions(grant, catalog)),
    )


@router.post(
    "/auth/login",
    response_model=TokenResponse,
    summary="Login and start a session",
)
async def login(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
    catalog: Annotated[PermissionCatalog, Depends(get_permission_catalog)],
) -> TokenResponse:
    """
    Authenticate with email + password. The session token is set as an
    HTTP-only cookie and also returned for Bearer-style clients. Users who
    have not confirmed their email yet are refused with 403.

    Via curl: send as form data (not JSON):
        -d "username=you@gym.com&password=yourpassword"
    """
    # form_data.username holds the email (OAuth2 form field name)
    user = await UserService.authenticate(db, form_data.username, form_data.password)
    if user is None:
        raise Unauthenticated("Invalid email or password")

    company = await TenantService.get_company_by_id(db, user.company_id)
    if company is None or not company.is_active:
        raise Forbidden("Company account is inactive")
    if not user.is_verified:
        raise Forbidden("Please verify your email before logging in")

    role = await UserService.role_name(db, user)
    token, expires_at = await SessionManager.create_session(db, user.id, user.company_id, role)
    await UserService.mark_login(db, user)
    await AuditService.record(
        db,
        tenant_id=user.company_id,
        action=AuditAction.LOGIN,
        entity_type="user",
        entity_id=user.id,
        details=f"{user.name} logged in",
        user_role=role,
        user_id=user.id,
    )
    set_session_cookie(response, token, expires_at)

    identity = Identity(
        user_id=user.id,
        tenant_id=user.company_id,
        role_name=role,
        display_name=user.name,
        role_id=user.role_id,
        email=user.email,
    )
    return TokenResponse(
        access_token=token,
        expires_at=expires_at,
        user=await _identity_read(db, identity, catalog),
    )


@router.post("/auth/logout", response_model=MessageResponse, summary="End the current session")
async def logout(
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
    token: Annotated[Optional[str], Depends(get_session_token)],
    identity: Annotated[Optional[Identity], Depends(get_optional_identity)],
) -> MessageResponse:
    """Idempotent: logging out without a live session still succeeds."""
    if identity is not None and identity.tenant_id is not None:
        await AuditService.record_for(
            db, identity, AuditAction.LOGOUT, "user", identity.user_id,
            f"{identity.display_name} logged out",
        )
    await SessionManager.destroy_session(db, token)
    clear_session_cookie(response)
    return MessageResponse(message="Logged out")


@router.post(
    "/auth/logout-all",
    response_model=MessageResponse,
    summary="End every session of the current user",
)
async def logout_all(
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission(None))],
) -> MessageResponse:
    count = await SessionManager.destroy_all_sessions(db, identity.user_id)
    clear_session_cookie(response)
    return MessageResponse(message=f"Logged out of {count} session(s)")


@router.get("/auth/me", response_model=IdentityRead, summary="Current identity")
async def get_me(
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(get_identity)],
    catalog: Annotated[PermissionCatalog, Depends(get_permission_catalog)],
) -> IdentityRead:
    return await _identity_read(db, identity, catalog)


@router.post("/auth/verify-email", response_model=MessageResponse)
async def verify_email(
    body: EmailVerify,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MessageResponse:
    await UserService.verify_email(db, body.email, body.code)
    return MessageResponse(message="Email verified")


@router.post("/auth/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: PasswordResetRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MessageResponse:
    """Same answer whether or not the email exists."""
    issued = await UserService.request_password_reset(db, body.email)
    if issued is not None:
        user, code = issued
        await dispatch_verification_code(user.email, code, VerificationPurpose.password_reset)
    return MessageResponse(message=_RESET_SENT)


@router.post("/auth/reset-password", response_model=MessageResponse)
async def reset_password(
    body: PasswordReset,
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MessageResponse:
    await UserService.reset_password(db, body.email, body.code, body.new_password)
    clear_session_cookie(response)
    return MessageResponse(message="Password has been reset. Please log in again.")


@router.post("/auth/change-password", response_model=MessageResponse)
async def change_password(
    body: PasswordChange,
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission(None))],
) -> MessageResponse:
    await UserService.change_password(db, identity, body.current_password, body.new_password)
    clear_session_cookie(response)
    return MessageResponse(message="Password changed. Please log in again.")


@router.post(
    "/superadmin/login",
    response_model=TokenResponse,
    summary="Platform operator login",
)
async def super_admin_login(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TokenResponse:
    admin = await UserService.authenticate_super_admin(
        db, form_data.username, form_data.password
    )
    if admin is None:
        raise Unauthenticated("Invalid email or password")

    token, expires_at = SessionManager.create_super_admin_token(admin.id)
    set_session_cookie(response, token, expires_at)
    return TokenResponse(
        access_token=token,
        expires_at=expires_at,
        user=IdentityRead(
            user_id=admin.id,
            tenant_id=None,
            role=SUPER_ADMIN_ROLE,
            display_name=admin.name,
            is_admin=False,
            is_super_admin=True,
            permissions=[],
        ),
    )
