"""
api/routes/tenants.py
---------------------
Company onboarding and platform (super admin) endpoints.

POST  /companies/register  Public: onboard a gym and its first admin.
GET   /superadmin/companies  List every company.
PATCH /superadmin/companies/{company_id}  Activate / deactivate a company.
POST  /superadmin/memberships/auto-resume  Resume holds whose planned end has arrived.
POST  /superadmin/maintenance/cleanup  Purge expired sessions and codes.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.db.session import get_db
from gymdesk.dependencies import require_super_admin
from gymdesk.schemas.membership import AutoResumeResponse
from gymdesk.schemas.tenant import CompanyRead, CompanyRegister, CompanyStatusUpdate
from gymdesk.schemas.user import MessageResponse
from gymdesk.services.credential_service import CredentialService, VerificationPurpose
from gymdesk.services.membership_service import MembershipService
from gymdesk.services.notification_service import dispatch_verification_code
from gymdesk.services.session_service import Identity, SessionManager
from gymdesk.services.tenant_service import TenantService

router = APIRouter(tags=["Companies"])


@router.post(
    "/companies/register",
    response_model=CompanyRead,
    status_code=status.HTTP_201_CREATED,
    summary="Onboard a new company (gym)",
)
async def register_company(
    body: CompanyRegister,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CompanyRead:
    """
    Public endpoint, no authentication required. Creates the company, its
    protected admin role and the first admin user, and sends that user an
    email-verification code.
    """
    company, admin, code = await TenantService.register_company(db, body)
    await dispatch_verification_code(admin.email, code, VerificationPurpose.email_verification)
    return CompanyRead.model_validate(company)


@router.get(
    "/superadmin/companies",
    response_model=list[CompanyRead],
    summary="List all companies (super admin only)",
)
async def list_companies(
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Identity, Depends(require_super_admin)],
) -> list[CompanyRead]:
    companies = await TenantService.list_companies(db)
    return [CompanyRead.model_validate(c) for c in companies]


@router.patch(
    "/superadmin/companies/{company_id}",
    response_model=CompanyRead,
    summary="Activate or deactivate a company (super admin only)",
)
async def update_company_status(
    company_id: str,
    body: CompanyStatusUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Identity, Depends(require_super_admin)],
) -> CompanyRead:
    company = await TenantService.set_active(db, company_id, body.is_active)
    return CompanyRead.model_validate(company)


@router.post(
    "/superadmin/memberships/auto-resume",
    response_model=AutoResumeResponse,
    summary="Resume every hold whose planned end date has arrived",
)
async def auto_resume(
    db: Annotated[AsyncSession, Depends(get_db)],
    operator: Annotated[Identity, Depends(require_super_admin)],
) -> AutoResumeResponse:
    """Meant to be called once a day by an external scheduler."""
    count = await MembershipService.auto_resume_due_holds(db, actor_name=operator.display_name)
    return AutoResumeResponse(message=f"Auto-resumed {count} memberships", count=count)


@router.post(
    "/superadmin/maintenance/cleanup",
    response_model=MessageResponse,
    summary="Delete expired sessions and verification codes",
)
async def cleanup(
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Identity, Depends(require_super_admin)],
) -> MessageResponse:
    sessions = await SessionManager.cleanup_expired_sessions(db)
    codes = await CredentialService.cleanup_expired_codes(db)
    return MessageResponse(message=f"Removed {sessions} sessions and {codes} codes")
