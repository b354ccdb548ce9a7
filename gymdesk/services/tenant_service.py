"""
services/tenant_service.py
--------------------------
Business logic for company (tenant) onboarding and platform management.

Service layer is responsible for:
  - Constructing queries
  - Enforcing business rules (e.g. unique subdomains)
  - Returning domain objects (ORM models) to the route layer
  - Never returning HTTP responses (that's the route's job)
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.errors import Conflict, NotFound
from gymdesk.core.logging import get_logger
from gymdesk.core.permissions import ADMIN_ROLE_NAME
from gymdesk.core.security import hash_password
from gymdesk.models.role import Role
from gymdesk.models.tenant import Company
from gymdesk.models.user import User
from gymdesk.schemas.tenant import CompanyRegister
from gymdesk.services.audit_service import AuditAction, AuditService
from gymdesk.services.credential_service import CredentialService, VerificationPurpose

logger = get_logger(__name__)


class TenantService:

    @staticmethod
    async def register_company(
        db: AsyncSession, data: CompanyRegister
    ) -> tuple[Company, User, str]:
        """
        Create a company, its protected admin role and its first admin user.

        Returns:
            (company, admin_user, email_verification_code)

        Raises:
            Conflict: subdomain or admin email already taken.
        """
        email = data.admin_email.lower()
        existing = await db.execute(select(User.id).where(User.email == email))
        if existing.first() is not None:
            raise Conflict(f"Email '{email}' is already registered")

        company = Company(name=data.name, subdomain=data.subdomain, is_active=True)
        db.add(company)
        try:
            await db.flush()  # Trigger DB constraints before commit
        except IntegrityError:
            await db.rollback()
            raise Conflict(f"Subdomain '{data.subdomain}' is already taken")

        admin_role = Role(
            company_id=company.id,
            name=ADMIN_ROLE_NAME,
            description="Company administrator (all permissions)",
            is_protected=True,
        )
        db.add(admin_role)
        await db.flush()

        admin = User(
            company_id=company.id,
            name=data.admin_name,
            email=email,
            hashed_password=hash_password(data.admin_password),
            role_id=admin_role.id,
            is_verified=False,
        )
        db.add(admin)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise Conflict(f"Email '{email}' is already registered")

        code = await CredentialService.issue_code(
            db, admin.id, VerificationPurpose.email_verification
        )
        await AuditService.record(
            db,
            tenant_id=company.id,
            action=AuditAction.CREATE,
            entity_type="company",
            entity_id=company.id,
            details=f"Company {company.name} registered by {admin.name}",
            user_role=ADMIN_ROLE_NAME,
            user_id=admin.id,
        )
        await db.refresh(company)
        logger.info("Company registered", tenant_id=company.id, subdomain=company.subdomain)
        return company, admin, code

    @staticmethod
    async def get_company_by_id(db: AsyncSession, company_id: str) -> Company | None:
        result = await db.execute(select(Company).where(Company.id == company_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_company_by_subdomain(db: AsyncSession, subdomain: str) -> Company | None:
        result = await db.execute(
            select(Company).where(Company.subdomain == subdomain.strip().lower())
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_companies(db: AsyncSession) -> list[Company]:
        result = await db.execute(select(Company).order_by(Company.created_at))
        return list(result.scalars().all())

    @staticmethod
    async def set_active(db: AsyncSession, company_id: str, is_active: bool) -> Company:
        """
        Platform operation. Deactivating a company makes every one of its
        sessions resolve as unauthenticated from the next request on.
        """
        company = await TenantService.get_company_by_id(db, company_id)
        if company is None:
            raise NotFound("Company not found")
        company.is_active = is_active
        await db.flush()
        logger.info("Company status changed", tenant_id=company_id, is_active=is_active)
        return company
