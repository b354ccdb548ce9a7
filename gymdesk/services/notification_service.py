"""
services/notification_service.py
--------------------------------
Outbound notification hook.

Email delivery is handled by an external mailer; this module is the seam
it plugs into. The default implementation only records that a code went
out, without the code itself.
"""

from gymdesk.core.logging import get_logger
from gymdesk.services.credential_service import VerificationPurpose

logger = get_logger(__name__)


async def dispatch_verification_code(
    email: str, code: str, purpose: VerificationPurpose
) -> None:
    logger.info("Verification code issued", email=email, purpose=purpose.value)
