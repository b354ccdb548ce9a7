"""
core/errors.py
--------------
Domain exception hierarchy.

Services raise these instead of HTTPException so business logic stays
transport-agnostic; main.py maps every GymDeskError to a JSON body of the
form {"success": false, "message": ...} with the class's status code.

The message is always client-safe. Raw database / driver errors never end
up here; they fall through to the generic 500 handler.
"""

from typing import Dict, Optional

from fastapi import status


class GymDeskError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


class Unauthenticated(GymDeskError):
    """No session, or the session is invalid / expired / revoked."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class Forbidden(GymDeskError):
    """Authenticated but not allowed (missing permission, protected role)."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden - Insufficient permissions"


class TenantContextMissing(Forbidden):
    """A tenant-scoped operation was invoked without a tenant."""

    default_message = "Company context required"


class NotFound(GymDeskError):
    """Missing, or owned by another tenant. Both look identical to callers."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class InvalidRequest(GymDeskError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class InvalidTransition(InvalidRequest):
    """Illegal membership lifecycle transition."""

    default_message = "Invalid membership state transition"


class Conflict(GymDeskError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"
