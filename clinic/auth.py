"""
Request Identity

Consumes the identity resolved by the session layer in front of this service.
Nothing here authenticates: the caller's role and assigned branch arrive as
request headers and are turned into an explicit, request-scoped context that
is threaded into every report call.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any

from fastapi import Request, HTTPException, status

from .config import config

logger = logging.getLogger(__name__)


class UserRole(Enum):
    """User roles for authorization"""
    ADMIN = "admin"    # Sees every branch, manages global stats
    STAFF = "staff"    # Sees exactly one branch


@dataclass(frozen=True)
class RequestContext:
    """Identity of the caller for one request"""
    role: UserRole
    branch_id: Optional[int] = None
    user_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses"""
        return {
            'role': self.role.value,
            'branchId': self.branch_id,
            'userId': self.user_id
        }


def parse_role(value: Optional[str]) -> UserRole:
    """
    Map a role string to a UserRole.

    Anything that is not exactly the administrator role is treated as branch
    staff, so an unexpected role never widens visibility.
    """
    try:
        return UserRole((value or "").strip().lower())
    except ValueError:
        return UserRole.STAFF


def parse_branch_id(value: Optional[str]) -> Optional[int]:
    """Parse the branch header; absent or blank means no assigned branch"""
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid branch identity"
        )


async def get_request_context(request: Request) -> RequestContext:
    """
    FastAPI dependency resolving the caller's identity

    Usage:
        @router.get("/api/reports/overall")
        async def overall(context: RequestContext = Depends(get_request_context)):
            ...
    """
    role_value = request.headers.get(config.identity.role_header)
    if not role_value:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    context = RequestContext(
        role=parse_role(role_value),
        branch_id=parse_branch_id(request.headers.get(config.identity.branch_header)),
        user_id=request.headers.get("X-User-Id")
    )
    logger.debug(f"Request identity: role={context.role.value} branch={context.branch_id}")
    return context
