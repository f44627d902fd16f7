"""
Tenant scope resolution for multi-tenant isolation.

Every read and write in the hierarchy services takes an explicit TenantScope.
There is no module-level "current organization".
"""

import re
import logging
from dataclasses import dataclass
from typing import Optional

from hierarchy_service.core.exceptions import ErrorCode, TenantScopeError

logger = logging.getLogger(__name__)

ORGANIZATION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def validate_organization_id(organization_id: str) -> str:
    """Validate organization id format to prevent filter injection."""
    if not organization_id or not ORGANIZATION_ID_PATTERN.match(organization_id):
        raise ValueError(f"Invalid organization identifier format: {organization_id!r}")
    return organization_id


@dataclass(frozen=True)
class TenantScope:
    """
    Effective tenant filter for one caller.

    organization_id is the caller's home organization (may be None).
    cross_tenant grants a global read: no organization predicate is applied.
    """
    organization_id: Optional[str] = None
    cross_tenant: bool = False

    @property
    def is_resolved(self) -> bool:
        return self.cross_tenant or self.organization_id is not None

    @property
    def organization_filter(self) -> Optional[str]:
        """Organization id to filter by, or None for a global read."""
        if self.cross_tenant:
            return None
        return self.organization_id

    def require_resolved(self) -> None:
        """Raise TenantScopeError unless this scope may touch the store."""
        if not self.is_resolved:
            raise TenantScopeError()

    def require_organization(self) -> str:
        """Home organization for new records. Cross-tenant callers need one too."""
        self.require_resolved()
        if self.organization_id is None:
            raise TenantScopeError(
                message="An organization id is required to create records",
                error_code=ErrorCode.ORGANIZATION_REQUIRED,
            )
        return self.organization_id


UNRESOLVED_SCOPE = TenantScope()


def resolve_tenant_scope(
    organization_id: Optional[str],
    has_cross_tenant_access: bool
) -> TenantScope:
    """
    Resolve the effective scope from the caller's identity.

    Returns an unresolved scope (never raises) when there is neither an
    organization nor a cross-tenant grant; readers turn that into empty results.
    """
    organization_id = organization_id or None

    if has_cross_tenant_access:
        return TenantScope(organization_id=organization_id, cross_tenant=True)

    if organization_id is None:
        logger.debug("No organization and no cross-tenant grant; scope unresolved")
        return UNRESOLVED_SCOPE

    return TenantScope(organization_id=organization_id)
