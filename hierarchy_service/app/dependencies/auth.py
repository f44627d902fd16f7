"""
Tenant context dependency for hierarchy routes.

Authenticates the caller from a Supabase access token (Authorization: Bearer),
confirms membership in the requested X-Organization-Id and resolves
cross-tenant access for the token's user.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hierarchy_service.app.config import get_settings
from hierarchy_service.core.security.tenant_scope import (
    TenantScope,
    resolve_tenant_scope,
    validate_organization_id,
)
from hierarchy_service.core.utils.supabase_client import get_supabase_client

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class TenantContext:
    organization_id: Optional[str]
    user_id: Optional[str]
    has_cross_tenant_access: bool


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _run_store_call(fn):
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, fn)


async def check_cross_tenant_access(user_id: Optional[str]) -> bool:
    """
    Ask the store whether a user may read every tenant.

    Any RPC failure is treated as "no access".
    """
    if not user_id:
        return False

    settings = get_settings()

    def run_rpc():
        return get_supabase_client().rpc(settings.cross_tenant_rpc, {"_user_id": user_id}).execute()

    try:
        result = await _run_store_call(run_rpc)
    except Exception as e:
        logger.warning(f"Cross-tenant access check failed for user {user_id}: {e}")
        return False

    return bool(result.data)


async def authenticate_user(token: str) -> str:
    """
    Resolve the user id behind a Supabase access token.

    Raises:
        HTTPException: 401 when the token is rejected or carries no user
    """
    try:
        response = await _run_store_call(lambda: get_supabase_client().auth.get_user(token))
    except Exception as e:
        logger.info(f"Access token rejected: {e}")
        raise _unauthorized("Invalid or expired access token")

    user = getattr(response, "user", None)
    if user is None or not getattr(user, "id", None):
        raise _unauthorized("Invalid or expired access token")
    return str(user.id)


async def is_organization_member(user_id: str, organization_id: str) -> bool:
    """Membership lookup; a failed lookup counts as "not a member"."""
    settings = get_settings()

    def run_lookup():
        return (
            get_supabase_client()
            .table(settings.membership_table)
            .select(settings.tenant_column)
            .eq("user_id", user_id)
            .eq(settings.tenant_column, organization_id)
            .execute()
        )

    try:
        result = await _run_store_call(run_lookup)
    except Exception as e:
        logger.warning(
            f"Membership lookup failed for user {user_id} in {organization_id}: {e}",
            extra={"organization_id": organization_id, "user_id": user_id},
        )
        return False

    return bool(result.data)


async def get_tenant_context(
    x_organization_id: Optional[str] = Header(default=None, alias="X-Organization-Id"),
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> TenantContext:
    """
    Build the caller's tenant context.

    With DISABLE_AUTH the headers are trusted as sent and the cross-tenant
    flag comes from DEV_CROSS_TENANT_ACCESS. Otherwise the user id comes from
    the bearer token only (X-User-Id is ignored) and a named organization must
    be one the user belongs to, unless the user holds the cross-tenant grant.
    """
    settings = get_settings()

    organization_id = x_organization_id or None
    if organization_id is not None:
        # Always validate format, even in dev mode
        try:
            validate_organization_id(organization_id)
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail="Invalid organization id format. Must be 1-64 characters: letters, digits, '_' or '-'.",
            )

    if settings.disable_auth:
        return TenantContext(
            organization_id=organization_id,
            user_id=x_user_id,
            has_cross_tenant_access=settings.dev_cross_tenant_access,
        )

    if credentials is None or not credentials.credentials:
        raise _unauthorized("Authorization bearer token is required")

    user_id = await authenticate_user(credentials.credentials)
    has_cross_tenant_access = await check_cross_tenant_access(user_id)

    if organization_id is not None and not has_cross_tenant_access:
        if not await is_organization_member(user_id, organization_id):
            logger.warning(
                f"User {user_id} denied access to organization {organization_id}",
                extra={"organization_id": organization_id, "user_id": user_id},
            )
            raise _unauthorized("Organization mismatch for this access token")

    return TenantContext(
        organization_id=organization_id,
        user_id=user_id,
        has_cross_tenant_access=has_cross_tenant_access,
    )


async def get_tenant_scope(ctx: TenantContext = Depends(get_tenant_context)) -> TenantScope:
    return resolve_tenant_scope(ctx.organization_id, ctx.has_cross_tenant_access)
