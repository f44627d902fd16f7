"""
Mutation gateway for hierarchy nodes, assets and LevelDefs.

Every write:
1. Strips derived-only fields (tree placement, counts, tenant id, id)
2. Normalizes empty-string foreign keys to NULL
3. Runs scoped against the store
4. On success, awaits the caller's on_success hook (a full refetch)

No in-memory tree is patched here; the caller rebuilds from the store.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import BaseModel

from hierarchy_service.app.config import Settings, get_settings
from hierarchy_service.core.exceptions import (
    ErrorCode,
    HierarchyValidationError,
    MutationError,
    RecordNotFoundError,
)
from hierarchy_service.core.observability.logging import error_log_extra
from hierarchy_service.core.security.tenant_scope import TenantScope
from hierarchy_service.core.utils.supabase_client import get_supabase_client

logger = logging.getLogger(__name__)

OnSuccess = Optional[Callable[[], Awaitable[Any]]]
Payload = Union[BaseModel, Dict[str, Any]]

# Fields the tree adds or the store owns; never written back
DERIVED_FIELDS = frozenset({
    "id",
    "children",
    "asset_count",
    "kind",
    "node_type",
    "level_info",
    "hierarchy_levels",
    "organization_id",
})

FOREIGN_KEY_FIELDS = ("parent_id", "parent_level_id", "hierarchy_node_id", "parent_asset_id")


@dataclass(frozen=True)
class _Entity:
    name: str
    label: str
    table_setting: str
    parent_field: str


NODE = _Entity(name="node", label="hierarchy node", table_setting="hierarchy_nodes_table", parent_field="parent_id")
ASSET = _Entity(name="asset", label="asset", table_setting="assets_table", parent_field="parent_asset_id")
LEVEL = _Entity(name="level", label="hierarchy level", table_setting="hierarchy_levels_table", parent_field="parent_level_id")


class HierarchyMutationService:
    """Scoped create/update/delete for the three hierarchy collections."""

    def __init__(self, client: Any = None, settings: Optional[Settings] = None):
        self._client = client
        self._settings = settings

    @property
    def client(self):
        """Lazy-load the Supabase client."""
        if self._client is None:
            self._client = get_supabase_client(self.settings)
        return self._client

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    # ==========================================================================
    # Payload preparation
    # ==========================================================================

    def prepare_payload(
        self,
        data: Payload,
        entity: _Entity,
        record_id: Optional[str] = None,
        partial: bool = False
    ) -> Dict[str, Any]:
        """
        Turn caller data into a store row.

        Models are dumped in JSON mode; partial (update) models send only the
        fields the caller set.
        """
        if isinstance(data, BaseModel):
            payload = data.model_dump(mode="json", exclude_unset=partial)
        else:
            payload = dict(data)

        stripped = DERIVED_FIELDS | {self.settings.tenant_column}
        payload = {k: v for k, v in payload.items() if k not in stripped}

        for key in FOREIGN_KEY_FIELDS:
            if key in payload and isinstance(payload[key], str) and payload[key].strip() == "":
                payload[key] = None

        if record_id is not None and payload.get(entity.parent_field) == record_id:
            raise HierarchyValidationError(
                f"A {entity.label} cannot be its own parent",
                error_code=ErrorCode.INVALID_PARENT,
                context={"id": record_id, entity.parent_field: record_id}
            )

        return payload

    def _table(self, entity: _Entity):
        return self.client.table(getattr(self.settings, entity.table_setting))

    def _apply_scope(self, query, scope: TenantScope):
        org_filter = scope.organization_filter
        if org_filter is not None:
            query = query.eq(self.settings.tenant_column, org_filter)
        return query

    async def _execute(self, verb: str, entity: _Entity, operation: str, run: Callable[[], Any]) -> Any:
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, run)
        except Exception as e:
            error = MutationError(f"Failed to {verb} {entity.label}: {e}", operation=operation, original_error=e)
            logger.error(error.message, extra=error_log_extra(error))
            raise error from e

    # ==========================================================================
    # Generic writes
    # ==========================================================================

    async def _create(
        self,
        scope: TenantScope,
        entity: _Entity,
        data: Payload,
        on_success: OnSuccess
    ) -> Optional[Dict[str, Any]]:
        operation = f"create_{entity.name}"
        organization_id = scope.require_organization()
        payload = self.prepare_payload(data, entity)
        payload[self.settings.tenant_column] = organization_id

        def run():
            return self._table(entity).insert(payload).execute()

        result = await self._execute("add", entity, operation, run)
        record = result.data[0] if result.data else None
        logger.info(
            f"Created {entity.label} {record.get('id') if record else '?'}",
            extra={"organization_id": organization_id}
        )

        if on_success is not None:
            await on_success()
        return record

    async def _update(
        self,
        scope: TenantScope,
        entity: _Entity,
        record_id: str,
        data: Payload,
        on_success: OnSuccess
    ) -> Dict[str, Any]:
        operation = f"update_{entity.name}"
        scope.require_resolved()
        payload = self.prepare_payload(data, entity, record_id=record_id, partial=True)
        if not payload:
            raise HierarchyValidationError(
                f"No updatable fields provided for {entity.label} {record_id}",
                context={"id": record_id}
            )

        def run():
            query = self._table(entity).update(payload).eq("id", record_id)
            return self._apply_scope(query, scope).execute()

        result = await self._execute("update", entity, operation, run)
        if not result.data:
            raise RecordNotFoundError(
                f"Failed to update {entity.label}: {record_id} not found",
                operation=operation,
                context={"id": record_id}
            )

        logger.info(f"Updated {entity.label} {record_id}")
        if on_success is not None:
            await on_success()
        return result.data[0]

    async def _delete(
        self,
        scope: TenantScope,
        entity: _Entity,
        record_id: str,
        on_success: OnSuccess
    ) -> Optional[Dict[str, Any]]:
        operation = f"delete_{entity.name}"
        scope.require_resolved()

        def run():
            query = self._table(entity).delete().eq("id", record_id)
            return self._apply_scope(query, scope).execute()

        result = await self._execute("delete", entity, operation, run)
        if result.data:
            logger.info(f"Deleted {entity.label} {record_id}")
            record = result.data[0]
        else:
            logger.warning(f"Delete of {entity.label} {record_id} matched no rows")
            record = None

        if on_success is not None:
            await on_success()
        return record

    # ==========================================================================
    # Nodes
    # ==========================================================================

    async def create_node(self, scope: TenantScope, data: Payload, on_success: OnSuccess = None):
        return await self._create(scope, NODE, data, on_success)

    async def update_node(self, scope: TenantScope, node_id: str, data: Payload, on_success: OnSuccess = None):
        return await self._update(scope, NODE, node_id, data, on_success)

    async def delete_node(self, scope: TenantScope, node_id: str, on_success: OnSuccess = None):
        return await self._delete(scope, NODE, node_id, on_success)

    # ==========================================================================
    # Assets
    # ==========================================================================

    async def create_asset(self, scope: TenantScope, data: Payload, on_success: OnSuccess = None):
        return await self._create(scope, ASSET, data, on_success)

    async def update_asset(self, scope: TenantScope, asset_id: str, data: Payload, on_success: OnSuccess = None):
        return await self._update(scope, ASSET, asset_id, data, on_success)

    async def delete_asset(self, scope: TenantScope, asset_id: str, on_success: OnSuccess = None):
        return await self._delete(scope, ASSET, asset_id, on_success)

    # ==========================================================================
    # Levels
    # ==========================================================================

    async def create_level(self, scope: TenantScope, data: Payload, on_success: OnSuccess = None):
        return await self._create(scope, LEVEL, data, on_success)

    async def update_level(self, scope: TenantScope, level_id: str, data: Payload, on_success: OnSuccess = None):
        return await self._update(scope, LEVEL, level_id, data, on_success)

    async def delete_level(self, scope: TenantScope, level_id: str, on_success: OnSuccess = None):
        return await self._delete(scope, LEVEL, level_id, on_success)


_mutation_service: Optional[HierarchyMutationService] = None


def get_mutation_service() -> HierarchyMutationService:
    """Get the process-wide mutation service."""
    global _mutation_service
    if _mutation_service is None:
        _mutation_service = HierarchyMutationService()
    return _mutation_service
