"""
Tree access facade.

The single contract UI and API code depend on: a tenant-scoped forest with
loading/error state, a refetch, and fire-and-refetch writes. Every write
triggers a full fetch + assembly; the forest is never patched in place.
"""

import logging
from typing import List, Optional, Sequence

from hierarchy_service.app.models.hierarchy_models import (
    AssetTreeItem,
    BreadcrumbEntry,
    HierarchyLevel,
    HierarchyStats,
    HierarchyTreeResponse,
    IntegrityWarning,
    NodeTreeItem,
)
from hierarchy_service.core.exceptions import (
    ErrorCode,
    FetchError,
    HierarchyServiceError,
    HierarchyValidationError,
)
from hierarchy_service.core.security.tenant_scope import TenantScope
from hierarchy_service.core.services.hierarchy_tree.assembly import (
    AnyTreeItem,
    AssembledForest,
    assemble_forest,
)
from hierarchy_service.core.services.hierarchy_tree.fetcher import HierarchyFetcher, get_hierarchy_fetcher
from hierarchy_service.core.services.hierarchy_tree.mutations import (
    HierarchyMutationService,
    Payload,
    get_mutation_service,
)
from hierarchy_service.core.services.hierarchy_tree.path_utils import (
    build_breadcrumb,
    collect_descendant_ids,
    materialize_path,
)
from hierarchy_service.core.services.hierarchy_tree.stats import compute_hierarchy_stats

logger = logging.getLogger(__name__)


def _get_field(data: Payload, key: str) -> Optional[str]:
    """Read a field the caller actually supplied, from a model or a dict."""
    if isinstance(data, dict):
        return data.get(key) or None
    if key in data.model_fields_set:
        return getattr(data, key) or None
    return None


class HierarchyTreeFacade:
    """Tenant-scoped hierarchy forest with fire-and-refetch writes."""

    def __init__(
        self,
        scope: TenantScope,
        fetcher: Optional[HierarchyFetcher] = None,
        mutations: Optional[HierarchyMutationService] = None
    ):
        self.scope = scope
        self._fetcher = fetcher or get_hierarchy_fetcher()
        self._mutations = mutations or get_mutation_service()
        self._forest = AssembledForest()
        self.loading = False
        self.error: Optional[str] = None

    # ==========================================================================
    # State
    # ==========================================================================

    @property
    def roots(self) -> List[AnyTreeItem]:
        return self._forest.roots

    @property
    def warnings(self) -> List[IntegrityWarning]:
        return self._forest.warnings

    @property
    def forest(self) -> AssembledForest:
        return self._forest

    def find_node(self, node_id: str) -> Optional[NodeTreeItem]:
        return self._forest.node_index.get(node_id)

    def find_asset(self, asset_id: str) -> Optional[AssetTreeItem]:
        return self._forest.asset_index.get(asset_id)

    def breadcrumb(self, node_id: str) -> List[BreadcrumbEntry]:
        return build_breadcrumb(node_id, self._forest)

    def stats(self, levels: Sequence[HierarchyLevel]) -> HierarchyStats:
        return compute_hierarchy_stats(levels, self._forest)

    def snapshot(self) -> HierarchyTreeResponse:
        """Current forest as the API response model."""
        return HierarchyTreeResponse(
            organization_id=self.scope.organization_id,
            cross_tenant=self.scope.cross_tenant,
            roots=list(self._forest.roots),
            total_nodes=self._forest.total_nodes,
            total_assets=self._forest.total_assets,
            warnings=list(self._forest.warnings),
        )

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def refetch(self) -> AssembledForest:
        """
        Re-fetch both collections and rebuild the forest from scratch.

        On FetchError the forest is cleared, the error recorded, and the
        exception re-raised. A half-built tree is never kept.
        """
        self.loading = True
        try:
            nodes, assets = await self._fetcher.fetch_collections(self.scope)
        except FetchError as e:
            self._forest = AssembledForest()
            self.error = e.message
            raise
        finally:
            self.loading = False

        self._forest = assemble_forest(nodes, assets)
        self.error = None
        return self._forest

    async def _refresh_after_write(self) -> None:
        try:
            await self.refetch()
        except FetchError as e:
            logger.error(f"Refetch after write failed: {e.message}")

    async def _write(self, pending):
        try:
            return await pending
        except HierarchyServiceError as e:
            self.error = e.message
            raise

    def _reject_descendant_parent(self, item: Optional[AnyTreeItem], new_parent_id: Optional[str], label: str) -> None:
        if item is None or not new_parent_id:
            return
        if new_parent_id in collect_descendant_ids(item):
            raise HierarchyValidationError(
                f"Cannot move {label} {item.id} under its own descendant {new_parent_id}",
                error_code=ErrorCode.INVALID_PARENT,
                context={"id": item.id, "parent_id": new_parent_id}
            )

    # ==========================================================================
    # Node writes
    # ==========================================================================

    async def add_node(self, data: Payload):
        parent_id = _get_field(data, "parent_id")
        name = _get_field(data, "name")
        if not _get_field(data, "path") and parent_id and name and parent_id in self._forest.node_index:
            names = [entry.name for entry in self.breadcrumb(parent_id)]
            path = materialize_path(names + [name])
            if isinstance(data, dict):
                data = {**data, "path": path}
            else:
                data = data.model_copy(update={"path": path})

        return await self._write(
            self._mutations.create_node(self.scope, data, on_success=self._refresh_after_write)
        )

    async def update_node(self, node_id: str, patch: Payload):
        self._reject_descendant_parent(self.find_node(node_id), _get_field(patch, "parent_id"), "node")
        return await self._write(
            self._mutations.update_node(self.scope, node_id, patch, on_success=self._refresh_after_write)
        )

    async def delete_node(self, node_id: str):
        return await self._write(
            self._mutations.delete_node(self.scope, node_id, on_success=self._refresh_after_write)
        )

    # ==========================================================================
    # Asset writes
    # ==========================================================================

    async def add_asset(self, data: Payload):
        return await self._write(
            self._mutations.create_asset(self.scope, data, on_success=self._refresh_after_write)
        )

    async def update_asset(self, asset_id: str, patch: Payload):
        self._reject_descendant_parent(self.find_asset(asset_id), _get_field(patch, "parent_asset_id"), "asset")
        return await self._write(
            self._mutations.update_asset(self.scope, asset_id, patch, on_success=self._refresh_after_write)
        )

    async def delete_asset(self, asset_id: str):
        return await self._write(
            self._mutations.delete_asset(self.scope, asset_id, on_success=self._refresh_after_write)
        )

    # ==========================================================================
    # Level writes
    # ==========================================================================

    async def add_level(self, data: Payload):
        return await self._write(
            self._mutations.create_level(self.scope, data, on_success=self._refresh_after_write)
        )

    async def update_level(self, level_id: str, patch: Payload):
        return await self._write(
            self._mutations.update_level(self.scope, level_id, patch, on_success=self._refresh_after_write)
        )

    async def delete_level(self, level_id: str):
        return await self._write(
            self._mutations.delete_level(self.scope, level_id, on_success=self._refresh_after_write)
        )
