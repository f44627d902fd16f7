"""
Raw collection fetcher for the hierarchy tree.

Reads LevelDefs, nodes and assets from Supabase, each scoped independently.
Assets are always fetched as one flat list so assembly sees the complete
asset graph.

The supabase-py client is synchronous; every call runs in the default
executor so the event loop is never blocked.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional, Tuple

from hierarchy_service.app.config import Settings, get_settings
from hierarchy_service.app.models.hierarchy_models import (
    HierarchyAssetRecord,
    HierarchyLevel,
    HierarchyNodeRecord,
)
from hierarchy_service.core.exceptions import FetchError
from hierarchy_service.core.observability.logging import error_log_extra
from hierarchy_service.core.security.tenant_scope import TenantScope
from hierarchy_service.core.utils.supabase_client import get_supabase_client

logger = logging.getLogger(__name__)

NODE_SELECT = "*, hierarchy_levels!hierarchy_level_id (id, name, level_order, icon_name, color_code)"


async def gather_or_cancel(*aws) -> list:
    """
    Await several coroutines together.

    If one fails, the others still pending are cancelled and awaited before
    the error propagates, so no fetch outlives the request that started it.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        raise


class HierarchyFetcher:
    """Scoped reads of the three hierarchy collections."""

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

    def _apply_scope(self, query, scope: TenantScope):
        org_filter = scope.organization_filter
        if org_filter is not None:
            query = query.eq(self.settings.tenant_column, org_filter)
        return query

    async def _run(self, collection: str, label: str, fetch: Callable[[], List[Any]]) -> List[Any]:
        """Run a blocking fetch in the executor, wrapping any failure in FetchError."""
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, fetch)
        except Exception as e:
            error = FetchError(f"Failed to fetch {label}: {e}", collection=collection, original_error=e)
            logger.error(error.message, extra=error_log_extra(error))
            raise error from e

    # ==========================================================================
    # Collections
    # ==========================================================================

    async def fetch_levels(self, scope: TenantScope, include_inactive: bool = False) -> List[HierarchyLevel]:
        """Fetch LevelDefs ordered by level_order."""
        if not scope.is_resolved:
            return []

        def run_query() -> List[HierarchyLevel]:
            query = self.client.table(self.settings.hierarchy_levels_table).select("*")
            query = self._apply_scope(query, scope)
            if not include_inactive:
                query = query.eq("is_active", True)
            result = query.order("level_order").execute()
            return [HierarchyLevel.model_validate(row) for row in (result.data or [])]

        levels = await self._run("levels", "hierarchy levels", run_query)
        logger.debug(f"Fetched {len(levels)} hierarchy levels")
        return levels

    async def fetch_nodes(self, scope: TenantScope) -> List[HierarchyNodeRecord]:
        """Fetch nodes with their level joined, ordered by name."""
        if not scope.is_resolved:
            return []

        def run_query() -> List[HierarchyNodeRecord]:
            query = self.client.table(self.settings.hierarchy_nodes_table).select(NODE_SELECT)
            query = self._apply_scope(query, scope)
            result = query.order("name").execute()
            return [HierarchyNodeRecord.model_validate(row) for row in (result.data or [])]

        nodes = await self._run("nodes", "hierarchy nodes", run_query)
        logger.debug(f"Fetched {len(nodes)} hierarchy nodes")
        return nodes

    async def fetch_assets(self, scope: TenantScope) -> List[HierarchyAssetRecord]:
        """Fetch every asset in scope as one flat list, ordered by name."""
        if not scope.is_resolved:
            return []

        def run_query() -> List[HierarchyAssetRecord]:
            query = self.client.table(self.settings.assets_table).select("*")
            query = self._apply_scope(query, scope)
            result = query.order("name").execute()
            return [HierarchyAssetRecord.model_validate(row) for row in (result.data or [])]

        assets = await self._run("assets", "assets", run_query)
        logger.debug(f"Fetched {len(assets)} assets")
        return assets

    async def fetch_collections(
        self,
        scope: TenantScope
    ) -> Tuple[List[HierarchyNodeRecord], List[HierarchyAssetRecord]]:
        """
        Fetch nodes and assets together. Both succeed or the call fails.

        An unresolved scope returns two empty lists without touching the store.
        """
        if not scope.is_resolved:
            logger.debug("Scope unresolved; returning empty collections")
            return [], []

        if not self.settings.concurrent_fetch:
            nodes = await self.fetch_nodes(scope)
            assets = await self.fetch_assets(scope)
            return nodes, assets

        nodes, assets = await gather_or_cancel(self.fetch_nodes(scope), self.fetch_assets(scope))
        return nodes, assets


_fetcher: Optional[HierarchyFetcher] = None


def get_hierarchy_fetcher() -> HierarchyFetcher:
    """Get the process-wide fetcher."""
    global _fetcher
    if _fetcher is None:
        _fetcher = HierarchyFetcher()
    return _fetcher
