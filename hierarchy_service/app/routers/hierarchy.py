"""
Asset/Location Hierarchy API Routes

Projects the tree access facade over HTTP. Tenant scope comes from the
bearer token and the X-Organization-Id header (see dependencies.auth).

URL Structure: /api/v1/hierarchy/...

Features:
- Assembled node/asset forest with integrity warnings
- Hierarchy statistics and node breadcrumbs
- Node, asset and level writes; each returns the rebuilt forest
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from hierarchy_service.app.dependencies.auth import get_tenant_scope
from hierarchy_service.app.models.hierarchy_models import (
    BreadcrumbResponse,
    CreateAssetRequest,
    CreateLevelRequest,
    CreateNodeRequest,
    HierarchyLevelsListResponse,
    HierarchyMutationResponse,
    HierarchyStats,
    HierarchyTreeResponse,
    UpdateAssetRequest,
    UpdateLevelRequest,
    UpdateNodeRequest,
)
from hierarchy_service.core.security.tenant_scope import TenantScope
from hierarchy_service.core.services.hierarchy_tree import (
    HierarchyFetcher,
    HierarchyMutationService,
    HierarchyTreeFacade,
    get_hierarchy_fetcher,
    gather_or_cancel,
    get_mutation_service,
    materialize_path,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _mutation_response(facade: HierarchyTreeFacade, record: Optional[dict]) -> HierarchyMutationResponse:
    if facade.error:
        return HierarchyMutationResponse(record=record, tree=None, refresh_error=facade.error)
    return HierarchyMutationResponse(record=record, tree=facade.snapshot())


# ============================================================================
# Tree Endpoints
# ============================================================================

@router.get(
    "/tree",
    response_model=HierarchyTreeResponse,
    summary="Get hierarchy tree",
    description="Fetch nodes and assets for the caller's scope and assemble them into one forest"
)
async def get_hierarchy_tree(
    scope: TenantScope = Depends(get_tenant_scope),
    fetcher: HierarchyFetcher = Depends(get_hierarchy_fetcher),
    mutations: HierarchyMutationService = Depends(get_mutation_service)
):
    """Get the assembled node/asset forest."""
    facade = HierarchyTreeFacade(scope, fetcher=fetcher, mutations=mutations)
    await facade.refetch()
    return facade.snapshot()


@router.get(
    "/stats",
    response_model=HierarchyStats,
    summary="Get hierarchy statistics",
    description="Level, node and asset totals, depth, coverage and per-level node counts"
)
async def get_hierarchy_stats(
    scope: TenantScope = Depends(get_tenant_scope),
    fetcher: HierarchyFetcher = Depends(get_hierarchy_fetcher),
    mutations: HierarchyMutationService = Depends(get_mutation_service)
):
    facade = HierarchyTreeFacade(scope, fetcher=fetcher, mutations=mutations)
    levels, _ = await gather_or_cancel(
        fetcher.fetch_levels(scope),
        facade.refetch(),
    )
    return facade.stats(levels)


@router.get(
    "/nodes/{node_id}/breadcrumb",
    response_model=BreadcrumbResponse,
    summary="Get node breadcrumb",
    description="Root-to-node trail of names and level labels"
)
async def get_node_breadcrumb(
    node_id: str,
    scope: TenantScope = Depends(get_tenant_scope),
    fetcher: HierarchyFetcher = Depends(get_hierarchy_fetcher),
    mutations: HierarchyMutationService = Depends(get_mutation_service)
):
    facade = HierarchyTreeFacade(scope, fetcher=fetcher, mutations=mutations)
    await facade.refetch()
    if facade.find_node(node_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Hierarchy node {node_id} not found"
        )

    breadcrumb = facade.breadcrumb(node_id)
    return BreadcrumbResponse(
        node_id=node_id,
        breadcrumb=breadcrumb,
        path=materialize_path([entry.name for entry in breadcrumb]),
    )


# ============================================================================
# Node Endpoints
# ============================================================================

@router.post(
    "/nodes",
    response_model=HierarchyMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create node"
)
async def create_node(
    request: CreateNodeRequest,
    scope: TenantScope = Depends(get_tenant_scope),
    fetcher: HierarchyFetcher = Depends(get_hierarchy_fetcher),
    mutations: HierarchyMutationService = Depends(get_mutation_service)
):
    """Create a node; the advisory path is filled from the parent when omitted."""
    facade = HierarchyTreeFacade(scope, fetcher=fetcher, mutations=mutations)
    if request.parent_id and not request.path:
        await facade.refetch()
    record = await facade.add_node(request)
    return _mutation_response(facade, record)


@router.patch(
    "/nodes/{node_id}",
    response_model=HierarchyMutationResponse,
    summary="Update node"
)
async def update_node(
    node_id: str,
    request: UpdateNodeRequest,
    scope: TenantScope = Depends(get_tenant_scope),
    fetcher: HierarchyFetcher = Depends(get_hierarchy_fetcher),
    mutations: HierarchyMutationService = Depends(get_mutation_service)
):
    """Update a node. Re-parenting under its own descendant is rejected."""
    facade = HierarchyTreeFacade(scope, fetcher=fetcher, mutations=mutations)
    if "parent_id" in request.model_fields_set:
        await facade.refetch()
    record = await facade.update_node(node_id, request)
    return _mutation_response(facade, record)


@router.delete(
    "/nodes/{node_id}",
    response_model=HierarchyMutationResponse,
    summary="Delete node"
)
async def delete_node(
    node_id: str,
    scope: TenantScope = Depends(get_tenant_scope),
    fetcher: HierarchyFetcher = Depends(get_hierarchy_fetcher),
    mutations: HierarchyMutationService = Depends(get_mutation_service)
):
    """Delete a node. Children left behind are promoted by the store's cascade rules."""
    facade = HierarchyTreeFacade(scope, fetcher=fetcher, mutations=mutations)
    record = await facade.delete_node(node_id)
    return _mutation_response(facade, record)


# ============================================================================
# Asset Endpoints
# ============================================================================

@router.post(
    "/assets",
    response_model=HierarchyMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create asset"
)
async def create_asset(
    request: CreateAssetRequest,
    scope: TenantScope = Depends(get_tenant_scope),
    fetcher: HierarchyFetcher = Depends(get_hierarchy_fetcher),
    mutations: HierarchyMutationService = Depends(get_mutation_service)
):
    facade = HierarchyTreeFacade(scope, fetcher=fetcher, mutations=mutations)
    record = await facade.add_asset(request)
    return _mutation_response(facade, record)


@router.patch(
    "/assets/{asset_id}",
    response_model=HierarchyMutationResponse,
    summary="Update asset"
)
async def update_asset(
    asset_id: str,
    request: UpdateAssetRequest,
    scope: TenantScope = Depends(get_tenant_scope),
    fetcher: HierarchyFetcher = Depends(get_hierarchy_fetcher),
    mutations: HierarchyMutationService = Depends(get_mutation_service)
):
    facade = HierarchyTreeFacade(scope, fetcher=fetcher, mutations=mutations)
    if "parent_asset_id" in request.model_fields_set:
        await facade.refetch()
    record = await facade.update_asset(asset_id, request)
    return _mutation_response(facade, record)


@router.delete(
    "/assets/{asset_id}",
    response_model=HierarchyMutationResponse,
    summary="Delete asset"
)
async def delete_asset(
    asset_id: str,
    scope: TenantScope = Depends(get_tenant_scope),
    fetcher: HierarchyFetcher = Depends(get_hierarchy_fetcher),
    mutations: HierarchyMutationService = Depends(get_mutation_service)
):
    facade = HierarchyTreeFacade(scope, fetcher=fetcher, mutations=mutations)
    record = await facade.delete_asset(asset_id)
    return _mutation_response(facade, record)


# ============================================================================
# Level Endpoints
# ============================================================================

@router.get(
    "/levels",
    response_model=HierarchyLevelsListResponse,
    summary="List hierarchy levels",
    description="LevelDefs ordered by level_order"
)
async def list_levels(
    include_inactive: bool = Query(False, description="Include inactive levels"),
    scope: TenantScope = Depends(get_tenant_scope),
    fetcher: HierarchyFetcher = Depends(get_hierarchy_fetcher)
):
    levels = await fetcher.fetch_levels(scope, include_inactive=include_inactive)
    return HierarchyLevelsListResponse(
        levels=levels,
        total=len(levels),
        max_depth=max((level.level_order for level in levels), default=0),
    )


@router.post(
    "/levels",
    response_model=HierarchyMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create hierarchy level"
)
async def create_level(
    request: CreateLevelRequest,
    scope: TenantScope = Depends(get_tenant_scope),
    fetcher: HierarchyFetcher = Depends(get_hierarchy_fetcher),
    mutations: HierarchyMutationService = Depends(get_mutation_service)
):
    facade = HierarchyTreeFacade(scope, fetcher=fetcher, mutations=mutations)
    record = await facade.add_level(request)
    return _mutation_response(facade, record)


@router.patch(
    "/levels/{level_id}",
    response_model=HierarchyMutationResponse,
    summary="Update hierarchy level"
)
async def update_level(
    level_id: str,
    request: UpdateLevelRequest,
    scope: TenantScope = Depends(get_tenant_scope),
    fetcher: HierarchyFetcher = Depends(get_hierarchy_fetcher),
    mutations: HierarchyMutationService = Depends(get_mutation_service)
):
    facade = HierarchyTreeFacade(scope, fetcher=fetcher, mutations=mutations)
    record = await facade.update_level(level_id, request)
    return _mutation_response(facade, record)


@router.delete(
    "/levels/{level_id}",
    response_model=HierarchyMutationResponse,
    summary="Delete hierarchy level"
)
async def delete_level(
    level_id: str,
    scope: TenantScope = Depends(get_tenant_scope),
    fetcher: HierarchyFetcher = Depends(get_hierarchy_fetcher),
    mutations: HierarchyMutationService = Depends(get_mutation_service)
):
    facade = HierarchyTreeFacade(scope, fetcher=fetcher, mutations=mutations)
    record = await facade.delete_level(level_id)
    return _mutation_response(facade, record)
