"""
Hierarchy Tree Service

Fetches nodes and assets for a tenant scope, assembles them into one forest
and routes writes through a fire-and-refetch mutation gateway.

Usage:
    from hierarchy_service.core.services.hierarchy_tree import HierarchyTreeFacade

    facade = HierarchyTreeFacade(scope)
    await facade.refetch()
    await facade.add_asset({"name": "Chiller 1", "hierarchy_node_id": "node-plant-room"})
"""

from hierarchy_service.core.services.hierarchy_tree.assembly import (
    AssembledForest,
    assemble_forest,
    count_assets_recursively,
    subtree_asset_total,
)
from hierarchy_service.core.services.hierarchy_tree.facade import HierarchyTreeFacade
from hierarchy_service.core.services.hierarchy_tree.fetcher import (
    HierarchyFetcher,
    gather_or_cancel,
    get_hierarchy_fetcher,
)
from hierarchy_service.core.services.hierarchy_tree.mutations import (
    HierarchyMutationService,
    get_mutation_service,
)
from hierarchy_service.core.services.hierarchy_tree.path_utils import (
    build_breadcrumb,
    collect_descendant_ids,
    materialize_path,
)
from hierarchy_service.core.services.hierarchy_tree.stats import compute_hierarchy_stats

__all__ = [
    "AssembledForest",
    "assemble_forest",
    "count_assets_recursively",
    "subtree_asset_total",
    "HierarchyTreeFacade",
    "HierarchyFetcher",
    "gather_or_cancel",
    "get_hierarchy_fetcher",
    "HierarchyMutationService",
    "get_mutation_service",
    "build_breadcrumb",
    "collect_descendant_ids",
    "materialize_path",
    "compute_hierarchy_stats",
]
