"""
Summary statistics for an assembled hierarchy.
"""

import logging
from typing import Dict, Sequence

from hierarchy_service.app.models.hierarchy_models import HierarchyLevel, HierarchyStats
from hierarchy_service.core.services.hierarchy_tree.assembly import AssembledForest, iter_tree

logger = logging.getLogger(__name__)


def compute_hierarchy_stats(levels: Sequence[HierarchyLevel], forest: AssembledForest) -> HierarchyStats:
    """
    Compute level/node/asset totals, node depth, asset coverage and
    per-level node counts.

    Depth counts nodes only (roots at 1). Coverage is the share of assets
    that ended up inside some node's subtree.
    """
    level_names = {level.id: level.name for level in levels}

    max_depth = 0
    for item, depth in iter_tree([root for root in forest.roots if root.kind == "node"]):
        if item.kind == "node":
            max_depth = max(max_depth, depth)

    nodes_by_level: Dict[str, int] = {}
    active_nodes = 0
    for node in forest.node_index.values():
        if node.status == "active":
            active_nodes += 1

        if node.hierarchy_level_id:
            key = level_names.get(node.hierarchy_level_id) or node.hierarchy_level_id
        else:
            key = "unassigned"
        nodes_by_level[key] = nodes_by_level.get(key, 0) + 1

    total_assets = forest.total_assets
    if total_assets:
        placed = sum(root.asset_count for root in forest.roots if root.kind == "node")
        coverage = round(placed / total_assets * 100, 2)
    else:
        coverage = 100.0

    stats = HierarchyStats(
        total_levels=len(levels),
        total_nodes=forest.total_nodes,
        total_assets=total_assets,
        max_depth=max_depth,
        coverage=coverage,
        active_nodes=active_nodes,
        inactive_nodes=forest.total_nodes - active_nodes,
        nodes_by_level=nodes_by_level,
    )
    logger.debug(f"Hierarchy stats: {stats.model_dump()}")
    return stats
