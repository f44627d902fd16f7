"""
Tree assembly for the asset/location hierarchy.

Merges two flat collections into one forest:
- Nodes link to nodes through parent_id (the node graph)
- Assets link to assets through parent_asset_id (the asset graph)
- Assets without an asset parent attach to nodes through hierarchy_node_id

Assembly is pure and synchronous. It never touches the input records; every
run builds fresh tree items, so the result can be thrown away and rebuilt.

Pass order:
1. Index nodes
2. Index assets
3. Link asset -> asset parent
4. Attach assets with no asset parent to their node
5. Link node -> node parent, then compute asset counts
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Union

from hierarchy_service.app.models.hierarchy_models import (
    AssetTreeItem,
    HierarchyAssetRecord,
    HierarchyNodeRecord,
    IntegrityIssue,
    IntegrityWarning,
    NodeTreeItem,
)

logger = logging.getLogger(__name__)

AnyTreeItem = Union[NodeTreeItem, AssetTreeItem]


@dataclass
class AssembledForest:
    """Result of one assembly run."""
    roots: List[AnyTreeItem] = field(default_factory=list)
    node_index: Dict[str, NodeTreeItem] = field(default_factory=dict)
    asset_index: Dict[str, AssetTreeItem] = field(default_factory=dict)
    warnings: List[IntegrityWarning] = field(default_factory=list)
    # child node id -> parent node id, for links actually placed in the forest
    node_links: Dict[str, str] = field(default_factory=dict)

    @property
    def total_nodes(self) -> int:
        return len(self.node_index)

    @property
    def total_assets(self) -> int:
        return len(self.asset_index)


# ==============================================================================
# Counting
# ==============================================================================

def count_assets_recursively(
    items: Sequence[AnyTreeItem],
    _visiting: Optional[Set[Tuple[str, str]]] = None
) -> int:
    """
    Count asset-type descendants of a children list.

    An asset contributes 1 plus its own subtree; a node contributes only its
    subtree. Items already on the current recursion path are skipped.
    """
    if _visiting is None:
        _visiting = set()

    total = 0
    for item in items:
        key = (item.kind, item.id)
        if key in _visiting:
            logger.warning(f"Cycle reached while counting assets at {item.kind} '{item.id}', skipping")
            continue

        _visiting.add(key)
        if item.kind == "asset":
            total += 1 + count_assets_recursively(item.children, _visiting)
        elif item.kind == "node":
            total += count_assets_recursively(item.children, _visiting)
        _visiting.discard(key)

    return total


def subtree_asset_total(item: AnyTreeItem) -> int:
    """Assets contained in a tree item, counting the item itself when it is an asset."""
    if item.kind == "asset":
        return 1 + count_assets_recursively(item.children)
    return item.asset_count


def iter_tree(roots: Sequence[AnyTreeItem]) -> Iterator[Tuple[AnyTreeItem, int]]:
    """Depth-first walk yielding (item, depth) with roots at depth 1."""
    seen: Set[Tuple[str, str]] = set()
    stack: List[Tuple[AnyTreeItem, int]] = [(root, 1) for root in reversed(roots)]
    while stack:
        item, depth = stack.pop()
        key = (item.kind, item.id)
        if key in seen:
            continue
        seen.add(key)
        yield item, depth
        for child in reversed(item.children):
            stack.append((child, depth + 1))


# ==============================================================================
# Linking helpers
# ==============================================================================

def _closes_cycle(child_id: str, parent_id: str, links: Mapping[str, str]) -> bool:
    """True if linking child_id under parent_id would loop back to child_id."""
    current: Optional[str] = parent_id
    steps = 0
    while current is not None:
        if current == child_id:
            return True
        current = links.get(current)
        steps += 1
        if steps > len(links) + 1:
            # links stays acyclic; bound the walk anyway
            return True
    return False


def _warn(
    warnings: List[IntegrityWarning],
    issue: IntegrityIssue,
    entity_kind: str,
    entity_id: str,
    reference_id: Optional[str],
    message: str
) -> None:
    logger.warning(f"Hierarchy integrity: {message}")
    warnings.append(IntegrityWarning(
        issue=issue,
        entity_kind=entity_kind,
        entity_id=entity_id,
        reference_id=reference_id,
        message=message,
    ))


def _link_parent(
    kind: str,
    child_id: str,
    parent_id: Optional[str],
    index: Mapping[str, AnyTreeItem],
    links: Dict[str, str],
    warnings: List[IntegrityWarning]
) -> bool:
    """
    Try to record child_id -> parent_id within one graph.

    Returns False (and records why) when the reference is missing, points at
    itself, or would close a cycle. The caller then treats the child as
    having no parent in this graph.
    """
    if not parent_id:
        return False

    if parent_id == child_id:
        _warn(warnings, IntegrityIssue.SELF_REFERENCE, kind, child_id, parent_id,
              f"{kind} '{child_id}' references itself as parent; placed as root")
        return False

    if parent_id not in index:
        _warn(warnings, IntegrityIssue.DANGLING_PARENT, kind, child_id, parent_id,
              f"{kind} '{child_id}' references missing parent '{parent_id}'; placed as root")
        return False

    if _closes_cycle(child_id, parent_id, links):
        _warn(warnings, IntegrityIssue.CYCLE, kind, child_id, parent_id,
              f"{kind} '{child_id}' -> '{parent_id}' would close a cycle; link dropped")
        return False

    links[child_id] = parent_id
    index[parent_id].children.append(index[child_id])
    return True


# ==============================================================================
# Assembly
# ==============================================================================

def assemble_forest(
    nodes: Sequence[HierarchyNodeRecord],
    assets: Sequence[HierarchyAssetRecord]
) -> AssembledForest:
    """
    Build the unified node/asset forest.

    Roots are returned as unplaced nodes (input order) followed by unplaced
    assets (input order). Within a node, attached assets come before child
    nodes.
    """
    forest = AssembledForest()
    warnings = forest.warnings

    # Pass 1: index nodes
    node_index = forest.node_index
    for record in nodes:
        if record.id in node_index:
            _warn(warnings, IntegrityIssue.DUPLICATE_ID, "node", record.id, None,
                  f"node id '{record.id}' appears more than once; last record wins")
        node_index[record.id] = NodeTreeItem.model_validate(record.model_dump())

    # Pass 2: index assets
    asset_index = forest.asset_index
    for record in assets:
        if record.id in asset_index:
            _warn(warnings, IntegrityIssue.DUPLICATE_ID, "asset", record.id, None,
                  f"asset id '{record.id}' appears more than once; last record wins")
        asset_index[record.id] = AssetTreeItem.model_validate(record.model_dump())

    # Pass 3: asset -> asset parent
    asset_links: Dict[str, str] = {}
    for asset in asset_index.values():
        _link_parent("asset", asset.id, asset.parent_asset_id, asset_index, asset_links, warnings)

    # Pass 4: assets without an asset parent -> node
    root_assets: List[AssetTreeItem] = []
    for asset in asset_index.values():
        if asset.id in asset_links:
            continue

        node_id = asset.hierarchy_node_id
        if node_id:
            node = node_index.get(node_id)
            if node is not None:
                node.children.append(asset)
                continue
            _warn(warnings, IntegrityIssue.DANGLING_ATTACHMENT, "asset", asset.id, node_id,
                  f"asset '{asset.id}' is attached to missing node '{node_id}'; placed as root")

        root_assets.append(asset)

    # Pass 5: node -> node parent, then counts
    node_links = forest.node_links
    root_nodes: List[NodeTreeItem] = []
    for node in node_index.values():
        if not _link_parent("node", node.id, node.parent_id, node_index, node_links, warnings):
            root_nodes.append(node)

    for node in node_index.values():
        node.asset_count = count_assets_recursively(node.children)

    forest.roots = [*root_nodes, *root_assets]

    logger.debug(
        f"Assembled forest: {len(forest.roots)} roots, {forest.total_nodes} nodes, "
        f"{forest.total_assets} assets, {len(warnings)} warnings"
    )
    return forest
