"""
Path utilities for the location hierarchy.

Provides functions for:
- Building root-to-node breadcrumbs from an assembled forest
- Materializing the advisory display path
- Collecting descendant ids of a tree item
"""

from typing import List, Optional, Set, Tuple

from hierarchy_service.app.models.hierarchy_models import BreadcrumbEntry
from hierarchy_service.core.services.hierarchy_tree.assembly import AssembledForest

PATH_SEPARATOR = " / "


def build_breadcrumb(node_id: str, forest: AssembledForest) -> List[BreadcrumbEntry]:
    """
    Build the root-to-node breadcrumb for a node.

    Walks the parent links the assembly actually placed, so the trail always
    matches the node's position in the forest. A parent_id that assembly
    dropped (missing parent, self reference, cycle) ends the trail there.

    Args:
        node_id: Node to describe
        forest: Assembled forest holding the node

    Returns:
        Breadcrumb entries ordered from root to node; empty if node_id is unknown

    Examples:
        >>> [e.name for e in build_breadcrumb("room", forest)]
        ['North Site', 'Building 2', 'Plant Room']
    """
    trail: List[BreadcrumbEntry] = []
    visited: Set[str] = set()
    current: Optional[str] = node_id

    while current and current not in visited:
        node = forest.node_index.get(current)
        if node is None:
            break
        visited.add(current)
        level_name = node.level_info.name if node.level_info else None
        trail.append(BreadcrumbEntry(id=node.id, name=node.name, level=level_name))
        current = forest.node_links.get(current)

    trail.reverse()
    return trail


def materialize_path(names: List[str]) -> str:
    """
    Join names into a display path.

    Examples:
        >>> materialize_path(['North Site', 'Building 2'])
        'North Site / Building 2'
        >>> materialize_path([])
        ''
    """
    return PATH_SEPARATOR.join(name for name in names if name)


def breadcrumb_path(node_id: str, forest: AssembledForest) -> str:
    """Display path for a node, root first."""
    return materialize_path([entry.name for entry in build_breadcrumb(node_id, forest)])


def collect_descendant_ids(item) -> Set[str]:
    """
    Collect ids of every descendant of a tree item (nodes and assets alike).

    The item itself is not included.
    """
    found: Set[str] = set()
    seen: Set[Tuple[str, str]] = set()
    stack = list(item.children)
    while stack:
        child = stack.pop()
        key = (child.kind, child.id)
        if key in seen:
            continue
        seen.add(key)
        found.add(child.id)
        stack.extend(child.children)
    return found
