"""
Hierarchy models package.

Exports store records, tree items, request and response models.
"""

from .hierarchy_models import (
    # Enums
    AssetStatus,
    AssetCriticality,
    IntegrityIssue,

    # Store records
    HierarchyLevel,
    LevelInfo,
    HierarchyNodeRecord,
    HierarchyAssetRecord,

    # Tree items
    AssetTreeItem,
    NodeTreeItem,
    TreeItem,

    # Request Models
    CreateNodeRequest,
    UpdateNodeRequest,
    CreateAssetRequest,
    UpdateAssetRequest,
    CreateLevelRequest,
    UpdateLevelRequest,

    # Response Models
    IntegrityWarning,
    BreadcrumbEntry,
    BreadcrumbResponse,
    HierarchyStats,
    HierarchyTreeResponse,
    HierarchyMutationResponse,
    HierarchyLevelsListResponse,
)

__all__ = [
    "AssetStatus",
    "AssetCriticality",
    "IntegrityIssue",
    "HierarchyLevel",
    "LevelInfo",
    "HierarchyNodeRecord",
    "HierarchyAssetRecord",
    "AssetTreeItem",
    "NodeTreeItem",
    "TreeItem",
    "CreateNodeRequest",
    "UpdateNodeRequest",
    "CreateAssetRequest",
    "UpdateAssetRequest",
    "CreateLevelRequest",
    "UpdateLevelRequest",
    "IntegrityWarning",
    "BreadcrumbEntry",
    "BreadcrumbResponse",
    "HierarchyStats",
    "HierarchyTreeResponse",
    "HierarchyMutationResponse",
    "HierarchyLevelsListResponse",
]
