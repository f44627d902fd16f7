"""
Pydantic models for the asset/location hierarchy.

This module provides:
- Store record models (levels, nodes, assets) as fetched from Supabase
- Tree item models: a discriminated union on `kind` ("node" | "asset")
- Request models for hierarchy writes
- Response models for trees, stats, breadcrumbs and integrity warnings
"""

import json
import logging
from enum import Enum
from typing import Optional, List, Dict, Any, Literal, Union, Annotated
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

logger = logging.getLogger(__name__)


def _empty_to_none(v: Any) -> Any:
    """Empty-string foreign keys mean "no value", not an invalid reference."""
    if isinstance(v, str) and v.strip() == "":
        return None
    return v


def _lenient_enum(enum_cls, v: Any, field_name: str) -> Any:
    """
    Map a stored label onto enum_cls, case-insensitively.

    Null, blank or unrecognized labels become None so one odd row never
    fails the whole fetch.
    """
    if v is None or isinstance(v, enum_cls):
        return v
    label = str(v).strip().lower()
    if not label:
        return None
    try:
        return enum_cls(label)
    except ValueError:
        logger.warning(f"Unrecognized asset {field_name} '{v}' in stored record; treated as unset")
        return None


# ============================================================================
# ENUMS
# ============================================================================

class AssetStatus(str, Enum):
    """Operational status of a physical asset."""
    OPERATIONAL = "operational"
    MAINTENANCE = "maintenance"
    OUT_OF_SERVICE = "out_of_service"
    DECOMMISSIONED = "decommissioned"


class AssetCriticality(str, Enum):
    """Business criticality of a physical asset."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IntegrityIssue(str, Enum):
    """Non-fatal reference problems found while assembling the tree."""
    DANGLING_PARENT = "dangling_parent"
    DANGLING_ATTACHMENT = "dangling_attachment"
    SELF_REFERENCE = "self_reference"
    CYCLE = "cycle"
    DUPLICATE_ID = "duplicate_id"


# ============================================================================
# STORE RECORDS
# ============================================================================

class HierarchyLevel(BaseModel):
    """One rung of the location hierarchy schema (not an instance)."""
    id: str
    name: str
    level_order: int
    icon_name: Optional[str] = None
    color_code: Optional[str] = None
    parent_level_id: Optional[str] = None
    custom_properties_schema: Optional[Any] = None
    is_active: bool = True

    @field_validator("parent_level_id", mode="before")
    @classmethod
    def normalize_parent(cls, v: Any) -> Any:
        return _empty_to_none(v)

    model_config = ConfigDict(from_attributes=True, extra="ignore")


class LevelInfo(BaseModel):
    """Level display metadata joined onto a node."""
    id: str
    name: str
    level_order: Optional[int] = None
    icon_name: Optional[str] = None
    color_code: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class HierarchyNodeRecord(BaseModel):
    """An organizational/location node as stored."""
    id: str
    name: str
    hierarchy_level_id: Optional[str] = None
    parent_id: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)
    status: str = "active"
    path: Optional[str] = None
    level_info: Optional[LevelInfo] = None
    organization_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def lift_level_join(cls, data: Any) -> Any:
        """Accept the PostgREST embed key `hierarchy_levels` as level_info."""
        if isinstance(data, dict) and "hierarchy_levels" in data and not data.get("level_info"):
            data = dict(data)
            joined = data.pop("hierarchy_levels")
            if isinstance(joined, list):
                joined = joined[0] if joined else None
            data["level_info"] = joined
        return data

    @field_validator("parent_id", "hierarchy_level_id", mode="before")
    @classmethod
    def normalize_ids(cls, v: Any) -> Any:
        return _empty_to_none(v)

    @field_validator("properties", mode="before")
    @classmethod
    def decode_properties(cls, v: Any) -> Any:
        """Properties may come back as a JSON string depending on the column type."""
        if v is None:
            return {}
        if isinstance(v, str):
            return json.loads(v) if v.strip() else {}
        return v


class HierarchyAssetRecord(BaseModel):
    """A physical asset as stored."""
    id: str
    name: str
    asset_number: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    status: Optional[AssetStatus] = AssetStatus.OPERATIONAL
    criticality: Optional[AssetCriticality] = AssetCriticality.MEDIUM
    health_score: Optional[float] = None
    parent_asset_id: Optional[str] = None
    hierarchy_node_id: Optional[str] = None
    organization_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    @field_validator("parent_asset_id", "hierarchy_node_id", mode="before")
    @classmethod
    def normalize_ids(cls, v: Any) -> Any:
        return _empty_to_none(v)

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v: Any) -> Any:
        return _lenient_enum(AssetStatus, v, "status")

    @field_validator("criticality", mode="before")
    @classmethod
    def coerce_criticality(cls, v: Any) -> Any:
        return _lenient_enum(AssetCriticality, v, "criticality")


# ============================================================================
# TREE ITEMS
# ============================================================================

class AssetTreeItem(HierarchyAssetRecord):
    """Asset placed in the assembled tree. Children are sub-components."""
    kind: Literal["asset"] = "asset"
    children: List["AssetTreeItem"] = Field(default_factory=list)


class NodeTreeItem(HierarchyNodeRecord):
    """Node placed in the assembled tree. Children are nodes or assets."""
    kind: Literal["node"] = "node"
    asset_count: int = 0
    children: List["TreeItem"] = Field(default_factory=list)


TreeItem = Annotated[Union[NodeTreeItem, AssetTreeItem], Field(discriminator="kind")]


# ============================================================================
# REQUEST MODELS
# ============================================================================

class CreateNodeRequest(BaseModel):
    """Request model for creating a hierarchy node."""
    name: str = Field(..., min_length=1, max_length=200)
    hierarchy_level_id: str = Field(..., min_length=1, description="LevelDef this node instantiates")
    parent_id: Optional[str] = Field(default=None, description="Parent node id; empty for a root")
    properties: Dict[str, Any] = Field(default_factory=dict)
    status: str = Field(default="active", max_length=50)
    path: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("parent_id", mode="before")
    @classmethod
    def normalize_parent(cls, v: Any) -> Any:
        return _empty_to_none(v)

    model_config = ConfigDict(extra="ignore", json_schema_extra={
        "example": {
            "name": "Building 2",
            "hierarchy_level_id": "lvl-building",
            "parent_id": "node-site-north",
            "properties": {"floors": 3}
        }
    })


class UpdateNodeRequest(BaseModel):
    """Request model for updating a hierarchy node. Only sent fields are written."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    hierarchy_level_id: Optional[str] = None
    parent_id: Optional[str] = None
    properties: Optional[Dict[str, Any]] = None
    status: Optional[str] = Field(default=None, max_length=50)
    path: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("parent_id", mode="before")
    @classmethod
    def normalize_parent(cls, v: Any) -> Any:
        return _empty_to_none(v)

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="after")
    def at_least_one_field_required(self) -> "UpdateNodeRequest":
        """Ensure at least one field is provided for update."""
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self


class CreateAssetRequest(BaseModel):
    """Request model for creating an asset."""
    name: str = Field(..., min_length=1, max_length=200)
    asset_number: Optional[str] = Field(default=None, max_length=100)
    type: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    status: AssetStatus = AssetStatus.OPERATIONAL
    criticality: AssetCriticality = AssetCriticality.MEDIUM
    health_score: Optional[float] = Field(default=None, ge=0, le=100)
    parent_asset_id: Optional[str] = None
    hierarchy_node_id: Optional[str] = None

    @field_validator("parent_asset_id", "hierarchy_node_id", mode="before")
    @classmethod
    def normalize_refs(cls, v: Any) -> Any:
        return _empty_to_none(v)

    model_config = ConfigDict(extra="ignore", json_schema_extra={
        "example": {
            "name": "Chiller 1",
            "asset_number": "CH-001",
            "status": "operational",
            "criticality": "high",
            "health_score": 92.5,
            "hierarchy_node_id": "node-plant-room"
        }
    })


class UpdateAssetRequest(BaseModel):
    """Request model for updating an asset. Only sent fields are written."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    asset_number: Optional[str] = Field(default=None, max_length=100)
    type: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    status: Optional[AssetStatus] = None
    criticality: Optional[AssetCriticality] = None
    health_score: Optional[float] = Field(default=None, ge=0, le=100)
    parent_asset_id: Optional[str] = None
    hierarchy_node_id: Optional[str] = None

    @field_validator("parent_asset_id", "hierarchy_node_id", mode="before")
    @classmethod
    def normalize_refs(cls, v: Any) -> Any:
        return _empty_to_none(v)

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="after")
    def at_least_one_field_required(self) -> "UpdateAssetRequest":
        """Ensure at least one field is provided for update."""
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self


class CreateLevelRequest(BaseModel):
    """Request model for creating a hierarchy level."""
    name: str = Field(..., min_length=1, max_length=100)
    level_order: int = Field(..., ge=0)
    icon_name: Optional[str] = Field(default=None, max_length=50)
    color_code: Optional[str] = Field(default=None, max_length=20)
    parent_level_id: Optional[str] = None
    custom_properties_schema: Optional[Any] = None
    is_active: bool = True

    @field_validator("parent_level_id", mode="before")
    @classmethod
    def normalize_parent(cls, v: Any) -> Any:
        return _empty_to_none(v)

    model_config = ConfigDict(extra="ignore", json_schema_extra={
        "example": {
            "name": "Building",
            "level_order": 2,
            "icon_name": "building",
            "color_code": "#1A9FB2",
            "parent_level_id": "lvl-site"
        }
    })


class UpdateLevelRequest(BaseModel):
    """Request model for updating a hierarchy level."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    level_order: Optional[int] = Field(default=None, ge=0)
    icon_name: Optional[str] = Field(default=None, max_length=50)
    color_code: Optional[str] = Field(default=None, max_length=20)
    parent_level_id: Optional[str] = None
    custom_properties_schema: Optional[Any] = None
    is_active: Optional[bool] = None

    @field_validator("parent_level_id", mode="before")
    @classmethod
    def normalize_parent(cls, v: Any) -> Any:
        return _empty_to_none(v)

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="after")
    def at_least_one_field_required(self) -> "UpdateLevelRequest":
        """Ensure at least one field is provided for update."""
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class IntegrityWarning(BaseModel):
    """A reference problem that was recovered from during assembly."""
    issue: IntegrityIssue
    entity_kind: Literal["node", "asset"]
    entity_id: str
    reference_id: Optional[str] = None
    message: str


class BreadcrumbEntry(BaseModel):
    """One step of a root-to-node breadcrumb."""
    id: str
    name: str
    level: Optional[str] = None


class BreadcrumbResponse(BaseModel):
    node_id: str
    breadcrumb: List[BreadcrumbEntry]
    path: str


class HierarchyStats(BaseModel):
    """Summary metrics for an assembled hierarchy."""
    total_levels: int
    total_nodes: int
    total_assets: int
    max_depth: int
    coverage: float
    active_nodes: int
    inactive_nodes: int
    nodes_by_level: Dict[str, int] = Field(default_factory=dict)


class HierarchyTreeResponse(BaseModel):
    """Response model for the full assembled forest."""
    organization_id: Optional[str]
    cross_tenant: bool
    roots: List[TreeItem]
    total_nodes: int
    total_assets: int
    warnings: List[IntegrityWarning] = Field(default_factory=list)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "organization_id": "org-acme",
            "cross_tenant": False,
            "roots": [
                {
                    "kind": "node",
                    "id": "node-site",
                    "name": "North Site",
                    "hierarchy_level_id": "lvl-site",
                    "parent_id": None,
                    "properties": {},
                    "status": "active",
                    "asset_count": 1,
                    "children": [
                        {
                            "kind": "asset",
                            "id": "asset-1",
                            "name": "Chiller 1",
                            "status": "operational",
                            "criticality": "high",
                            "health_score": 92.5,
                            "hierarchy_node_id": "node-site",
                            "children": []
                        }
                    ]
                }
            ],
            "total_nodes": 1,
            "total_assets": 1,
            "warnings": []
        }
    })


class HierarchyMutationResponse(BaseModel):
    """Result of a write: the stored row plus the rebuilt forest."""
    record: Optional[Dict[str, Any]] = None
    tree: Optional[HierarchyTreeResponse] = None
    refresh_error: Optional[str] = None


class HierarchyLevelsListResponse(BaseModel):
    """Response model for the level schema list."""
    levels: List[HierarchyLevel]
    total: int
    max_depth: int


# Enable forward references for recursive models
AssetTreeItem.model_rebuild()
NodeTreeItem.model_rebuild()
HierarchyTreeResponse.model_rebuild()
HierarchyMutationResponse.model_rebuild()
