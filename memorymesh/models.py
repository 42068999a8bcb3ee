"""
Pydantic models for MemoryMesh.

Contains graph records, tool argument payloads, schema documents and tool
response envelopes. JSON field names follow the persisted record shape
(camelCase, "from"/"to" for edge endpoints).
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

PropertyType = Literal["string", "number", "integer", "boolean", "array", "object"]


# ============== Graph Records ==============

class Node(BaseModel):
    """A uniquely named graph entity."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    node_type: str = Field(alias="nodeType", min_length=1)
    metadata: list[str] = Field(default_factory=list)

    def to_record(self) -> dict[str, Any]:
        return {"type": "node", **self.model_dump(by_alias=True)}


class Edge(BaseModel):
    """A directed, typed relationship between two node names."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: str = Field(alias="from", min_length=1)
    target: str = Field(alias="to", min_length=1)
    edge_type: str = Field(alias="edgeType", min_length=1)

    def to_record(self) -> dict[str, Any]:
        return {"type": "edge", **self.model_dump(by_alias=True)}


class Graph(BaseModel):
    """A snapshot of nodes and edges."""

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)


class OpenNodesResult(Graph):
    """Nodes found by exact name, plus the names that matched nothing."""

    model_config = ConfigDict(populate_by_name=True)

    not_found: list[str] = Field(default_factory=list, alias="notFound")


# ============== Built-in Tool Payloads ==============

class NodeUpdate(BaseModel):
    """Fields merged into an existing node by update_nodes."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    node_type: str | None = Field(default=None, alias="nodeType", min_length=1)
    metadata: list[str] | None = None


class EdgeUpdate(BaseModel):
    """Exact edge match plus the replacement values for update_edges."""

    model_config = ConfigDict(populate_by_name=True)

    source: str = Field(alias="from", min_length=1)
    target: str = Field(alias="to", min_length=1)
    edge_type: str = Field(alias="edgeType", min_length=1)
    new_source: str | None = Field(default=None, alias="newFrom", min_length=1)
    new_target: str | None = Field(default=None, alias="newTo", min_length=1)
    new_edge_type: str | None = Field(default=None, alias="newEdgeType", min_length=1)

    @property
    def current(self) -> Edge:
        return Edge(source=self.source, target=self.target, edge_type=self.edge_type)

    @property
    def replacement(self) -> Edge:
        return Edge(
            source=self.new_source or self.source,
            target=self.new_target or self.target,
            edge_type=self.new_edge_type or self.edge_type,
        )


class MetadataAddition(BaseModel):
    """Metadata strings to append to a node."""

    model_config = ConfigDict(populate_by_name=True)

    node_name: str = Field(alias="nodeName", min_length=1)
    contents: list[str]


class MetadataDeletion(BaseModel):
    """Metadata strings to remove from a node."""

    model_config = ConfigDict(populate_by_name=True)

    node_name: str = Field(alias="nodeName", min_length=1)
    metadata: list[str]


class ItemResult(BaseModel):
    """Outcome of one item in a batch operation."""

    model_config = ConfigDict(populate_by_name=True)

    key: str
    success: bool
    error: str = ""
    error_type: str = Field(default="", alias="errorType")
    detail: dict[str, Any] | None = None


# ============== Schema Documents ==============

class RelationshipSpec(BaseModel):
    """Marks a property whose values become outgoing edges."""

    model_config = ConfigDict(populate_by_name=True)

    edge_type: str = Field(alias="edgeType", min_length=1)
    description: str = ""


class ItemsSpec(BaseModel):
    """Element declaration of an array property."""

    type: PropertyType = "string"
    description: str = ""
    enum: list[Any] | None = None


class PropertySpec(BaseModel):
    """One declared field of a schema document."""

    type: PropertyType
    description: str = ""
    required: bool = False
    enum: list[Any] | None = None
    items: ItemsSpec | None = None
    relationship: RelationshipSpec | None = None


class SchemaDocument(BaseModel):
    """A declarative description of a node type's fields."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    description: str = ""
    properties: dict[str, PropertySpec]
    additional_properties: bool = Field(default=True, alias="additionalProperties")


# ============== Tool Responses ==============

class ToolResponse(BaseModel):
    """Success envelope returned by the dispatcher."""

    model_config = ConfigDict(populate_by_name=True)

    data: Any = None
    message: str
    action_taken: str = Field(alias="actionTaken")


class ToolError(BaseModel):
    """Error envelope returned by the dispatcher."""

    model_config = ConfigDict(populate_by_name=True)

    is_error: bool = Field(default=True, alias="isError")
    operation: str
    error: str
    error_type: str = Field(alias="errorType")
    context: dict[str, Any] | None = None
    suggestions: list[str] | None = None
    recovery_steps: list[str] | None = Field(default=None, alias="recoverySteps")


# ============== Import ==============

class ImportBatch(BaseModel):
    """Records extracted from a markdown corpus."""

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)


class ImportSummary(BaseModel):
    """Counts of records accepted and rejected while merging an import."""

    nodes_added: int = 0
    nodes_rejected: int = 0
    edges_added: int = 0
    edges_rejected: int = 0
