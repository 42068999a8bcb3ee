"""
Tool compiler for MemoryMesh.

Turns a SchemaDocument into a CompiledSchema (validator, metadata renderer,
relationship extractor) and into the add_/update_/delete_ handlers built on it.
"""

from dataclasses import dataclass
from typing import Any

import structlog
from mcp.types import Tool

from .models import Edge, Node, PropertySpec, SchemaDocument, ToolResponse
from .storage import GraphState, GraphStore
from .utils import (
    NotFoundError,
    SchemaError,
    ValidationError,
    capitalize_label,
    merge_metadata,
    metadata_label,
    render_value,
)

logger = structlog.get_logger(__name__)

NAME_FIELD = "name"
ADD_PREFIX = "add_"

_TYPE_CHECKS = {
    "string": lambda value: isinstance(value, str),
    "number": lambda value: isinstance(value, (int, float)) and not isinstance(value, bool),
    "integer": lambda value: isinstance(value, int) and not isinstance(value, bool),
    "boolean": lambda value: isinstance(value, bool),
    "array": lambda value: isinstance(value, list),
    "object": lambda value: isinstance(value, dict),
}


@dataclass(frozen=True)
class FieldSpec:
    """A compiled schema property."""

    name: str
    type: str
    description: str = ""
    required: bool = False
    enum: tuple | None = None
    item_type: str | None = None
    item_enum: tuple | None = None
    edge_type: str | None = None

    @property
    def is_relationship(self) -> bool:
        return self.edge_type is not None

    def check(self, value: Any) -> None:
        """Raise ValidationError if ``value`` does not fit this field."""
        if not _TYPE_CHECKS[self.type](value):
            raise ValidationError(f"Field '{self.name}' must be of type {self.type}", field=self.name)

        if self.type == "array":
            item_type = self.item_type or "string"
            for item in value:
                if not _TYPE_CHECKS[item_type](item):
                    raise ValidationError(
                        f"Field '{self.name}' must contain only {item_type} values", field=self.name
                    )
                if self.item_enum is not None and item not in self.item_enum:
                    raise ValidationError(
                        f"Field '{self.name}' contains '{item}', expected one of: {', '.join(map(str, self.item_enum))}",
                        field=self.name,
                    )
        if self.enum is not None:
            values = value if self.type == "array" else [value]
            for item in values:
                if item not in self.enum:
                    raise ValidationError(
                        f"Field '{self.name}' has value '{item}', expected one of: {', '.join(map(str, self.enum))}",
                        field=self.name,
                    )

        if self.is_relationship:
            targets = value if isinstance(value, list) else [value]
            if any(not target.strip() for target in targets):
                raise ValidationError(f"Field '{self.name}' contains an empty node name", field=self.name)

    def json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type}
        description = self.description
        if self.is_relationship:
            description = f"{description} (creates '{self.edge_type}' edges)".strip()
        if description:
            schema["description"] = description
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        if self.type == "array":
            items: dict[str, Any] = {"type": self.item_type or "string"}
            if self.item_enum is not None:
                items["enum"] = list(self.item_enum)
            schema["items"] = items
        return schema


def _compile_field(name: str, spec: PropertySpec) -> FieldSpec:
    edge_type = spec.relationship.edge_type if spec.relationship else None
    item_type = spec.items.type if spec.items else None
    if edge_type is not None:
        if spec.type not in ("string", "array") or (spec.type == "array" and (item_type or "string") != "string"):
            raise SchemaError(f"Relationship field '{name}' must be a string or an array of strings")
    return FieldSpec(
        name=name,
        type=spec.type,
        description=spec.description,
        required=spec.required or name == NAME_FIELD,
        enum=tuple(spec.enum) if spec.enum is not None else None,
        item_type=item_type,
        item_enum=tuple(spec.items.enum) if spec.items and spec.items.enum is not None else None,
        edge_type=edge_type,
    )


@dataclass(frozen=True)
class CompiledSchema:
    """Everything the generated tools need to know about one node type."""

    name: str
    node_type: str
    description: str
    fields: tuple[FieldSpec, ...]
    additional_properties: bool = True

    @property
    def fields_by_name(self) -> dict[str, FieldSpec]:
        return {spec.name: spec for spec in self.fields}

    @property
    def required_fields(self) -> frozenset[str]:
        return frozenset(spec.name for spec in self.fields if spec.required)

    @property
    def metadata_fields(self) -> tuple[FieldSpec, ...]:
        return tuple(spec for spec in self.fields if not spec.is_relationship and spec.name != NAME_FIELD)

    @property
    def relationship_fields(self) -> tuple[FieldSpec, ...]:
        return tuple(spec for spec in self.fields if spec.is_relationship)

    @property
    def edge_types(self) -> dict[str, str]:
        """Relationship field name -> edge type."""
        return {spec.name: spec.edge_type for spec in self.relationship_fields}

    def validate(self, arguments: Any, partial: bool = False) -> dict[str, Any]:
        """Check arguments against the schema.

        With ``partial`` only ``name`` is required and only supplied fields
        are checked. Fields set to None count as absent.
        """
        if not isinstance(arguments, dict):
            raise ValidationError("Arguments must be an object")

        present = {key: value for key, value in arguments.items() if value is not None}
        required = {NAME_FIELD} if partial else self.required_fields
        for field_name in (spec.name for spec in self.fields):
            if field_name in required and field_name not in present:
                raise ValidationError(f"Missing required field: {field_name}", field=field_name)

        known = self.fields_by_name
        for key, value in present.items():
            spec = known.get(key)
            if spec is not None:
                spec.check(value)
            elif not self.additional_properties:
                raise ValidationError(f"Unknown field: {key}", field=key)

        if not present[NAME_FIELD].strip():
            raise ValidationError("Field 'name' must not be empty", field=NAME_FIELD)
        return present

    def render_metadata(self, arguments: dict[str, Any]) -> list[str]:
        """Metadata lines in declared field order, then any extra fields."""
        lines = []
        for spec in self.metadata_fields:
            value = arguments.get(spec.name)
            if value is None or value == []:
                continue
            lines.append(f"{capitalize_label(spec.name)}: {render_value(value)}")

        known = self.fields_by_name
        for key, value in arguments.items():
            if key in known or value is None or value == []:
                continue
            lines.append(f"{capitalize_label(key)}: {render_value(value)}")
        return lines

    def cleared_labels(self, arguments: dict[str, Any]) -> set[str]:
        """Labels of metadata fields supplied as an empty list."""
        not_metadata = {NAME_FIELD} | {spec.name for spec in self.relationship_fields}
        return {capitalize_label(key) for key, value in arguments.items() if value == [] and key not in not_metadata}

    def extract_edges(self, node_name: str, arguments: dict[str, Any]) -> dict[str, list[Edge]]:
        """Outgoing edges per relationship edge type, for the fields present."""
        edges: dict[str, list[Edge]] = {}
        for spec in self.relationship_fields:
            if spec.name not in arguments:
                continue
            value = arguments[spec.name]
            targets = value if isinstance(value, list) else [value]
            bucket = edges.setdefault(spec.edge_type, [])
            for target in dict.fromkeys(target.strip() for target in targets):
                edge = Edge(source=node_name, target=target, edge_type=spec.edge_type)
                if edge not in bucket:
                    bucket.append(edge)
        return edges

    def input_schema(self, partial: bool = False) -> dict[str, Any]:
        required = [NAME_FIELD] if partial else [spec.name for spec in self.fields if spec.required]
        return {
            "type": "object",
            "properties": {spec.name: spec.json_schema() for spec in self.fields},
            "required": required,
            "additionalProperties": self.additional_properties,
        }


def compile_schema(document: SchemaDocument) -> CompiledSchema:
    """Compile a schema document. The result depends only on the document."""
    node_type = document.name[len(ADD_PREFIX):] if document.name.startswith(ADD_PREFIX) else document.name
    if not node_type:
        raise SchemaError(f"Schema '{document.name}' does not name a node type")

    fields = [_compile_field(name, spec) for name, spec in document.properties.items()]
    if NAME_FIELD not in document.properties:
        fields.insert(0, FieldSpec(name=NAME_FIELD, type="string", description=f"Unique name of the {node_type}", required=True))
    elif next(spec for spec in fields if spec.name == NAME_FIELD).type != "string":
        raise SchemaError(f"Schema '{document.name}': field 'name' must be a string")

    return CompiledSchema(
        name=document.name,
        node_type=node_type,
        description=document.description,
        fields=tuple(fields),
        additional_properties=document.additional_properties,
    )


# ============== Generated Tools ==============

class SchemaTool:
    """Base class for handlers generated from a compiled schema."""

    action = ""

    def __init__(self, schema: CompiledSchema):
        self.schema = schema

    @property
    def name(self) -> str:
        return f"{self.action}_{self.schema.node_type}"

    def definition(self) -> Tool:
        raise NotImplementedError

    def validate(self, arguments: Any) -> dict[str, Any]:
        raise NotImplementedError

    async def apply(self, arguments: Any, store: GraphStore) -> ToolResponse:
        raise NotImplementedError

    def _check_type(self, node: Node) -> None:
        if node.node_type != self.schema.node_type:
            raise NotFoundError(f"Node '{node.name}' is a {node.node_type}, not a {self.schema.node_type}")


class AddSchemaTool(SchemaTool):
    """add_<type>: creates one node and its relationship edges, all or nothing."""

    action = "add"

    def definition(self) -> Tool:
        description = self.schema.description or f"Add a new {self.schema.node_type} to the knowledge graph"
        return Tool(name=self.name, description=description, inputSchema=self.schema.input_schema())

    def validate(self, arguments: Any) -> dict[str, Any]:
        return self.schema.validate(arguments)

    async def apply(self, arguments: Any, store: GraphStore) -> ToolResponse:
        values = self.validate(arguments)
        node = Node(
            name=values[NAME_FIELD].strip(),
            node_type=self.schema.node_type,
            metadata=self.schema.render_metadata(values),
        )
        edges = [edge for bucket in self.schema.extract_edges(node.name, values).values() for edge in bucket]

        def operation(state: GraphState) -> None:
            state.add_node(node)
            for edge in edges:
                state.add_edge(edge)

        await store.mutate(operation)
        logger.info("schema_node_created", tool=self.name, node=node.name, edges=len(edges))
        return ToolResponse(
            data={
                "nodes": [node.model_dump(by_alias=True)],
                "edges": [edge.model_dump(by_alias=True) for edge in edges],
            },
            message=f"Created {self.schema.node_type} '{node.name}' with {len(edges)} relationship(s)",
            action_taken=f"Added {self.schema.node_type} node to the knowledge graph",
        )


class UpdateSchemaTool(SchemaTool):
    """update_<type>: merges metadata and fully replaces supplied relationships."""

    action = "update"

    def definition(self) -> Tool:
        return Tool(
            name=self.name,
            description=f"Update an existing {self.schema.node_type}. Only supplied fields change; "
                        f"relationship fields replace all existing edges of their type.",
            inputSchema=self.schema.input_schema(partial=True),
        )

    def validate(self, arguments: Any) -> dict[str, Any]:
        return self.schema.validate(arguments, partial=True)

    async def apply(self, arguments: Any, store: GraphStore) -> ToolResponse:
        values = self.validate(arguments)
        name = values[NAME_FIELD].strip()
        metadata_updates = self.schema.render_metadata(values)
        cleared = self.schema.cleared_labels(values)
        replacements = self.schema.extract_edges(name, values)

        def operation(state: GraphState) -> Node:
            node = state.get_node(name)
            self._check_type(node)
            kept = [entry for entry in node.metadata if metadata_label(entry) not in cleared]
            updated = node.model_copy(update={"metadata": merge_metadata(kept, metadata_updates)})
            state.put_node(updated)
            for edge_type, edges in replacements.items():
                state.replace_outgoing(name, edge_type, edges)
            return updated

        updated = await store.mutate(operation)
        logger.info("schema_node_updated", tool=self.name, node=name, edge_types=sorted(replacements))
        return ToolResponse(
            data={
                "nodes": [updated.model_dump(by_alias=True)],
                "edges": [edge.model_dump(by_alias=True) for bucket in replacements.values() for edge in bucket],
            },
            message=f"Updated {self.schema.node_type} '{name}'",
            action_taken=f"Updated {self.schema.node_type} node in the knowledge graph",
        )


class DeleteSchemaTool(SchemaTool):
    """delete_<type>: deletes the node and its incident edges."""

    action = "delete"

    def definition(self) -> Tool:
        return Tool(
            name=self.name,
            description=f"Delete a {self.schema.node_type} and all of its relationships",
            inputSchema={
                "type": "object",
                "properties": {
                    NAME_FIELD: {"type": "string", "description": f"Name of the {self.schema.node_type} to delete"},
                },
                "required": [NAME_FIELD],
            },
        )

    def validate(self, arguments: Any) -> dict[str, Any]:
        if not isinstance(arguments, dict):
            raise ValidationError("Arguments must be an object")
        name = arguments.get(NAME_FIELD)
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Missing required field: name", field=NAME_FIELD)
        return {NAME_FIELD: name.strip()}

    async def apply(self, arguments: Any, store: GraphStore) -> ToolResponse:
        name = self.validate(arguments)[NAME_FIELD]

        def operation(state: GraphState) -> int:
            self._check_type(state.get_node(name))
            return state.remove_node(name)

        removed = await store.mutate(operation)
        logger.info("schema_node_deleted", tool=self.name, node=name, edges_removed=removed)
        return ToolResponse(
            data={"deleted": name, "edgesRemoved": removed},
            message=f"Deleted {self.schema.node_type} '{name}' and {removed} edge(s)",
            action_taken=f"Deleted {self.schema.node_type} node from the knowledge graph",
        )


def compile_tools(document: SchemaDocument) -> list[SchemaTool]:
    """Compile a document into its add, update and delete handlers."""
    schema = compile_schema(document)
    return [AddSchemaTool(schema), UpdateSchemaTool(schema), DeleteSchemaTool(schema)]
