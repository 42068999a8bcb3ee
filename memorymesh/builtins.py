"""
Built-in tools for MemoryMesh.

Each built-in maps one tool name onto a GraphStore operation. Batch items are
validated one by one, so a malformed item fails on its own without sinking the
rest of the batch.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from mcp.types import Tool
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .models import (
    Edge,
    EdgeUpdate,
    ItemResult,
    MetadataAddition,
    MetadataDeletion,
    Node,
    NodeUpdate,
    ToolResponse,
)
from .storage import GraphStore
from .utils import ValidationError, describe_validation_error

NODE_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "Unique name of the node"},
        "nodeType": {"type": "string", "description": "Type of the node"},
        "metadata": {"type": "array", "items": {"type": "string"}, "description": "Metadata lines, e.g. 'Status: Active'"},
    },
    "required": ["name", "nodeType"],
}

EDGE_SCHEMA = {
    "type": "object",
    "properties": {
        "from": {"type": "string", "description": "Name of the source node"},
        "to": {"type": "string", "description": "Name of the target node"},
        "edgeType": {"type": "string", "description": "Type of the relationship"},
    },
    "required": ["from", "to", "edgeType"],
}


def _array_of(items: dict, description: str) -> dict:
    return {"type": "array", "items": items, "description": description}


def _object(properties: dict, required: list[str]) -> dict:
    return {"type": "object", "properties": properties, "required": required}


def _key_of(raw: Any, *fields: str) -> str:
    if isinstance(raw, dict):
        parts = [str(raw[field]) for field in fields if field in raw]
        if parts:
            return " ".join(parts)
    return repr(raw)


def parse_items(
    raw_items: list, model: type[BaseModel], *key_fields: str
) -> tuple[list[tuple[int, Any]], dict[int, ItemResult]]:
    """Validate each batch item independently.

    Returns the valid (index, model) pairs and the failures keyed by index.
    """
    parsed: list[tuple[int, Any]] = []
    failures: dict[int, ItemResult] = {}
    for index, raw in enumerate(raw_items):
        try:
            parsed.append((index, model.model_validate(raw)))
        except PydanticValidationError as e:
            message, _ = describe_validation_error(e)
            failures[index] = ItemResult(
                key=_key_of(raw, *key_fields),
                success=False,
                error=message,
                error_type=ValidationError.__name__,
            )
    return parsed, failures


def merge_results(
    total: int, parsed: list[tuple[int, Any]], results: list[ItemResult], failures: dict[int, ItemResult]
) -> list[ItemResult]:
    """Put store results and validation failures back into request order."""
    merged = dict(failures)
    for (index, _), result in zip(parsed, results):
        merged[index] = result
    return [merged[index] for index in range(total)]


def _dump_results(results: list[ItemResult]) -> list[dict]:
    return [result.model_dump(by_alias=True, exclude_none=True) for result in results]


def _batch_message(verb: str, noun: str, results: list[ItemResult]) -> str:
    succeeded = sum(result.success for result in results)
    message = f"Successfully {verb} {succeeded} of {len(results)} {noun}"
    failed = len(results) - succeeded
    if failed:
        message += f" ({failed} failed)"
    return message


async def _run_batch(
    arguments: dict,
    key: str,
    model: type[BaseModel],
    key_fields: tuple[str, ...],
    operation: Callable[[list], Awaitable[list[ItemResult]]],
) -> list[ItemResult]:
    parsed, failures = parse_items(arguments[key], model, *key_fields)
    results = await operation([item for _, item in parsed]) if parsed else []
    return merge_results(len(arguments[key]), parsed, results, failures)


# ============== Handlers ==============

async def _add_nodes(store: GraphStore, arguments: dict) -> ToolResponse:
    results = await _run_batch(arguments, "nodes", Node, ("name",), store.add_nodes)
    return ToolResponse(
        data={"results": _dump_results(results)},
        message=_batch_message("added", "nodes", results),
        action_taken="Added nodes to the knowledge graph",
    )


async def _update_nodes(store: GraphStore, arguments: dict) -> ToolResponse:
    results = await _run_batch(arguments, "nodes", NodeUpdate, ("name",), store.update_nodes)
    return ToolResponse(
        data={"results": _dump_results(results)},
        message=_batch_message("updated", "nodes", results),
        action_taken="Updated nodes in the knowledge graph",
    )


async def _add_edges(store: GraphStore, arguments: dict) -> ToolResponse:
    results = await _run_batch(arguments, "edges", Edge, ("from", "edgeType", "to"), store.add_edges)
    return ToolResponse(
        data={"results": _dump_results(results)},
        message=_batch_message("added", "edges", results),
        action_taken="Added edges to the knowledge graph",
    )


async def _update_edges(store: GraphStore, arguments: dict) -> ToolResponse:
    results = await _run_batch(arguments, "edges", EdgeUpdate, ("from", "edgeType", "to"), store.update_edges)
    return ToolResponse(
        data={"results": _dump_results(results)},
        message=_batch_message("updated", "edges", results),
        action_taken="Updated edges in the knowledge graph",
    )


async def _delete_edges(store: GraphStore, arguments: dict) -> ToolResponse:
    results = await _run_batch(arguments, "edges", Edge, ("from", "edgeType", "to"), store.delete_edges)
    return ToolResponse(
        data={"results": _dump_results(results)},
        message=_batch_message("deleted", "edges", results),
        action_taken="Deleted edges from the knowledge graph",
    )


async def _add_metadata(store: GraphStore, arguments: dict) -> ToolResponse:
    results = await _run_batch(arguments, "metadata", MetadataAddition, ("nodeName",), store.add_metadata)
    return ToolResponse(
        data={"results": _dump_results(results)},
        message=_batch_message("added metadata to", "nodes", results),
        action_taken="Added metadata to nodes in the knowledge graph",
    )


async def _delete_metadata(store: GraphStore, arguments: dict) -> ToolResponse:
    results = await _run_batch(arguments, "deletions", MetadataDeletion, ("nodeName",), store.delete_metadata)
    return ToolResponse(
        data={"results": _dump_results(results)},
        message=_batch_message("deleted metadata from", "nodes", results),
        action_taken="Deleted metadata from nodes in the knowledge graph",
    )


async def _delete_nodes(store: GraphStore, arguments: dict) -> ToolResponse:
    names = arguments["nodeNames"]
    invalid = {
        index: ItemResult(key=repr(name), success=False, error="Node name must be a non-empty string",
                          error_type=ValidationError.__name__)
        for index, name in enumerate(names)
        if not isinstance(name, str) or not name
    }
    parsed = [(index, name) for index, name in enumerate(names) if index not in invalid]
    results = await store.delete_nodes([name for _, name in parsed]) if parsed else []
    results = merge_results(len(names), parsed, results, invalid)
    return ToolResponse(
        data={"results": _dump_results(results)},
        message=_batch_message("deleted", "nodes", results),
        action_taken="Deleted nodes from the knowledge graph",
    )


async def _read_graph(store: GraphStore, arguments: dict) -> ToolResponse:
    graph = await store.read_graph()
    return ToolResponse(
        data=graph.model_dump(by_alias=True),
        message=f"Read {len(graph.nodes)} nodes and {len(graph.edges)} edges",
        action_taken="Read the knowledge graph",
    )


async def _search_nodes(store: GraphStore, arguments: dict) -> ToolResponse:
    query = arguments["query"]
    graph = await store.search_nodes(query)
    return ToolResponse(
        data=graph.model_dump(by_alias=True),
        message=f"Found {len(graph.nodes)} nodes matching query: {query}",
        action_taken="Searched nodes in the knowledge graph",
    )


async def _open_nodes(store: GraphStore, arguments: dict) -> ToolResponse:
    names = arguments["names"]
    if not all(isinstance(name, str) and name for name in names):
        raise ValidationError("Field 'names' must contain only non-empty strings", field="names")
    result = await store.open_nodes(names)
    message = f"Opened {len(result.nodes)} of {len(names)} nodes"
    if result.not_found:
        message += f"; not found: {', '.join(result.not_found)}"
    return ToolResponse(
        data=result.model_dump(by_alias=True),
        message=message,
        action_taken="Opened nodes in the knowledge graph",
    )


# ============== Tool Objects ==============

@dataclass(frozen=True)
class BuiltinTool:
    """A fixed tool backed directly by a GraphStore operation."""

    name: str
    description: str
    input_schema: dict
    run: Callable[[GraphStore, dict], Awaitable[ToolResponse]]

    def definition(self) -> Tool:
        return Tool(name=self.name, description=self.description, inputSchema=self.input_schema)

    def validate(self, arguments: Any) -> dict:
        """Check the top-level argument shape; items are checked one by one later."""
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ValidationError("Arguments must be an object")

        for key in self.input_schema.get("required", []):
            if key not in arguments:
                raise ValidationError(f"Missing required field: {key}", field=key)
            expected = self.input_schema["properties"][key]["type"]
            value = arguments[key]
            if expected == "array" and not isinstance(value, list):
                raise ValidationError(f"Field '{key}' must be an array", field=key)
            if expected == "string" and not isinstance(value, str):
                raise ValidationError(f"Field '{key}' must be a string", field=key)
        return arguments

    async def apply(self, arguments: Any, store: GraphStore) -> ToolResponse:
        return await self.run(store, self.validate(arguments))


BUILTIN_TOOLS = (
    BuiltinTool(
        name="add_nodes",
        description="Add multiple new nodes to the knowledge graph",
        input_schema=_object({"nodes": _array_of(NODE_SCHEMA, "Nodes to add")}, ["nodes"]),
        run=_add_nodes,
    ),
    BuiltinTool(
        name="update_nodes",
        description="Update existing nodes; metadata lines replace lines with the same label",
        input_schema=_object(
            {"nodes": _array_of({**NODE_SCHEMA, "required": ["name"]}, "Nodes to update")}, ["nodes"]
        ),
        run=_update_nodes,
    ),
    BuiltinTool(
        name="add_edges",
        description="Add multiple new edges between existing nodes",
        input_schema=_object({"edges": _array_of(EDGE_SCHEMA, "Edges to add")}, ["edges"]),
        run=_add_edges,
    ),
    BuiltinTool(
        name="update_edges",
        description="Update edges matched exactly by from, to and edgeType",
        input_schema=_object(
            {
                "edges": _array_of(
                    {
                        "type": "object",
                        "properties": {
                            **EDGE_SCHEMA["properties"],
                            "newFrom": {"type": "string", "description": "New source node name"},
                            "newTo": {"type": "string", "description": "New target node name"},
                            "newEdgeType": {"type": "string", "description": "New relationship type"},
                        },
                        "required": ["from", "to", "edgeType"],
                    },
                    "Edges to update",
                )
            },
            ["edges"],
        ),
        run=_update_edges,
    ),
    BuiltinTool(
        name="add_metadata",
        description="Append metadata lines to existing nodes, skipping lines already present",
        input_schema=_object(
            {
                "metadata": _array_of(
                    _object(
                        {
                            "nodeName": {"type": "string", "description": "Name of the node"},
                            "contents": {"type": "array", "items": {"type": "string"}, "description": "Lines to add"},
                        },
                        ["nodeName", "contents"],
                    ),
                    "Metadata to add",
                )
            },
            ["metadata"],
        ),
        run=_add_metadata,
    ),
    BuiltinTool(
        name="delete_nodes",
        description="Delete nodes and every edge connected to them",
        input_schema=_object(
            {"nodeNames": _array_of({"type": "string"}, "Names of the nodes to delete")}, ["nodeNames"]
        ),
        run=_delete_nodes,
    ),
    BuiltinTool(
        name="delete_metadata",
        description="Remove metadata lines from nodes; missing lines are ignored",
        input_schema=_object(
            {
                "deletions": _array_of(
                    _object(
                        {
                            "nodeName": {"type": "string", "description": "Name of the node"},
                            "metadata": {"type": "array", "items": {"type": "string"}, "description": "Lines to remove"},
                        },
                        ["nodeName", "metadata"],
                    ),
                    "Metadata to delete",
                )
            },
            ["deletions"],
        ),
        run=_delete_metadata,
    ),
    BuiltinTool(
        name="delete_edges",
        description="Delete edges matched exactly by from, to and edgeType",
        input_schema=_object({"edges": _array_of(EDGE_SCHEMA, "Edges to delete")}, ["edges"]),
        run=_delete_edges,
    ),
    BuiltinTool(
        name="read_graph",
        description="Read the entire knowledge graph",
        input_schema=_object({}, []),
        run=_read_graph,
    ),
    BuiltinTool(
        name="search_nodes",
        description="Search nodes by name or metadata. Use 'type:<nodeType>' to filter by type "
                    "or 'tag:<tag>' for nodes tagged with a tag node.",
        input_schema=_object({"query": {"type": "string", "description": "Search query"}}, ["query"]),
        run=_search_nodes,
    ),
    BuiltinTool(
        name="open_nodes",
        description="Open specific nodes by exact name; unknown names are reported in notFound",
        input_schema=_object({"names": _array_of({"type": "string"}, "Node names to open")}, ["names"]),
        run=_open_nodes,
    ),
)

BUILTIN_TOOL_NAMES = frozenset(tool.name for tool in BUILTIN_TOOLS)
