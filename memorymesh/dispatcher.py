"""
Tool dispatcher for MemoryMesh.

Routes a {name, arguments} call to its handler and turns every outcome into a
response envelope. dispatch() never raises.
"""

import asyncio
from typing import Any

import structlog

from .models import ToolError, ToolResponse
from .registry import ToolRegistry
from .storage import GraphStore
from .utils import (
    ConflictError,
    CorruptStoreError,
    InitializationError,
    MemoryMeshError,
    NotFoundError,
    PersistenceError,
    UnknownToolError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

# (suggestions, recovery steps) per error type, most specific first
ERROR_GUIDANCE: list[tuple[type[Exception], list[str], list[str]]] = [
    (
        ValidationError,
        ["Check the provided arguments match the tool schema", "Ensure all required parameters are provided"],
        [],
    ),
    (
        NotFoundError,
        ["Verify the node names exist with search_nodes or open_nodes", "Create missing nodes before linking to them"],
        [],
    ),
    (
        ConflictError,
        ["Choose a different name", "Use the matching update tool to change an existing node"],
        [],
    ),
    (
        InitializationError,
        ["Ensure the tool registry is initialized before making tool calls"],
        ["Check the schema directory and restart the server"],
    ),
    (
        UnknownToolError,
        ["Check the list of available tools"],
        [],
    ),
    (
        CorruptStoreError,
        ["Inspect the graph file for malformed lines"],
        ["Restore the graph file from a backup", "If the error persists, notify the human"],
    ),
    (
        PersistenceError,
        ["Check that the graph file location is writable"],
        ["Retry the call; the graph was left unchanged", "If the error persists, notify the human"],
    ),
]

DEFAULT_GUIDANCE = (
    ["Review the error message and the provided arguments"],
    ["If the error persists, notify the human"],
)


def format_tool_response(response: ToolResponse) -> dict[str, Any]:
    """Render a success envelope: {data?, message, actionTaken}."""
    return response.model_dump(by_alias=True, exclude_none=True)


def format_tool_error(operation: str, error: Exception, arguments: Any = None) -> dict[str, Any]:
    """Render an error envelope with suggestions chosen by error type."""
    suggestions, recovery_steps = DEFAULT_GUIDANCE
    for error_type, type_suggestions, type_recovery in ERROR_GUIDANCE:
        if isinstance(error, error_type):
            suggestions, recovery_steps = type_suggestions, type_recovery
            break

    context: dict[str, Any] = {}
    if arguments is not None:
        context["input"] = arguments
    field = getattr(error, "field", None)
    if field:
        context["field"] = field

    envelope = ToolError(
        operation=operation,
        error=str(error) or type(error).__name__,
        error_type=type(error).__name__,
        context=context or None,
        suggestions=suggestions or None,
        recovery_steps=recovery_steps or None,
    )
    return envelope.model_dump(by_alias=True, exclude_none=True)


class ToolDispatcher:
    """Routes tool calls through an initialized ToolRegistry."""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    def list_tools(self):
        return self.registry.list_tools()

    def is_dynamic_tool(self, name: str) -> bool:
        return self.registry.is_dynamic_tool(name)

    async def dispatch(self, name: str, arguments: Any, store: GraphStore) -> dict[str, Any]:
        """Run one tool call and return its envelope.

        Once a handler starts mutating the store it runs to completion even if
        the caller is cancelled.
        """
        log = logger.bind(tool=name)
        try:
            handler = self.registry.get(name)
            response = await asyncio.shield(handler.apply(arguments, store))
        except MemoryMeshError as e:
            log.warning("tool_call_failed", error=str(e), error_type=type(e).__name__)
            return format_tool_error(name, e, arguments)
        except Exception as e:
            log.exception("tool_call_crashed")
            return format_tool_error(name, e, arguments)

        log.info("tool_call_succeeded", dynamic=self.registry.is_dynamic_tool(name))
        return format_tool_response(response)
