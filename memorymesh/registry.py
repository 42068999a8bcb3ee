"""
Tool registry for MemoryMesh.

Holds one explicit name -> handler table with the built-in tools and the tools
compiled from schema documents. The table is built once by initialize().
"""

import asyncio
from pathlib import Path
from typing import Any, Protocol

import structlog
from mcp.types import Tool

from .builtins import BUILTIN_TOOLS
from .compiler import compile_tools
from .models import ToolResponse
from .schema import load_schemas
from .storage import GraphStore
from .utils import InitializationError, SchemaError, UnknownToolError

logger = structlog.get_logger(__name__)

SCHEMA_TOOL_PREFIXES = ("add_", "update_", "delete_")


class ToolHandler(Protocol):
    """Uniform capability shared by built-in and compiled tools."""

    @property
    def name(self) -> str:  # pragma: no cover - interface
        ...

    def definition(self) -> Tool:  # pragma: no cover - interface
        ...

    def validate(self, arguments: Any) -> dict:  # pragma: no cover - interface
        ...

    async def apply(self, arguments: Any, store: GraphStore) -> ToolResponse:  # pragma: no cover - interface
        ...


class ToolRegistry:
    """Registry of every tool the server exposes.

    Must be initialized once before use; initialize() is a no-op afterwards.
    """

    def __init__(self, schemas_dir: Path):
        self.schemas_dir = schemas_dir
        self._handlers: dict[str, ToolHandler] = {}
        self._dynamic: frozenset[str] = frozenset()
        self._ready = False
        self._lock = asyncio.Lock()

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        """Load and compile all schemas and build the tool table.

        Raises:
            InitializationError: If any schema document fails to load or compile
        """
        if self._ready:
            return

        async with self._lock:
            if self._ready:
                return

            handlers: dict[str, ToolHandler] = {tool.name: tool for tool in BUILTIN_TOOLS}
            dynamic: set[str] = set()
            try:
                documents = await load_schemas(self.schemas_dir)
                for document in documents:
                    for handler in compile_tools(document):
                        if handler.name in dynamic:
                            raise SchemaError(f"Schema '{document.name}' redefines tool '{handler.name}'")
                        if handler.name in handlers:
                            logger.warning("schema_tool_shadows_builtin", tool=handler.name, schema=document.name)
                            continue
                        handlers[handler.name] = handler
                        dynamic.add(handler.name)
            except SchemaError as e:
                logger.error("tool_registry_init_failed", schemas_dir=str(self.schemas_dir), error=str(e))
                raise InitializationError(f"Schema tools initialization failed: {e}") from e

            self._handlers = handlers
            self._dynamic = frozenset(dynamic)
            self._ready = True
            logger.info("tool_registry_ready", builtin=len(BUILTIN_TOOLS), dynamic=len(dynamic))

    def _require_ready(self) -> None:
        if not self._ready:
            raise InitializationError("Tool registry not initialized")

    def list_tools(self) -> list[Tool]:
        """Definitions of every tool, built-ins first."""
        self._require_ready()
        return [handler.definition() for handler in self._handlers.values()]

    def tool_names(self) -> list[str]:
        self._require_ready()
        return list(self._handlers)

    def is_dynamic_tool(self, name: str) -> bool:
        """True for tools compiled from a schema document. False before initialization."""
        return self._ready and name in self._dynamic

    def get(self, name: str) -> ToolHandler:
        """Resolve a tool name to its handler.

        Raises:
            InitializationError: If the registry is not ready
            UnknownToolError: If no tool has that name
        """
        self._require_ready()
        handler = self._handlers.get(name)
        if handler is None:
            if name.startswith(SCHEMA_TOOL_PREFIXES):
                raise UnknownToolError(f"Unknown tool: {name} (no schema defines it)")
            raise UnknownToolError(f"Unknown tool: {name}")
        return handler
