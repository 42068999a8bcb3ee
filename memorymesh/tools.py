"""
MCP Tools module for MemoryMesh.

Builds the MCP server whose list_tools and call_tool handlers are backed by an
initialized ToolDispatcher and a GraphStore.
"""

import json
from typing import Any

from mcp.server import Server
from mcp.types import (
    Resource,
    TextContent,
    Tool,
)

from .config import settings
from .dispatcher import ToolDispatcher
from .registry import ToolRegistry
from .storage import GraphStore


def create_server(registry: ToolRegistry, store: GraphStore, name: str | None = None) -> Server:
    """Create an MCP server exposing every registered tool.

    The registry should already be initialized; calls made before that come
    back as InitializationError envelopes.
    """
    server = Server(name or settings.server_name, version=settings.server_version)
    dispatcher = ToolDispatcher(registry)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List available tools."""
        return registry.list_tools()

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle tool calls."""
        result = await dispatcher.dispatch(name, arguments, store)
        return [TextContent(type="text", text=json.dumps(result, indent=2, ensure_ascii=False))]

    # ============== Resources ==============

    @server.list_resources()
    async def list_resources() -> list[Resource]:
        """List available resources."""
        return [
            Resource(
                uri="memory://graph",
                name="Knowledge Graph",
                description="The full knowledge graph as nodes and edges",
                mimeType="application/json"
            ),
        ]

    @server.read_resource()
    async def read_resource(uri) -> str:
        """Read a resource."""
        if str(uri) == "memory://graph":
            graph = await store.read_graph()
            return json.dumps(graph.model_dump(by_alias=True), indent=2, ensure_ascii=False)

        return json.dumps({"error": f"Unknown resource: {uri}"})

    return server
