"""Expose the generated tools over MCP (stdio).

Everything is built once in the constructor; after that the registry,
tool list and metadata index are only read.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import httpx
import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from .config import ServerConfig, resolve_base_url
from .errors import NotFoundError, OpenAPIMCPError
from .executor import RequestExecutor
from .loader import load_document
from .models import ExecutionResult, ToolContract, ToolMetadata
from .registry import OperationRegistry
from .tools import ToolSchemaBuilder

logger = logging.getLogger(__name__)

SERVER_NAME = "openapi-mcp-server"


def format_response(result: ExecutionResult, metadata: ToolMetadata | None) -> str:
    """Pretty JSON result followed by a short request-info block."""
    text = json.dumps(result.to_dict(), indent=2, default=str)
    if metadata is not None:
        text += f"\n\n--- Request Info ---\nMethod: {metadata.method}\nPath: {metadata.path}"
        if metadata.tags:
            text += f"\nTags: {', '.join(metadata.tags)}"
    return text


def format_error(name: str, exc: OpenAPIMCPError) -> str:
    return f"Error executing {name}: {exc.message}"


class OpenAPIMCPServer:
    """Builds tools and the executor from one document and serves them."""

    def __init__(
        self,
        document: str | Path | dict[str, Any],
        config: ServerConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config or ServerConfig()
        self.document = load_document(document)
        base_url = resolve_base_url(self.config, self.document)

        self.registry = OperationRegistry.from_document(self.document)
        self.builder = ToolSchemaBuilder(self.document)
        self.tools: list[ToolContract] = self.builder.build_tools()
        self._tools_by_name = {tool.name: tool for tool in self.tools}
        self.executor = RequestExecutor(self.registry, base_url, self.config, client)

        auth_info = " with basic authentication" if self.config.has_basic_auth else ""
        logger.info("Loaded %d tools for %s%s", len(self.tools), base_url, auth_info)

    def list_tools(self) -> list[ToolContract]:
        return list(self.tools)

    def get_metadata(self, name: str) -> ToolMetadata | None:
        return self.builder.get_metadata(name)

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> str:
        if name not in self._tools_by_name:
            raise NotFoundError(name)
        result = await self.executor.execute(name, arguments or {})
        return format_response(result, self.get_metadata(name))

    def build_server(self) -> Server:
        server = Server(SERVER_NAME)

        @server.list_tools()
        async def _list_tools() -> list[types.Tool]:
            return [
                types.Tool(name=t.name, description=t.description, inputSchema=t.input_schema)
                for t in self.tools
            ]

        # Arguments are coerced by the executor, so SDK-side schema checks stay off.
        @server.call_tool(validate_input=False)
        async def _call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
            try:
                text = await self.call_tool(name, arguments)
            except OpenAPIMCPError as exc:
                logger.warning("Tool %s failed: %s", name, exc.message)
                # the SDK turns a raised exception into an isError tool result
                raise OpenAPIMCPError(format_error(name, exc), exc.details) from exc
            return [types.TextContent(type="text", text=text)]

        return server

    async def run_stdio(self) -> None:
        server = self.build_server()
        try:
            async with stdio_server() as (read_stream, write_stream):
                await server.run(read_stream, write_stream, server.create_initialization_options())
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self.executor.aclose()
