"""Tool registration and routing on top of the low-level MCP server."""

import logging
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Mapping, NamedTuple, Optional

import anyio
import jsonschema
import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .error_log import ErrorLog
from .errors import SchemaValidationError, TransportError
from .results import ToolResult

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Dict[str, Any]], Awaitable[ToolResult]]


class RegisteredTool(NamedTuple):
    tool: types.Tool
    handler: ToolHandler


class ToolDispatcher:
    """Owns the tool table and serves it to one host over a message channel.

    Tools are registered once at startup. ``connect`` freezes the table; any
    later ``register`` call is an error.
    """

    def __init__(self, name: str, version: str, error_log: ErrorLog):
        self.name = name
        self.version = version
        self.error_log = error_log
        self.server = Server(name, version=version)
        self._pending: Dict[str, RegisteredTool] = {}
        self._tools: Optional[Mapping[str, RegisteredTool]] = None

        self.server.list_tools()(self._handle_list_tools)
        self.server.call_tool(validate_input=False)(self._handle_call_tool)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, name: str, description: str, input_schema: Dict[str, Any], handler: ToolHandler) -> None:
        if self._tools is not None:
            raise RuntimeError(f"Cannot register '{name}': dispatcher is already connected")
        if name in self._pending:
            raise ValueError(f"Tool already registered: {name}")
        jsonschema.Draft202012Validator.check_schema(input_schema)
        tool = types.Tool(name=name, description=description, inputSchema=input_schema)
        self._pending[name] = RegisteredTool(tool, handler)

    def register_tool(self, tool: types.Tool, handler: ToolHandler) -> None:
        self.register(tool.name, tool.description or "", tool.inputSchema, handler)

    @property
    def tools(self) -> Mapping[str, RegisteredTool]:
        if self._tools is not None:
            return self._tools
        return MappingProxyType(self._pending)

    def freeze(self) -> Mapping[str, RegisteredTool]:
        if self._tools is None:
            self._tools = MappingProxyType(dict(self._pending))
        return self._tools

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def validate_arguments(self, tool: types.Tool, arguments: Dict[str, Any]) -> None:
        try:
            jsonschema.validate(instance=arguments, schema=tool.inputSchema)
        except jsonschema.ValidationError as e:
            raise SchemaValidationError(e.message) from e

    async def call(self, name: str, arguments: Optional[Dict[str, Any]]) -> ToolResult:
        """Validate ``arguments`` and run the handler registered as ``name``.

        Always returns a result; handler exceptions become error results.
        """
        arguments = arguments or {}
        registered = self.tools.get(name)
        if registered is None:
            logger.warning("Unknown tool requested: %s", name)
            return ToolResult.error(f"Unknown tool: {name}")

        try:
            self.validate_arguments(registered.tool, arguments)
        except SchemaValidationError as e:
            logger.warning("Rejected call to '%s': %s", name, e)
            return ToolResult.error(f"Input validation error: {e}")

        try:
            return await registered.handler(arguments)
        except Exception as e:
            self.error_log.error(f"Unhandled error in tool '{name}'", e)
            return ToolResult.error(f"Error executing '{name}': {e}")

    async def _handle_list_tools(self) -> list[types.Tool]:
        return [registered.tool for registered in self.tools.values()]

    async def _handle_call_tool(self, name: str, arguments: Dict[str, Any]) -> types.CallToolResult:
        result = await self.call(name, arguments)
        return result.to_call_tool_result()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def initialization_options(self) -> InitializationOptions:
        return InitializationOptions(
            server_name=self.name,
            server_version=self.version,
            capabilities=self.server.get_capabilities(
                notification_options=NotificationOptions(),
                experimental_capabilities={},
            ),
        )

    async def _watch_transport(self, read_stream, forward) -> None:
        async with forward:
            async for message in read_stream:
                if isinstance(message, Exception):
                    self.error_log.error("Transport error occurred", message)
                await forward.send(message)

    async def connect(self, read_stream, write_stream) -> None:
        """Serve requests from ``read_stream`` until the host closes it.

        Raises:
            TransportError: If the channel fails outside a single request.
        """
        self.freeze()
        forward, watched = anyio.create_memory_object_stream(0)
        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(self._watch_transport, read_stream, forward)
                await self.server.run(
                    watched,
                    write_stream,
                    self.initialization_options(),
                    raise_exceptions=False,
                )
                tg.cancel_scope.cancel()
        except Exception as e:
            self.error_log.error("Transport error occurred", e)
            raise TransportError(str(e)) from e
        logger.info("Transport closed")

    async def serve_stdio(self) -> None:
        async with mcp.server.stdio.stdio_server() as (read, write):
            await self.connect(read, write)
