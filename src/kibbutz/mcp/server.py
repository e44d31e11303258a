"""FastMCP server setup for kibbutz.

The lifespan owns one relay host: it binds the channel server before the
first tool call and tears it down when the stdio session ends.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession
from mcp.types import CallToolResult, TextContent, ToolAnnotations

from kibbutz.config import KibbutzConfig
from kibbutz.debug_log import setup_logging
from kibbutz.mcp.tools import ToolRegistrationContext, register_browser_tools
from kibbutz.paths import get_log_path
from kibbutz.relay.host import RelayHost
from kibbutz.relay.launcher import ChromeExtensionLauncher

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from kibbutz.relay.contracts import ToolTextResponse
    from kibbutz.relay.facade import RelayFacade

logger = logging.getLogger(__name__)

NO_RELAY_MESSAGE = (
    "The kibbutz relay is not running. "
    "Restart the MCP server so it can listen for the Chrome extension."
)

SERVER_INSTRUCTIONS = (
    "Tools for organizing the tabs and tab groups of the user's Chrome window. "
    "Call SNAPSHOT_MCP first to learn current tab and group IDs, then pass those IDs "
    "to the other tools. On first use the Chrome extension is opened to pair with "
    "this server; if a tool reports a connection failure, ask the user to check "
    "that the extension is installed and enabled."
)


@dataclass(frozen=True, slots=True)
class MCPStartupError(RuntimeError):
    """Structured startup error raised when the relay cannot be brought up."""

    code: str
    message: str
    hint: str

    def __str__(self) -> str:
        return f"[{self.code}] {self.message} Hint: {self.hint}"

    def as_dict(self) -> dict[str, str]:
        return {
            "code": self.code,
            "message": self.message,
            "hint": self.hint,
        }


@dataclass
class MCPLifespanContext:
    """Context available during MCP server lifetime via lifespan."""

    host: RelayHost
    facade: RelayFacade


MCPContext = Context[ServerSession, MCPLifespanContext]


def build_relay_host(config: KibbutzConfig) -> RelayHost:
    """Create (but do not start) the relay host described by *config*."""
    launcher = ChromeExtensionLauncher(
        extension_id=config.peer.extension_id,
        page=config.peer.page,
        chrome_path=config.peer.chrome_path,
    )
    return RelayHost(
        launcher,
        host=config.relay.host,
        port=config.relay.port,
        pairing_timeout=config.relay.pairing_timeout_seconds,
        max_message_bytes=config.relay.max_message_bytes,
        troubleshooting_url=config.peer.troubleshooting_url,
    )


def install_termination_handler(host: RelayHost) -> bool:
    """Hard-close peer connections on SIGTERM, then let the default action exit.

    Returns ``False`` where the event loop does not support signal handlers.
    """
    loop = asyncio.get_running_loop()

    def on_sigterm() -> None:
        logger.info("SIGTERM received; closing extension connections")
        host.terminate_connections()
        loop.remove_signal_handler(signal.SIGTERM)
        signal.raise_signal(signal.SIGTERM)

    try:
        loop.add_signal_handler(signal.SIGTERM, on_sigterm)
    except (NotImplementedError, RuntimeError):
        return False
    return True


@asynccontextmanager
async def _mcp_lifespan(
    mcp: FastMCP,
    config: KibbutzConfig,
) -> AsyncIterator[MCPLifespanContext]:
    """Lifespan manager for the relay host.

    Startup fails when the channel server cannot bind, since no tool could
    reach the extension without it.
    """
    del mcp
    host = build_relay_host(config)
    try:
        port = await host.start()
    except OSError as exc:
        raise MCPStartupError(
            code="BIND_FAILED",
            message=(
                f"Cannot listen on {config.relay.host}:{config.relay.port} "
                f"for the Chrome extension: {exc}"
            ),
            hint="Set [relay] port to 0 or to a free port, then reconnect MCP.",
        ) from exc

    logger.info("Relay listening on %s:%d", config.relay.host, port)
    signal_installed = install_termination_handler(host)
    try:
        yield MCPLifespanContext(host=host, facade=host.facade)
    finally:
        if signal_installed:
            with suppress(NotImplementedError, RuntimeError, ValueError):
                asyncio.get_running_loop().remove_signal_handler(signal.SIGTERM)
        await host.stop(reason="MCP session ended")


def _get_facade(ctx: MCPContext) -> RelayFacade | None:
    """Extract the relay facade from request context.

    Returns ``None`` when no lifespan context is present.
    """
    lifespan_ctx = ctx.request_context.lifespan_context
    if lifespan_ctx is None:
        return None
    return lifespan_ctx.facade


def _require_facade(ctx: MCPContext | None) -> RelayFacade:
    """Return the active facade or raise a user-facing no-relay error."""
    if ctx is None:
        raise ValueError(f"[NO_CONTEXT] {NO_RELAY_MESSAGE}")
    facade = _get_facade(ctx)
    if facade is None:
        raise ValueError(f"[NO_RELAY] {NO_RELAY_MESSAGE}")
    return facade


def to_call_tool_result(response: ToolTextResponse) -> CallToolResult:
    """Convert a relay response into the MCP tool result shape."""
    return CallToolResult(
        content=[TextContent(type="text", text=item.text) for item in response.content],
        isError=response.is_error,
    )


async def _relay_call(
    ctx: MCPContext | None,
    message: str,
    args: dict[str, Any],
) -> CallToolResult:
    facade = _require_facade(ctx)
    response = await facade.call(message, args)
    return to_call_tool_result(response)


def _create_mcp_server(config: KibbutzConfig | None = None) -> FastMCP:
    """Create FastMCP instance with lifespan and tools."""
    resolved = config if config is not None else KibbutzConfig.load()

    @asynccontextmanager
    async def lifespan(mcp_instance: FastMCP) -> AsyncIterator[MCPLifespanContext]:
        async with _mcp_lifespan(mcp_instance, resolved) as lifespan_ctx:
            yield lifespan_ctx

    mcp = FastMCP(
        resolved.mcp.server_name,
        instructions=SERVER_INSTRUCTIONS,
        lifespan=lifespan,
    )
    register_browser_tools(mcp, helpers=ToolRegistrationContext(relay_call=_relay_call))
    return mcp


def list_registered_tool_names(mcp: FastMCP) -> set[str]:
    """Return registered MCP tool names for contract tests and diagnostics."""
    return {tool.name for tool in mcp._tool_manager.list_tools()}


def get_registered_tool_annotations(mcp: FastMCP) -> dict[str, ToolAnnotations | None]:
    """Return tool annotation metadata keyed by tool name."""
    return {tool.name: tool.annotations for tool in mcp._tool_manager.list_tools()}


def main(config: KibbutzConfig | None = None) -> None:
    """Entry point for the kibbutz-mcp command."""
    resolved = config if config is not None else KibbutzConfig.load()
    setup_logging(
        resolved.logging.level,
        get_log_path() if resolved.logging.file else None,
    )
    mcp = _create_mcp_server(resolved)
    try:
        mcp.run(transport="stdio")
    except MCPStartupError as exc:
        raise SystemExit(str(exc)) from exc


__all__ = [
    "MCPContext",
    "MCPLifespanContext",
    "MCPStartupError",
    "build_relay_host",
    "get_registered_tool_annotations",
    "install_termination_handler",
    "list_registered_tool_names",
    "main",
    "to_call_tool_result",
]
