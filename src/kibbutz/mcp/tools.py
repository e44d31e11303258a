"""Browser tab and group tools exposed over MCP.

Every tool forwards its own name and arguments to the extension through the
relay facade; the extension implements the behaviour.
"""

# ruff: noqa: UP040
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated, Any, Literal, TypeAlias

from mcp.server.fastmcp import Context
from mcp.server.session import ServerSession
from mcp.types import CallToolResult, ToolAnnotations
from pydantic import Field

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from mcp.server.fastmcp import FastMCP

MCPContext: TypeAlias = Context[ServerSession, Any]

TOOL_SNAPSHOT = "SNAPSHOT_MCP"
TOOL_CLOSE_GROUPS = "CLOSE_GROUPS_MCP"
TOOL_UNGROUP_GROUPS = "UNGROUPS_MCP"
TOOL_CLOSE_TABS = "CLOSE_TABS_MCP"
TOOL_PIN_TABS = "PIN_TABS_MCP"
TOOL_UNPIN_TABS = "UNPIN_TABS_MCP"
TOOL_UNGROUP_TABS = "UNGROUP_TABS_MCP"
TOOL_ADD_TO_GROUP = "ADD_TO_GROUP_MCP"
TOOL_MOVE_GROUP = "MOVE_GROUP_MCP"
TOOL_MOVE_TABS = "MOVE_TABS_MCP"
TOOL_ADD_TO_NEW_GROUP = "ADD_TO_NEW_GROUP_MCP"
TOOL_UPDATE_GROUP = "UPDATE_GROUP_MCP"

TOOL_NAMES = frozenset(
    {
        TOOL_SNAPSHOT,
        TOOL_CLOSE_GROUPS,
        TOOL_UNGROUP_GROUPS,
        TOOL_CLOSE_TABS,
        TOOL_PIN_TABS,
        TOOL_UNPIN_TABS,
        TOOL_UNGROUP_TABS,
        TOOL_ADD_TO_GROUP,
        TOOL_MOVE_GROUP,
        TOOL_MOVE_TABS,
        TOOL_ADD_TO_NEW_GROUP,
        TOOL_UPDATE_GROUP,
    }
)

GroupColor = Literal["grey", "blue", "red", "yellow", "green", "pink", "purple", "cyan", "orange"]

_INDEX_DESCRIPTION = "The new position index. Use 0 for the start, -1 for the end."

READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True)
MUTATING = ToolAnnotations(readOnlyHint=False, destructiveHint=False, idempotentHint=False)
DESTRUCTIVE = ToolAnnotations(readOnlyHint=False, destructiveHint=True, idempotentHint=False)


def id_list_field(description: str) -> Any:
    return Field(min_length=1, description=description)


def drop_unset(**arguments: Any) -> dict[str, Any]:
    """Build the relay argument object, leaving out optional arguments that were not given."""
    return {key: value for key, value in arguments.items() if value is not None}


@dataclass(frozen=True)
class ToolRegistrationContext:
    """Helpers the catalog needs from the server module."""

    relay_call: Callable[[MCPContext | None, str, dict[str, Any]], Awaitable[CallToolResult]]


def register_browser_tools(mcp: FastMCP, *, helpers: ToolRegistrationContext) -> None:
    """Register the tab/group tool catalog on *mcp*."""
    relay_call = helpers.relay_call

    @mcp.tool(
        name=TOOL_SNAPSHOT,
        title="Get window snapshot",
        annotations=READ_ONLY,
        structured_output=False,
    )
    async def snapshot(ctx: MCPContext | None = None) -> CallToolResult:
        """Get the current window tabs organized as a nested tree structure.

        Returns groups and their child tabs, along with standalone tabs, titles, and URLs.
        """
        return await relay_call(ctx, TOOL_SNAPSHOT, {})

    @mcp.tool(
        name=TOOL_CLOSE_GROUPS,
        title="Close groups",
        annotations=DESTRUCTIVE,
        structured_output=False,
    )
    async def close_groups(
        groupIds: Annotated[  # noqa: N803
            list[int], id_list_field("List of group identifiers (integers) to close.")
        ],
        ctx: MCPContext | None = None,
    ) -> CallToolResult:
        """Close specific browser groups and all their contained tabs."""
        return await relay_call(ctx, TOOL_CLOSE_GROUPS, {"groupIds": groupIds})

    @mcp.tool(
        name=TOOL_UNGROUP_GROUPS,
        title="Ungroup groups",
        annotations=MUTATING,
        structured_output=False,
    )
    async def ungroup_groups(
        groupIds: Annotated[  # noqa: N803
            list[int], id_list_field("List of group identifiers (integers) to ungroup.")
        ],
        ctx: MCPContext | None = None,
    ) -> CallToolResult:
        """Ungroup specific browser groups using their group IDs. The tabs will become standalone."""
        return await relay_call(ctx, TOOL_UNGROUP_GROUPS, {"groupIds": groupIds})

    @mcp.tool(
        name=TOOL_CLOSE_TABS,
        title="Close tabs",
        annotations=DESTRUCTIVE,
        structured_output=False,
    )
    async def close_tabs(
        tabIds: Annotated[  # noqa: N803
            list[int], id_list_field("List of specific tab identifiers (integers) to close.")
        ],
        ctx: MCPContext | None = None,
    ) -> CallToolResult:
        """Close specific browser tabs using their unique IDs."""
        return await relay_call(ctx, TOOL_CLOSE_TABS, {"tabIds": tabIds})

    @mcp.tool(
        name=TOOL_PIN_TABS,
        title="Pin tabs",
        annotations=MUTATING,
        structured_output=False,
    )
    async def pin_tabs(
        tabIds: Annotated[  # noqa: N803
            list[int], id_list_field("List of specific tab identifiers (integers) to pin.")
        ],
        ctx: MCPContext | None = None,
    ) -> CallToolResult:
        """Pin specific browser tabs using their unique IDs."""
        return await relay_call(ctx, TOOL_PIN_TABS, {"tabIds": tabIds})

    @mcp.tool(
        name=TOOL_UNPIN_TABS,
        title="Unpin tabs",
        annotations=MUTATING,
        structured_output=False,
    )
    async def unpin_tabs(
        tabIds: Annotated[  # noqa: N803
            list[int], id_list_field("List of specific tab identifiers (integers) to unpin.")
        ],
        ctx: MCPContext | None = None,
    ) -> CallToolResult:
        """Unpin specific browser tabs using their unique IDs."""
        return await relay_call(ctx, TOOL_UNPIN_TABS, {"tabIds": tabIds})

    @mcp.tool(
        name=TOOL_UNGROUP_TABS,
        title="Ungroup tabs",
        annotations=MUTATING,
        structured_output=False,
    )
    async def ungroup_tabs(
        tabIds: Annotated[  # noqa: N803
            list[int],
            id_list_field(
                "List of specific tab identifiers (integers) to remove from their groups."
            ),
        ],
        ctx: MCPContext | None = None,
    ) -> CallToolResult:
        """Remove specific tabs from their assigned groups using their tab IDs.

        The tabs will become standalone.
        """
        return await relay_call(ctx, TOOL_UNGROUP_TABS, {"tabIds": tabIds})

    @mcp.tool(
        name=TOOL_ADD_TO_GROUP,
        title="Add tabs to group",
        annotations=MUTATING,
        structured_output=False,
    )
    async def add_to_group(
        tabIds: Annotated[  # noqa: N803
            list[int], id_list_field("List of tab IDs to move into the target group.")
        ],
        groupId: Annotated[  # noqa: N803
            int, Field(description="The integer ID of an existing group to move the tabs into.")
        ],
        ctx: MCPContext | None = None,
    ) -> CallToolResult:
        """Move specific tabs into an existing browser group."""
        return await relay_call(ctx, TOOL_ADD_TO_GROUP, {"tabIds": tabIds, "groupId": groupId})

    @mcp.tool(
        name=TOOL_MOVE_GROUP,
        title="Move group",
        annotations=MUTATING,
        structured_output=False,
    )
    async def move_group(
        groupId: Annotated[int, Field(description="The ID of the group to move.")],  # noqa: N803
        index: Annotated[int, Field(description=_INDEX_DESCRIPTION)],
        ctx: MCPContext | None = None,
    ) -> CallToolResult:
        """Reposition a browser group to a new index."""
        return await relay_call(ctx, TOOL_MOVE_GROUP, {"groupId": groupId, "index": index})

    @mcp.tool(
        name=TOOL_MOVE_TABS,
        title="Move tabs",
        annotations=MUTATING,
        structured_output=False,
    )
    async def move_tabs(
        tabIds: Annotated[list[int], id_list_field("List of tab IDs to move.")],  # noqa: N803
        index: Annotated[int, Field(description=_INDEX_DESCRIPTION)],
        ctx: MCPContext | None = None,
    ) -> CallToolResult:
        """Move one or more tabs to a specific index position.

        Multiple tabs will be placed contiguously starting at the target index.
        """
        return await relay_call(ctx, TOOL_MOVE_TABS, {"tabIds": tabIds, "index": index})

    @mcp.tool(
        name=TOOL_ADD_TO_NEW_GROUP,
        title="Create group",
        annotations=MUTATING,
        structured_output=False,
    )
    async def add_to_new_group(
        tabIds: Annotated[  # noqa: N803
            list[int], id_list_field("List of tab IDs to group together into the new group.")
        ],
        title: Annotated[str, Field(description="The title of the new group")],
        color: Annotated[
            GroupColor,
            Field(
                description="The color of the new group. Must be one of the supported Chrome colors."
            ),
        ],
        ctx: MCPContext | None = None,
    ) -> CallToolResult:
        """Create a new browser group from a list of tabs, with a title and color."""
        return await relay_call(
            ctx,
            TOOL_ADD_TO_NEW_GROUP,
            {"tabIds": tabIds, "title": title, "color": color},
        )

    @mcp.tool(
        name=TOOL_UPDATE_GROUP,
        title="Update group",
        annotations=MUTATING,
        structured_output=False,
    )
    async def update_group(
        groupId: Annotated[int, Field(description="The ID of the group to update")],  # noqa: N803
        title: Annotated[
            str | None,
            Field(description="The new title. Leave undefined to keep the current title."),
        ] = None,
        color: Annotated[
            GroupColor | None,
            Field(description="The new color. Leave undefined to keep the current color."),
        ] = None,
        ctx: MCPContext | None = None,
    ) -> CallToolResult:
        """Update the title or color of an existing browser group.

        At least one property (title or color) should be provided.
        """
        return await relay_call(
            ctx,
            TOOL_UPDATE_GROUP,
            drop_unset(groupId=groupId, title=title, color=color),
        )


__all__ = [
    "DESTRUCTIVE",
    "MUTATING",
    "READ_ONLY",
    "TOOL_NAMES",
    "GroupColor",
    "MCPContext",
    "ToolRegistrationContext",
    "drop_unset",
    "register_browser_tools",
]
