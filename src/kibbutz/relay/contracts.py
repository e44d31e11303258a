"""Wire frames exchanged with the peer and the result envelope handed to callers."""

from __future__ import annotations

import json
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def new_call_id() -> str:
    return uuid4().hex


class RelayRequest(BaseModel):
    """Outbound frame sent on the data channel (relay -> peer)."""

    id: str = Field(default_factory=new_call_id, description="Correlation id for the reply")
    message: str = Field(description="Message name understood by the peer")
    args: dict[str, Any] = Field(default_factory=dict, description="Message arguments")

    def to_frame(self) -> str:
        return self.model_dump_json()


class RelayReply(BaseModel):
    """Inbound frame received on the data channel (peer -> relay).

    ``result`` is optional on the wire; a reply without one resolves the call
    with ``None``.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1, description="Correlation id echoed from the request")
    result: Any = Field(default=None, description="Peer payload for the call")


class TextContent(BaseModel):
    """A single text item inside a tool result."""

    type: Literal["text"] = "text"
    text: str


class ToolTextResponse(BaseModel):
    """Result returned by the relay facade.

    Soft failures (peer unreachable, channel lost) are ordinary values with
    ``isError`` set rather than exceptions.
    """

    model_config = ConfigDict(populate_by_name=True)

    content: list[TextContent]
    is_error: bool = Field(alias="isError")

    @property
    def text(self) -> str:
        return "\n".join(item.text for item in self.content)

    @staticmethod
    def success(result: Any) -> ToolTextResponse:
        """Wrap a peer payload as pretty-printed JSON text."""
        return ToolTextResponse(
            content=[TextContent(text=json.dumps(result, indent=2))],
            is_error=False,
        )

    @staticmethod
    def failure(text: str) -> ToolTextResponse:
        """Build a soft-failure result carrying a user-facing diagnostic."""
        return ToolTextResponse(content=[TextContent(text=text)], is_error=True)


__all__ = [
    "RelayReply",
    "RelayRequest",
    "TextContent",
    "ToolTextResponse",
    "new_call_id",
]
