"""Error types raised inside the relay engine."""

from __future__ import annotations

from dataclasses import dataclass


class RelayError(RuntimeError):
    """Base class for relay failures."""


class ChannelClosedError(RelayError):
    """Raised into pending calls when the control or data channel goes away."""

    code: str = "CHANNEL_CLOSED"

    def __init__(self, message: str = "Extension channel closed") -> None:
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class PeerLaunchError(RelayError):
    """Structured failure reported by a peer launcher."""

    code: str
    message: str
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"[{self.code}] {self.message} Hint: {self.hint}"
        return f"[{self.code}] {self.message}"

    def as_dict(self) -> dict[str, str]:
        return {
            "code": self.code,
            "message": self.message,
            "hint": self.hint,
        }


__all__ = ["ChannelClosedError", "PeerLaunchError", "RelayError"]
