"""Event and value types shared by the bridge, chat client and HTTP ingress."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol, Union


@dataclass(frozen=True)
class OutboundMessage:
    """Message accepted for delivery to a chat target.

    ``target`` carries no channel prefix ("news", not "#news"). ``payload`` may
    hold several lines separated by ``\\n``; each becomes its own chat message.
    """

    target: str
    payload: bytes

    def lines(self) -> list[str]:
        """Payload split on line feeds, decoded as UTF-8."""
        return [
            line.decode("utf-8", errors="replace")
            for line in self.payload.split(b"\n")
        ]

    def loggable(self) -> str:
        """Payload on one line for log output."""
        return self.payload.decode("utf-8", errors="replace").replace("\n", "\\n")


class ConnectionState(enum.Enum):
    """Chat connection lifecycle as seen by the bridge."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class Accepted:
    """Message queued for delivery (or an empty payload ignored)."""


@dataclass(frozen=True)
class Unavailable:
    """Chat connection is down; caller should retry after ``retry_after`` seconds."""

    retry_after: int


@dataclass(frozen=True)
class Rejected:
    """Request can never be delivered as given."""

    reason: str


SubmitResult = Union[Accepted, Unavailable, Rejected]


class ChatListener(Protocol):
    """Receiver of chat client events. Callbacks must return quickly."""

    async def on_connected(self) -> None:
        """Session registered with the server."""
        ...

    async def on_disconnected(self, expected: bool) -> None:
        """Session lost. ``expected`` is True for a requested disconnect."""
        ...

    async def on_notice(self, sender: str, text: str) -> None:
        ...

    async def on_message(self, target: str, sender: str, text: str) -> None:
        """Chat line from ``sender`` addressed to ``target`` (channel or our nick)."""
        ...
