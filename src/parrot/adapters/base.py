"""Chat client interface consumed by the bridge."""

from __future__ import annotations

from abc import ABC, abstractmethod

from parrot.events import ChatListener


class ChatClient(ABC):
    """One chat session: connect, membership, send, join, event delivery."""

    @abstractmethod
    def set_listener(self, listener: ChatListener) -> None:
        """Register the receiver of connected/disconnected/notice/message events."""
        ...

    @abstractmethod
    async def connect(self, hostname: str, port: int, tls: bool = False, tls_verify: bool = False) -> None:
        """Open the session. Raises ChatConnectionError on failure."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the session (expected disconnect)."""
        ...

    @abstractmethod
    async def send(self, target: str, line: str) -> None:
        """Send one chat line to a channel or user. Raises NotConnectedError when down."""
        ...

    @abstractmethod
    async def join(self, channel: str) -> None:
        """Join a channel. Joining a channel already joined is a no-op."""
        ...

    @abstractmethod
    def is_joined(self, channel: str) -> bool:
        ...

    @property
    @abstractmethod
    def channels(self) -> list[str]:
        """Channels the session believes it has joined."""
        ...

    @property
    @abstractmethod
    def current_nick(self) -> str:
        ...

    @property
    @abstractmethod
    def connected(self) -> bool:
        ...
