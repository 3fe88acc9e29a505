"""Chat client implementations. Each implements base.ChatClient."""

from parrot.adapters.base import ChatClient
from parrot.adapters.irc import IRCAdapter, IRCClient

__all__ = ["ChatClient", "IRCAdapter", "IRCClient"]
