"""IRC chat client: pydle-based."""

from __future__ import annotations

import asyncio

import pydle
from loguru import logger

from parrot.adapters.base import ChatClient
from parrot.errors import ChatConnectionError, NotConnectedError
from parrot.events import ChatListener

_CONNECT_TIMEOUT = 30.0


class IRCClient(pydle.Client):
    """Pydle IRC client forwarding session events to a ChatListener."""

    # Reconnection belongs to the bridge
    RECONNECT_ON_ERROR = False

    def __init__(self, nick: str, listener: ChatListener | None = None, **kwargs):
        kwargs.setdefault("fallback_nicknames", [f"{nick}_", f"{nick}__"])
        kwargs.setdefault("realname", nick)
        super().__init__(nick, **kwargs)
        self._listener = listener

    def set_listener(self, listener: ChatListener) -> None:
        self._listener = listener

    async def on_connect(self):
        """After registration, hand over to the listener (joins, identify)."""
        await super().on_connect()
        logger.debug("IRC registered as {}", self.nickname)
        if self._listener:
            await self._listener.on_connected()

    async def on_disconnect(self, expected: bool) -> None:
        await super().on_disconnect(expected)
        logger.debug("IRC disconnect (expected={})", expected)
        if self._listener:
            await self._listener.on_disconnected(expected)

    async def on_notice(self, target, by, message):
        await super().on_notice(target, by, message)
        if self._listener:
            await self._listener.on_notice(by or "", message)

    async def on_message(self, target, by, message):
        """Channel and private messages alike; the listener tells them apart."""
        await super().on_message(target, by, message)
        if not by or by == self.nickname:
            return
        if self._listener:
            await self._listener.on_message(target, by, message)


class IRCAdapter(ChatClient):
    """ChatClient over a single pydle session."""

    def __init__(
        self,
        nick: str,
        *,
        connect_timeout: float = _CONNECT_TIMEOUT,
        client: IRCClient | None = None,
    ) -> None:
        self._client = client or IRCClient(nick)
        self._connect_timeout = connect_timeout
        self._address: str | None = None

    @property
    def address(self) -> str | None:
        """host:port of the last connection attempt."""
        return self._address

    def set_listener(self, listener: ChatListener) -> None:
        self._client.set_listener(listener)

    async def connect(self, hostname: str, port: int, tls: bool = False, tls_verify: bool = False) -> None:
        self._address = f"{hostname}:{port}"
        try:
            await asyncio.wait_for(
                self._client.connect(
                    hostname=hostname,
                    port=port,
                    tls=tls,
                    tls_verify=tls_verify,
                ),
                timeout=self._connect_timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise ChatConnectionError(
                f"Cannot connect to {self._address}: {exc or type(exc).__name__}",
                code="connect_failed",
                details={"hostname": hostname, "port": port, "tls": tls},
                original_error=exc,
            ) from exc

    async def disconnect(self) -> None:
        if self._client.connected:
            await self._client.disconnect(expected=True)

    def _require_connection(self, operation: str) -> None:
        if not self._client.connected:
            raise NotConnectedError(
                f"Cannot {operation}: not connected to IRC",
                code="not_connected",
            )

    async def send(self, target: str, line: str) -> None:
        self._require_connection(f"send to {target}")
        await self._client.message(target, line)

    async def join(self, channel: str) -> None:
        self._require_connection(f"join {channel}")
        if self._client.in_channel(channel):
            return
        await self._client.join(channel)

    def is_joined(self, channel: str) -> bool:
        return self._client.in_channel(channel)

    @property
    def channels(self) -> list[str]:
        return sorted(self._client.channels)

    @property
    def current_nick(self) -> str:
        return self._client.nickname

    @property
    def connected(self) -> bool:
        return bool(self._client.connected)
