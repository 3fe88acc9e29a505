"""Bridge: serializes HTTP-submitted messages onto the chat connection and keeps it alive."""

from __future__ import annotations

import asyncio
import contextlib
import math
import re

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_never,
    wait_fixed,
)

from parrot.adapters.base import ChatClient
from parrot.config import Config
from parrot.errors import ChatConnectionError, ParrotError
from parrot.events import (
    Accepted,
    ConnectionState,
    OutboundMessage,
    Rejected,
    SubmitResult,
    Unavailable,
)
from parrot.gateway.matching import AddressPattern, address_pattern, reply_target
from parrot.gateway.queue import MessageQueue
from parrot.gateway.throttle import TokenBucket

CHANNEL_PREFIXES = ("#", "&")
NICKSERV = "NickServ"

# IRC forbids these in channel names
_INVALID_TARGET = re.compile(r"[\s,\x00-\x1f\x7f]")

# Errors a single protocol operation can raise without ending the consumer loop
_SEND_ERRORS = (ParrotError, OSError)


def channel_for(target: str) -> str:
    """Chat channel for a target: "news" -> "#news"; prefixed targets pass through."""
    if target.startswith(CHANNEL_PREFIXES):
        return target
    return f"#{target}"


class Bridge:
    """Owns the chat client, the outbound queue and the connection lifecycle.

    Producers call :meth:`submit`; one consumer task delivers queued messages.
    The bridge registers itself as the client's listener, so connect/drop
    events and inbound lines arrive through the ``on_*`` callbacks.
    """

    def __init__(
        self,
        client: ChatClient,
        config: Config,
        *,
        queue: MessageQueue | None = None,
    ) -> None:
        self._client = client
        self._config = config
        self._queue = queue or MessageQueue()
        self._state = ConnectionState.DISCONNECTED
        self._throttle = (
            TokenBucket(limit=config.throttle_limit, refill_rate=float(config.throttle_limit))
            if config.throttle_limit > 0
            else None
        )
        self._consumer_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._stopping = False
        self._reply_text = f"I'm not very smart, see {config.public_url}"
        client.set_listener(self)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def client(self) -> ChatClient:
        return self._client

    @property
    def queue(self) -> MessageQueue:
        return self._queue

    @property
    def default_channel(self) -> str:
        return channel_for(self._config.default_channel)

    @property
    def retry_after(self) -> int:
        """Seconds producers are told to wait while the connection is down."""
        return max(1, math.ceil(self._config.retry_delay * 2))

    @property
    def reply_text(self) -> str:
        return self._reply_text

    # ------------------------------------------------------------------
    # Ingress
    # ------------------------------------------------------------------

    def submit(self, target: str, payload: bytes, *, source: str | None = None) -> SubmitResult:
        """Accept a message for delivery. Never waits on the chat connection."""
        target = target.strip() or self._config.default_channel
        if not payload.strip():
            return Accepted()
        if _INVALID_TARGET.search(target) or not target.lstrip("".join(CHANNEL_PREFIXES)):
            return Rejected(f"invalid channel name: {target!r}")

        msg = OutboundMessage(target=target, payload=payload)
        if self._state is not ConnectionState.CONNECTED:
            logger.warning(
                "Couldn't send '{}' to channel {} on behalf of {}",
                msg.loggable(),
                channel_for(target),
                source or "unknown",
            )
            return Unavailable(retry_after=self.retry_after)

        self._queue.put(msg)
        logger.info(
            "{} sent '{}' to channel {}",
            source or "unknown",
            msg.loggable(),
            channel_for(target),
        )
        return Accepted()

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def _consume_outbound(self) -> None:
        """Deliver queued messages one at a time."""
        while True:
            try:
                msg = await self._queue.get()
            except asyncio.CancelledError:
                break
            try:
                await self.deliver(msg)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.exception("Outbound delivery failed: {}", exc)
            finally:
                self._queue.task_done()

    async def deliver(self, msg: OutboundMessage) -> None:
        """Send each payload line to the target channel, joining it first if needed.

        Failed lines are logged and dropped; delivery moves on to the next line.
        """
        channel = channel_for(msg.target)
        needs_join = not self._client.is_joined(channel)
        for line in msg.lines():
            if self._state is not ConnectionState.CONNECTED:
                logger.warning("Dropping line for {}: not connected", channel)
                continue
            try:
                if needs_join:
                    logger.info("Joining {}", channel)
                    await self._client.join(channel)
                    needs_join = False
                if self._throttle:
                    await self._throttle.wait()
                await self._client.send(channel, line)
            except _SEND_ERRORS as exc:
                logger.error("Failed to send to {}: {}", channel, exc)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Single connection attempt. Raises ChatConnectionError on failure."""
        hostname, port = self._config.irc_endpoint
        logger.info("Connecting to IRC {}", self._config.irc_address)
        self._state = ConnectionState.CONNECTING
        try:
            await self._client.connect(
                hostname,
                port,
                tls=self._config.ssl,
                tls_verify=self._config.tls_verify,
            )
        except ChatConnectionError as exc:
            self._state = ConnectionState.DISCONNECTED
            logger.error("Connection error: {}", exc)
            raise

    async def connect_with_retry(self) -> None:
        """Call :meth:`connect` every ``retry_delay`` seconds until it succeeds."""
        retrying = AsyncRetrying(
            stop=stop_never,
            wait=wait_fixed(self._config.retry_delay),
            retry=retry_if_exception_type(ChatConnectionError),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self.connect()

    def _log_retry(self, retry_state: RetryCallState) -> None:
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.info(
            "IRC connect attempt {} failed, retrying in {:.1f}s",
            retry_state.attempt_number,
            wait,
        )

    def _schedule_reconnect(self) -> None:
        """Run connect_with_retry as a detached task; one at a time."""
        if self._reconnect_task and not self._reconnect_task.done():
            logger.debug("Reconnect already in progress")
            return
        self._reconnect_task = asyncio.create_task(self.connect_with_retry())
        self._reconnect_task.add_done_callback(self._reconnect_done)

    def _reconnect_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("Reconnect task failed: {}", exc)

    async def on_connected(self) -> None:
        self._state = ConnectionState.CONNECTED
        try:
            await self._client.join(self.default_channel)
        except _SEND_ERRORS as exc:
            logger.error("Failed to join {}: {}", self.default_channel, exc)
        logger.info("Connected as {}", self._client.current_nick)
        if self._config.nick_password:
            try:
                await self._client.send(NICKSERV, f"IDENTIFY {self._config.nick_password}")
            except _SEND_ERRORS as exc:
                logger.error("Failed to identify with {}: {}", NICKSERV, exc)

    async def on_disconnected(self, expected: bool) -> None:
        self._state = ConnectionState.DISCONNECTED
        if self._stopping:
            logger.info("Disconnected from IRC")
            return
        # Best-effort rejoin; fails fast while the link is down
        try:
            await self._client.join(self.default_channel)
        except _SEND_ERRORS as exc:
            logger.debug("Default channel join while disconnected failed: {}", exc)
        logger.warning("Oops got disconnected, retrying to connect...")
        self._schedule_reconnect()

    async def on_notice(self, sender: str, text: str) -> None:
        logger.info("NOTICE from {}: {}", sender, text)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def address_pattern(self) -> AddressPattern:
        """Pattern for the names the bot answers to under its current nick."""
        return address_pattern(
            self._config.nick, self._client.current_nick, *self._config.aliases
        )

    async def on_message(self, target: str, sender: str, text: str) -> None:
        nick = self._client.current_nick
        destination = reply_target(target, sender, text, nick, self.address_pattern())
        if destination is None:
            return
        logger.info("{} said to me {}: {}", sender, target, text)
        try:
            await self._client.send(destination, self._reply_text)
        except _SEND_ERRORS as exc:
            logger.error("Failed to reply to {}: {}", destination, exc)

    # ------------------------------------------------------------------
    # Start / stop
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the outbound consumer."""
        self._stopping = False
        self._queue.bind(asyncio.get_running_loop())
        if self._consumer_task is None or self._consumer_task.done():
            self._consumer_task = asyncio.create_task(self._consume_outbound())

    async def stop(self) -> None:
        """Stop consumer and reconnect tasks, then close the chat session."""
        self._stopping = True
        for task in (self._reconnect_task, self._consumer_task):
            if task and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._reconnect_task = None
        self._consumer_task = None
        if self._client.connected:
            await self._client.disconnect()
        self._state = ConnectionState.DISCONNECTED
