"""Gateway: outbound queue, bridge core, address matching."""

from parrot.gateway.bridge import Bridge, channel_for
from parrot.gateway.matching import AddressPattern, address_pattern, reply_target
from parrot.gateway.queue import MessageQueue

__all__ = [
    "AddressPattern",
    "Bridge",
    "MessageQueue",
    "address_pattern",
    "channel_for",
    "reply_target",
]
