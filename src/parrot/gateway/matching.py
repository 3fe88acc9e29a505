"""Inbound address detection: is a chat line talking to the bot?"""

from __future__ import annotations

import functools
import re


class AddressPattern:
    """Case-insensitive match of any bot name followed by ``:`` or ``,``."""

    def __init__(self, names: tuple[str, ...]) -> None:
        seen: dict[str, str] = {}
        for name in names:
            if name and name.lower() not in seen:
                seen[name.lower()] = name
        self.names = tuple(seen.values())
        if self.names:
            alternatives = "|".join(re.escape(n) for n in self.names)
            self._regex: re.Pattern[str] | None = re.compile(
                f"(?:{alternatives})[:,]", re.IGNORECASE
            )
        else:
            self._regex = None

    def matches(self, text: str) -> bool:
        return self._regex is not None and self._regex.search(text) is not None

    def __repr__(self) -> str:
        return f"AddressPattern({self.names!r})"


@functools.lru_cache(maxsize=16)
def address_pattern(*names: str) -> AddressPattern:
    """Shared pattern for a set of names; rebuilt only when the names change."""
    return AddressPattern(names)


def reply_target(target: str, sender: str, text: str, nick: str, pattern: AddressPattern) -> str | None:
    """Where to send the canned reply for an inbound line, or None to stay quiet.

    Direct messages (target is our nick) are answered to the sender; channel
    lines are answered in the channel when they address the bot.
    """
    if target.lower() == nick.lower():
        return sender
    if pattern.matches(text):
        return target
    return None
