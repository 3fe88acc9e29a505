"""Parrot domain exceptions."""

from __future__ import annotations


class ParrotError(Exception):
    """Base for parrot domain errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, object] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.original_error = original_error


class ParrotConfigurationError(ParrotError):
    """Config validation or load failure."""


class ChatConnectionError(ParrotError):
    """A single attempt to connect to the chat server failed."""


class NotConnectedError(ParrotError):
    """Operation needs a live chat connection and there is none."""
