"""Configuration: YAML + env overlay + command-line overrides."""

from __future__ import annotations

import math
import os
import socket
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml
from loguru import logger

from parrot.errors import ParrotConfigurationError

DEFAULTS: dict[str, Any] = {
    "nick": "parrot",
    "nick_password": "",
    "irc_address": "irc.libera.chat",
    "ssl": False,
    "tls_verify": False,
    "default_channel": "parrot",
    "http_address": ":5555",
    "syslog": False,
    "retry_delay": 3,
    "throttle_limit": 10,
    "aliases": ("parrot",),
    "public_url": "",
}

# PARROT_<KEY> environment variables override the YAML file
_ENV_PREFIX = "PARROT_"
_BOOL_KEYS = ("ssl", "tls_verify", "syslog")

IRC_PORT = 6667
IRC_TLS_PORT = 6697


def _deep_update(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_update(result[key], value)
        else:
            result[key] = value
    return result


def _parse_bool_env(val: str) -> bool | None:
    """Parse env string to bool; None if not a recognized bool."""
    v = val.lower()
    if v in ("1", "true", "yes"):
        return True
    if v in ("0", "false", "no"):
        return False
    return None


def _load_env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect PARROT_* overrides for known keys."""
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for key in DEFAULTS:
        raw = environ.get(_ENV_PREFIX + key.upper())
        if raw is None or raw == "":
            continue
        if key in _BOOL_KEYS:
            parsed = _parse_bool_env(raw)
            if parsed is None:
                logger.warning("Ignoring {}={!r}: not a boolean", _ENV_PREFIX + key.upper(), raw)
                continue
            overrides[key] = parsed
        elif key == "aliases":
            overrides[key] = [a.strip() for a in raw.split(",") if a.strip()]
        else:
            overrides[key] = raw
    return overrides


def load_config(path: str | Path) -> dict[str, Any]:
    """Load config from YAML file. Use SafeLoader. Returns raw dict."""
    path = Path(path)
    if not path.exists():
        logger.debug("Config file not found: {}; using defaults", path)
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ParrotConfigurationError(
            f"Failed to parse config {path}",
            code="invalid_yaml",
            details={"path": str(path)},
            original_error=exc,
        ) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ParrotConfigurationError(
            f"Config file {path} has invalid structure (expected mapping)",
            code="invalid_structure",
            details={"type": type(data).__name__},
        )
    return data


def load_config_with_env(path: str | Path) -> dict[str, Any]:
    """Load config from YAML and overlay PARROT_* env values.

    Loads .env via python-dotenv when present.
    """
    from dotenv import load_dotenv

    load_dotenv()
    return _deep_update(load_config(path), _load_env_overrides())


def split_host_port(address: str, default_port: int) -> tuple[str, int]:
    """Split ``host[:port]`` into its parts. Bracketed IPv6 hosts are accepted."""
    address = address.strip()
    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if not sep:
            raise ValueError(f"unterminated IPv6 address: {address!r}")
        port_text = rest[1:] if rest.startswith(":") else ""
    elif address.count(":") == 1:
        host, _, port_text = address.partition(":")
    else:
        host, port_text = address, ""
    if not port_text:
        return host, default_port
    if not port_text.isdigit():
        raise ValueError(f"invalid port in {address!r}")
    port = int(port_text)
    if not 0 < port < 65536:
        raise ValueError(f"port out of range in {address!r}")
    return host, port


class Config:
    """Read-only config accessor. Built once at startup and shared by reference."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None, *, validate: bool = True) -> None:
        object.__setattr__(self, "_data", MappingProxyType(_deep_update(DEFAULTS, data or {})))
        if validate:
            self._validate()

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Config is immutable")

    def _validate(self) -> None:
        """Validate config values; raise ParrotConfigurationError on failure."""
        if not self.nick:
            raise ParrotConfigurationError("nick must not be empty", code="missing_nick")
        if not self.default_channel.lstrip("#&"):
            raise ParrotConfigurationError(
                "default_channel must not be empty", code="missing_default_channel"
            )
        try:
            retry_delay = self.retry_delay
            throttle_limit = self.throttle_limit
        except (TypeError, ValueError) as exc:
            raise ParrotConfigurationError(
                "retry_delay and throttle_limit must be numbers",
                code="invalid_number",
                original_error=exc,
            ) from exc
        if not math.isfinite(retry_delay) or retry_delay <= 0:
            raise ParrotConfigurationError(
                "retry_delay must be a positive finite number",
                code="invalid_retry_delay",
                details={"retry_delay": retry_delay},
            )
        if throttle_limit < 0:
            raise ParrotConfigurationError(
                "throttle_limit must not be negative",
                code="invalid_throttle_limit",
                details={"throttle_limit": throttle_limit},
            )
        try:
            irc_host, _ = self.irc_endpoint
            self.http_endpoint
        except ValueError as exc:
            raise ParrotConfigurationError(
                f"Malformed address: {exc}",
                code="invalid_address",
                original_error=exc,
            ) from exc
        if not irc_host:
            raise ParrotConfigurationError(
                "irc_address has no host",
                code="invalid_address",
                details={"irc_address": self.irc_address},
            )

    @property
    def raw(self) -> Mapping[str, Any]:
        """Merged config mapping (read-only)."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Get value by dot-separated path."""
        parts = key.split(".")
        obj: Any = self._data
        for part in parts:
            if isinstance(obj, Mapping) and part in obj:
                obj = obj[part]
            else:
                return default
        return obj

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __contains__(self, key: str) -> bool:
        return key in self._data

    @property
    def nick(self) -> str:
        return str(self._data["nick"]).strip()

    @property
    def nick_password(self) -> str:
        return str(self._data["nick_password"] or "")

    @property
    def irc_address(self) -> str:
        return str(self._data["irc_address"])

    @property
    def ssl(self) -> bool:
        return bool(self._data["ssl"])

    @property
    def tls_verify(self) -> bool:
        return bool(self._data["tls_verify"])

    @property
    def irc_endpoint(self) -> tuple[str, int]:
        """(host, port) of the IRC server; port defaults by TLS setting."""
        return split_host_port(self.irc_address, IRC_TLS_PORT if self.ssl else IRC_PORT)

    @property
    def default_channel(self) -> str:
        return str(self._data["default_channel"]).strip()

    @property
    def http_address(self) -> str:
        return str(self._data["http_address"])

    @property
    def http_endpoint(self) -> tuple[str, int]:
        """(host, port) to bind the HTTP server; empty host binds all interfaces."""
        return split_host_port(self.http_address, 5555)

    @property
    def syslog(self) -> bool:
        return bool(self._data["syslog"])

    @property
    def retry_delay(self) -> float:
        """Seconds between connection attempts."""
        return float(self._data["retry_delay"])

    @property
    def throttle_limit(self) -> int:
        """Outbound lines per second; 0 disables flood control."""
        return int(self._data["throttle_limit"])

    @property
    def aliases(self) -> tuple[str, ...]:
        val = self._data["aliases"]
        if isinstance(val, str):
            val = [val]
        if not isinstance(val, (list, tuple)):
            return ()
        return tuple(str(a) for a in val if str(a).strip())

    @property
    def public_url(self) -> str:
        """URL advertised in the canned reply and on the status page."""
        val = self._data["public_url"]
        if val and isinstance(val, str) and val.strip():
            return val.strip()
        _, port = self.http_endpoint
        return f"http://{socket.gethostname()}:{port}"
