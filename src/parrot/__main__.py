"""Parrot entrypoint. Loads config, connects to IRC, serves HTTP."""

from __future__ import annotations

import argparse
import asyncio
import logging.handlers
import signal
import sys
from pathlib import Path
from string import Template
from typing import Any

from aiohttp import web
from loguru import logger

from parrot import __version__
from parrot.adapters.irc import IRCAdapter
from parrot.config import Config, _deep_update, load_config_with_env
from parrot.errors import ChatConnectionError, ParrotConfigurationError
from parrot.gateway import Bridge
from parrot.web import create_app, load_template

# Flag destination -> config key
_FLAG_KEYS = {
    "nick": "nick",
    "nickpassword": "nick_password",
    "irc_address": "irc_address",
    "ssl": "ssl",
    "default_channel": "default_channel",
    "http_address": "http_address",
    "syslog": "syslog",
}


def setup_logging(verbose: bool = False, use_syslog: bool = False) -> None:
    """Configure loguru. Replace default logging; optionally log to syslog."""
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    if use_syslog:
        handler = logging.handlers.SysLogHandler(
            address="/dev/log",
            facility=logging.handlers.SysLogHandler.LOG_DAEMON,
        )
        logger.add(handler, level=level, format="parrot: {message}")
        return
    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
            "<cyan>{name}</cyan> | {message}"
        ),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Parrot: HTTP to IRC bridge")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to config file (default: config.yaml when present)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--syslog", action="store_true", default=None, help="Log to syslog")
    parser.add_argument("--nick", help="bot's nickname")
    parser.add_argument("--nickpassword", help="NickServ password")
    parser.add_argument("--irc-address", help="IRC server address (host[:port])")
    parser.add_argument("--ssl", action="store_true", default=None, help="Connect with SSL")
    parser.add_argument(
        "--default-channel",
        help="default channel for messages, and initial channel",
    )
    parser.add_argument("--http-address", help="TCP address of the HTTP server")
    return parser


def flag_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Config values given explicitly on the command line."""
    return {
        key: getattr(args, dest)
        for dest, key in _FLAG_KEYS.items()
        if getattr(args, dest, None) is not None
    }


def build_config(args: argparse.Namespace) -> Config:
    """YAML + env, then command-line flags on top."""
    path = args.config or Path("config.yaml")
    if args.config is not None and not path.exists():
        raise ParrotConfigurationError(
            f"Config file not found: {path}",
            code="missing_config",
            details={"path": str(path)},
        )
    data = load_config_with_env(path)
    return Config(_deep_update(data, flag_overrides(args)))


def main(argv: list[str] | None = None) -> None:
    """Main entrypoint."""
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose)
    try:
        config = build_config(args)
    except ParrotConfigurationError as exc:
        logger.error("{}", exc)
        sys.exit(1)

    if config.syslog:
        try:
            setup_logging(args.verbose, use_syslog=True)
        except OSError as exc:
            logger.error("Can't initialize syslog: {}", exc)
            sys.exit(1)

    try:
        template = load_template()
    except ParrotConfigurationError as exc:
        logger.error("{}", exc)
        sys.exit(1)

    sys.exit(asyncio.run(_run(config, template)))


async def _run(config: Config, template: Template) -> int:
    """Connect, serve HTTP and wait for a stop signal. Returns the exit status."""
    bridge = Bridge(IRCAdapter(config.nick), config)
    await bridge.start()

    try:
        await bridge.connect()
    except ChatConnectionError:
        await bridge.stop()
        return 1

    runner = web.AppRunner(create_app(bridge, config, template))
    await runner.setup()
    host, port = config.http_endpoint
    site = web.TCPSite(runner, host or None, port)
    try:
        await site.start()
    except OSError as exc:
        logger.error("HTTP error: {}", exc)
        await runner.cleanup()
        await bridge.stop()
        return 1
    logger.info("HTTP server running at {}", config.http_address)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        logger.info("Parrot shutting down")
        await runner.cleanup()
        await bridge.stop()
    return 0


if __name__ == "__main__":
    main()
