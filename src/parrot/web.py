"""HTTP ingress: POST text to /post[/<channel>], status page at /."""

from __future__ import annotations

import html
from pathlib import Path
from string import Template

from aiohttp import web
from loguru import logger

from parrot.config import Config
from parrot.errors import ParrotConfigurationError
from parrot.events import Rejected, Unavailable
from parrot.gateway.bridge import Bridge

TEMPLATE_PATH = Path(__file__).parent / "templates" / "home.html"
FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

BRIDGE_KEY = web.AppKey("bridge", Bridge)
CONFIG_KEY = web.AppKey("config", Config)
TEMPLATE_KEY = web.AppKey("template", Template)


def load_template(path: str | Path = TEMPLATE_PATH) -> Template:
    """Read the status page template. Missing template is a startup error."""
    path = Path(path)
    try:
        return Template(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ParrotConfigurationError(
            f"Cannot read template {path}",
            code="missing_template",
            details={"path": str(path)},
            original_error=exc,
        ) from exc


def render_home(template: Template, bridge: Bridge, config: Config) -> str:
    client = bridge.client
    channels = "".join(f"<li>{html.escape(c)}</li>" for c in client.channels)
    return template.safe_substitute(
        nick=html.escape(client.current_nick),
        channels=channels,
        url=html.escape(config.public_url),
        http_address=html.escape(config.http_address),
        irc_address=html.escape(config.irc_address),
        state=bridge.state.value,
        default_channel=html.escape(bridge.default_channel),
    )


async def _read_payload(request: web.Request) -> bytes:
    """Message bytes: the ``msg`` form field for form posts, else the raw body."""
    if request.content_type in FORM_CONTENT_TYPES:
        form = await request.post()
        value = form.get("msg", "")
        if isinstance(value, web.FileField):
            value = value.file.read().decode("utf-8", errors="replace")
        return str(value).strip().encode("utf-8")
    return await request.read()


async def home(request: web.Request) -> web.Response:
    text = render_home(
        request.app[TEMPLATE_KEY],
        request.app[BRIDGE_KEY],
        request.app[CONFIG_KEY],
    )
    return web.Response(text=text, content_type="text/html")


async def post_message(request: web.Request) -> web.Response:
    if request.method != "POST":
        raise web.HTTPNotFound()
    bridge = request.app[BRIDGE_KEY]
    channel = request.match_info.get("channel", "")

    try:
        payload = await _read_payload(request)
    except ValueError as exc:
        logger.warning("POST error in body reading from {}: {}", request.remote, exc)
        raise web.HTTPBadRequest(text=f"POST error in body reading: {exc}") from exc

    result = bridge.submit(channel, payload, source=request.remote)
    if isinstance(result, Unavailable):
        raise web.HTTPServiceUnavailable(headers={"Retry-After": str(result.retry_after)})
    if isinstance(result, Rejected):
        raise web.HTTPBadRequest(text=result.reason)
    return web.Response()


@web.middleware
async def not_found_for_other_methods(request: web.Request, handler):
    """Unknown paths and wrong methods both answer 404."""
    try:
        return await handler(request)
    except web.HTTPMethodNotAllowed as exc:
        raise web.HTTPNotFound() from exc


def create_app(bridge: Bridge, config: Config, template: Template | None = None) -> web.Application:
    app = web.Application(middlewares=[not_found_for_other_methods])
    app[BRIDGE_KEY] = bridge
    app[CONFIG_KEY] = config
    app[TEMPLATE_KEY] = template or load_template()
    app.router.add_get("/", home, allow_head=False)
    app.router.add_route("*", "/post", post_message)
    app.router.add_route("*", "/post/{channel:.*}", post_message)
    return app
