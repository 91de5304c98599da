"""File server and reload server for Kiln.

Serves a built site over HTTP or HTTPS. Every request goes through the resolver, so
extensionless URLs, directory URLs and the custom ``not-found.html`` page all work without
special cases here. In development the server also builds the site, watches the sources
and runs a websocket server that pushes ``reload`` to connected browsers.

Key classes:
- SiteServer: Runs the file server and, in development, the reload machinery.
- _ResolvingHandler: HTTP request handler backed by the resolver.
"""

from __future__ import annotations

import asyncio
import mimetypes
import socket
import ssl
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets

from . import __version__
from .config import ConfigError, Mode, ServerConfig
from .log import get_logger
from .reload import ReloadCoordinator
from .resolver import ResolveConfig, resolve

logger = get_logger("server")

NOT_FOUND_BODY = b"Not found"

# mimetypes knows .ts as MPEG transport stream.
_MIME_OVERRIDES = {
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".ts": "text/plain",
    ".mts": "text/plain",
    ".map": "application/json",
}


def content_type_for(path: Path) -> str:
    """Return the Content-Type header value for a file, based on its extension."""
    content_type = _MIME_OVERRIDES.get(path.suffix.lower())
    if content_type is None:
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    if content_type.startswith("text/") or content_type in {
        "application/json",
        "image/svg+xml",
    }:
        content_type += "; charset=utf-8"
    return content_type


def create_ssl_context(config: ServerConfig) -> ssl.SSLContext | None:
    """Load the TLS key pair when one is configured.

    Raises:
        ConfigError: If the key or certificate cannot be loaded.
    """
    if not config.tls_enabled:
        return None
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    try:
        context.load_cert_chain(certfile=str(config.tls_cert), keyfile=str(config.tls_key))
    except (ssl.SSLError, OSError) as exc:
        raise ConfigError(f"Cannot load TLS key pair: {exc}") from exc
    return context


class _ResolvingHandler(BaseHTTPRequestHandler):
    """Serves files picked by the resolver.

    Attributes:
        resolve_config: Output directories to resolve against.
        cache_control: Cache-Control value for successful responses.
    """

    resolve_config: ResolveConfig
    cache_control: str = "no-cache"
    server_version = f"kiln/{__version__}"

    def do_GET(self):
        self._serve(include_body=True)

    def do_HEAD(self):
        self._serve(include_body=False)

    def _serve(self, include_body: bool) -> None:
        route = resolve(self.resolve_config, self.path)
        if route.path is None:
            self._send(404, NOT_FOUND_BODY, "text/plain; charset=utf-8", include_body)
            return
        try:
            body = route.path.read_bytes()
        except OSError:
            # Removed between resolution and read, e.g. by a full rebuild.
            self._send(404, NOT_FOUND_BODY, "text/plain; charset=utf-8", include_body)
            return
        if route.exact:
            self._send(200, body, content_type_for(route.path), include_body, self.cache_control)
        else:
            self._send(404, body, content_type_for(route.path), include_body)

    def _send(
        self,
        status: int,
        body: bytes,
        content_type: str,
        include_body: bool,
        cache_control: str = "no-cache",
    ) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", cache_control)
        self.end_headers()
        if include_body:
            self.wfile.write(body)

    def log_message(self, format, *args):
        logger.info("%s - %s", self.address_string(), format % args)


class _HTTPServer(ThreadingHTTPServer):
    daemon_threads = True


class _HTTPServerV6(_HTTPServer):
    address_family = socket.AF_INET6


def create_http_server(
    config: ServerConfig, ssl_context: ssl.SSLContext | None = None
) -> ThreadingHTTPServer:
    """Bind the file server without starting it.

    Args:
        config: Server settings; ``hostname`` may be an IPv6 address such as ``::``.
        ssl_context: Serve HTTPS with this context when given.

    Returns:
        A bound server; call ``serve_forever`` to run it.
    """
    handler_cls = type(
        "_ResolvingHandlerForSite",
        (_ResolvingHandler,),
        {
            "resolve_config": ResolveConfig.from_server_config(config),
            "cache_control": config.cache_control,
        },
    )
    server_cls = _HTTPServerV6 if ":" in config.hostname else _HTTPServer
    httpd = server_cls((config.hostname, config.port), handler_cls)
    if ssl_context is not None:
        httpd.socket = ssl_context.wrap_socket(httpd.socket, server_side=True)
    return httpd


class SiteServer:
    """Serves a built site; in development also rebuilds it and pushes reloads.

    Attributes:
        config: Server settings.
        coordinator: Watch and reload coordinator, development only.
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self.coordinator: ReloadCoordinator | None = None
        if config.mode is Mode.DEVELOPMENT:
            self.coordinator = ReloadCoordinator(config.build_config())
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ws_stopped: asyncio.Future | None = None
        self._httpd: ThreadingHTTPServer | None = None

    @property
    def scheme(self) -> str:
        return "https" if self.config.tls_enabled else "http"

    def start(self) -> None:  # pragma: no cover - integration path
        """Validate, build when developing, and serve until interrupted.

        Raises:
            ConfigError: If options, TLS material or the source tree are unusable.
        """
        self.config.validate()
        ssl_context = create_ssl_context(self.config)
        self._httpd = create_http_server(self.config, ssl_context)
        if self.coordinator is not None:
            self.coordinator.start()
            threading.Thread(target=self._start_ws, args=(ssl_context,), daemon=True).start()
        logger.info(
            "HTTP listening on %s://%s:%d", self.scheme, self.config.hostname, self.config.port
        )
        try:
            self._httpd.serve_forever()
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def stop(self) -> None:
        if self.coordinator is not None:
            self.coordinator.stop()
        if self._httpd is not None:
            self._httpd.server_close()
            self._httpd = None
        loop = self._loop
        if loop is not None and loop.is_running():
            loop.call_soon_threadsafe(self._finish_ws)

    def _finish_ws(self) -> None:
        if self._ws_stopped is not None and not self._ws_stopped.done():
            self._ws_stopped.set_result(None)

    def _start_ws(self, ssl_context: ssl.SSLContext | None = None) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self.coordinator.bind_loop(loop)
        try:
            loop.run_until_complete(self._run_ws_server(ssl_context))
        except OSError as exc:
            logger.error(
                "WebSocket server failed to start (port %d): %s", self.config.ws_port, exc
            )
        finally:
            self._loop = None
            loop.close()

    async def _run_ws_server(self, ssl_context: ssl.SSLContext | None = None) -> None:
        self._ws_stopped = asyncio.get_running_loop().create_future()
        async with websockets.serve(
            self.coordinator.handle_client,
            self.config.hostname,
            self.config.ws_port,
            ssl=ssl_context,
        ):
            logger.info(
                "WebSocket listening on %s://%s:%d",
                "wss" if ssl_context else "ws",
                self.config.hostname,
                self.config.ws_port,
            )
            await self._ws_stopped
