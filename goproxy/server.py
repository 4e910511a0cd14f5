"""
ASGI read surface - serves the module proxy protocol over HTTP.

``ProxyApp`` is a plain ASGI application; point ``GOPROXY`` at it::

    GOPROXY=http://127.0.0.1:8080 go get example.com/foo/bar@v0.0.123

Only ``GET`` and ``HEAD`` are answered. Status codes:

- 200 with the object
- 404 for unknown modules, versions and non-protocol paths
- 405 for any other method
- 503 when the backing store cannot be read
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

from .faults import Fault, NotFoundFault, StoreFault
from .protocol.handler import ProtocolHandler

logger = logging.getLogger("goproxy.server")

ALLOWED_METHODS = ("GET", "HEAD")
TEXT = "text/plain; charset=utf-8"


class ProxyApp:
    """
    ASGI application over a :class:`ProtocolHandler`.

    Args:
        handler: Read protocol handler.
        url_prefix: Path prefix the proxy is mounted under (e.g. ``/mod``).
    """

    __slots__ = ("handler", "url_prefix")

    def __init__(self, handler: ProtocolHandler, url_prefix: str = ""):
        self.handler = handler
        self.url_prefix = url_prefix.rstrip("/")

    async def __call__(self, scope: dict, receive: Callable, send: Callable):
        scope_type = scope["type"]
        if scope_type == "http":
            await self.handle_http(scope, receive, send)
        elif scope_type == "lifespan":
            await self.handle_lifespan(scope, receive, send)

    async def handle_http(self, scope: dict, receive: Callable, send: Callable):
        method = scope.get("method", "GET")
        path = scope.get("path", "/")

        if method not in ALLOWED_METHODS:
            await self._respond(
                send, 405, b"method not allowed\n", TEXT,
                extra=[(b"allow", ", ".join(ALLOWED_METHODS).encode())],
            )
            return

        relative = self._strip_prefix(path)
        if relative is None:
            await self._respond(send, 404, b"not found\n", TEXT, head=method == "HEAD")
            return

        try:
            response = await self.handler.resolve(relative)
        except NotFoundFault as fault:
            logger.debug("%s %s -> 404 (%s)", method, path, fault.code)
            await self._respond(send, 404, (fault.message + "\n").encode(), TEXT, head=method == "HEAD")
            return
        except StoreFault as fault:
            logger.warning("%s %s -> 503: %s", method, path, fault.message)
            await self._respond(send, 503, b"store unavailable\n", TEXT, head=method == "HEAD")
            return
        except Fault as fault:
            logger.error("%s %s -> 500: %s", method, path, fault)
            await self._respond(send, 500, b"internal error\n", TEXT, head=method == "HEAD")
            return

        await self._respond(send, 200, response.body, response.content_type, head=method == "HEAD")

    async def handle_lifespan(self, scope: dict, receive: Callable, send: Callable):
        """Handle ASGI lifespan events."""
        while True:
            message = await receive()

            if message["type"] == "lifespan.startup":
                logger.info("Serving %s at '%s/'", self.handler.store, self.url_prefix)
                await send({"type": "lifespan.startup.complete"})

            elif message["type"] == "lifespan.shutdown":
                try:
                    await self.handler.store.close()
                    await send({"type": "lifespan.shutdown.complete"})
                except Exception as e:
                    logger.error("Shutdown error: %s", e, exc_info=True)
                    await send({"type": "lifespan.shutdown.failed", "message": str(e)})
                break

    def _strip_prefix(self, path: str) -> Optional[str]:
        if not self.url_prefix:
            return path
        if not path.startswith(self.url_prefix + "/"):
            return None
        return path[len(self.url_prefix):]

    @staticmethod
    async def _respond(
        send: Callable,
        status: int,
        body: bytes,
        content_type: str,
        *,
        head: bool = False,
        extra: Optional[List[Tuple[bytes, bytes]]] = None,
    ) -> None:
        headers = [
            (b"content-type", content_type.encode()),
            (b"content-length", str(len(body)).encode()),
        ]
        if extra:
            headers.extend(extra)
        await send({"type": "http.response.start", "status": status, "headers": headers})
        await send({"type": "http.response.body", "body": b"" if head else body})


def create_app(config) -> ProxyApp:
    """Build a :class:`ProxyApp` from a :class:`~goproxy.config.ProxyConfig`."""
    handler = ProtocolHandler(config.create_store(), retry=config.retry_policy())
    return ProxyApp(handler, url_prefix=config.url_prefix)


def serve(config, *, access_log: bool = True) -> None:
    """Run the proxy under uvicorn until interrupted."""
    import uvicorn

    app = create_app(config)
    logger.info("Starting uvicorn server on %s:%d", config.host, config.port)
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        access_log=access_log,
        lifespan="on",
    )
