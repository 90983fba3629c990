"""Plain ASGI application exposing a prometheus_client registry.

No web framework is involved; the app runs under uvicorn or any other
ASGI server. Routes:

- ``telemetry_path``: Prometheus text exposition, one collection per request
- ``/``: a small HTML page linking to the metrics
- anything else: 404
"""

import asyncio
import json
from collections.abc import Awaitable, Callable, MutableMapping
from typing import Any

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from ldap_exporter.core.logs import get_logger, log_exception

logger = get_logger(__name__)

Message = MutableMapping[str, Any]
Scope = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

_LANDING_PAGE = """<html>
<head><title>LDAP Exporter</title></head>
<body>
<h1>LDAP Exporter</h1>
<p><a href="{path}">Metrics</a></p>
</body>
</html>
"""

_ERROR_BODY = json.dumps({"error": "Internal Server Error"})


async def _respond(send: Send, status: int, content_type: str, body: str | bytes) -> None:
    payload = body.encode("utf-8") if isinstance(body, str) else body
    await send(
        {
            "type": "http.response.start",
            "status": status,
            "headers": [(b"content-type", content_type.encode("latin-1"))],
        }
    )
    await send({"type": "http.response.body", "body": payload})


def create_asgi_app(
    registry: CollectorRegistry,
    telemetry_path: str = "/metrics",
) -> ASGIApp:
    """Build the exporter's ASGI application.

    Every request to ``telemetry_path`` collects the whole registry in a
    worker thread. Collections never overlap: the directory connection
    behind the registry handles one search at a time.

    A failing collection is logged and answered with a JSON 500 body.
    """
    lock = asyncio.Lock()
    landing_page = _LANDING_PAGE.format(path=telemetry_path)

    async def serve_metrics(send: Send) -> None:
        try:
            async with lock:
                exposition = await asyncio.to_thread(generate_latest, registry)
        except Exception:
            log_exception("Error collecting metrics", logger)
            await _respond(send, 500, "application/json", _ERROR_BODY)
            return
        await _respond(send, 200, CONTENT_TYPE_LATEST, exposition)

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        # lifespan and websocket scopes are not served
        if scope["type"] != "http":
            return

        route = scope["path"]
        if route == telemetry_path:
            await serve_metrics(send)
        elif route == "/":
            await _respond(send, 200, "text/html; charset=utf-8", landing_page)
        else:
            await _respond(send, 404, "text/plain", "Not Found")

    return app
