"""httpx transport that runs every response through a chaos engine."""

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx

from chaos_claws.brain.actions import RequestDescriptor
from chaos_claws.paws.sink import BufferedResponse

if TYPE_CHECKING:
    from chaos_claws.brain.chaos_engine import ChaosEngine

logger = logging.getLogger(__name__)

CHAOS_HEADER = "X-Chaos-Action"

# Stale once the body has been replaced or decoded
_DROPPED_HEADERS = ("content-length", "content-encoding", "transfer-encoding")


class ChaosTransport(httpx.AsyncBaseTransport):
    """Wrap another async transport and perturb the responses it returns.

    Example:
        >>> engine = ChaosEngine(resolve_config("wild"))
        >>> async with httpx.AsyncClient(transport=ChaosTransport(engine)) as client:
        ...     response = await client.get("https://api.example.com/users")
    """

    def __init__(
        self,
        engine: "ChaosEngine",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.engine = engine
        self._transport = transport if transport is not None else httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        descriptor = RequestDescriptor(path=request.url.path, method=request.method)
        sink = BufferedResponse(status=200, body=b"")
        upstream: Dict[str, Any] = {}

        async def call_next() -> None:
            response = await self._transport.handle_async_request(request)
            try:
                content = await response.aread()
            finally:
                await response.aclose()
            upstream["headers"] = response.headers
            sink.set_status(response.status_code)
            sink.set_body(content)

        decision = await self.engine.handle(descriptor, sink, call_next)

        headers = httpx.Headers(upstream.get("headers", {}))
        for name in _DROPPED_HEADERS:
            headers.pop(name, None)
        if decision.applied:
            headers[CHAOS_HEADER] = decision.action_kind.value
            logger.debug("%s %s -> %s", request.method, request.url, decision.detail())

        body = sink.body
        if isinstance(body, (dict, list)):
            body = json.dumps(body)
            headers["content-type"] = "application/json"
        if isinstance(body, str):
            body = body.encode("utf-8")

        return httpx.Response(
            status_code=sink.status,
            headers=headers,
            content=body or b"",
            request=request,
        )

    async def aclose(self) -> None:
        await self._transport.aclose()
