# Catch-all: anything not matched by a registered route is proxied to the Giphy host over https
import logging

import httpx
from fastapi import Depends, Request
from starlette.responses import Response

from config import GatewayConfig
from relay import fetch_and_relay

logger = logging.getLogger(__name__)

# Every verb is accepted but forwarded as GET (see DESIGN.md, open questions).
PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def upstream_url(request: Request, host: str) -> str:
    """Inbound path (still percent-encoded) and raw query string on https://<host>."""
    raw_path = request.scope.get("raw_path") or request.url.path.encode("utf-8")
    url = f"https://{host}{raw_path.decode('latin-1')}"
    query = request.scope.get("query_string", b"")
    if query:
        url += "?" + query.decode("latin-1")
    return url


def register(router):
    """Register the catch-all proxy route. Must be registered after every other route."""
    import server as srv

    @router.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
    async def proxy_all(
        request: Request,
        config: GatewayConfig = Depends(srv.get_config),
        client: httpx.AsyncClient = Depends(srv.get_http_client),
    ):
        target = upstream_url(request, config.upstream_host)
        try:
            upstream_request = client.build_request("GET", target)
        except httpx.InvalidURL:
            logger.exception("Could not build upstream URL for %s", request.url.path)
            return Response(status_code=500)

        try:
            return await fetch_and_relay(client, upstream_request)
        except httpx.RequestError as e:
            logger.warning("Upstream unreachable for %s %s: %s", request.method, target, e)
            return Response(status_code=404)
