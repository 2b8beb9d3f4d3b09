# Giphy: proxy GIF search, injecting the server-held API key (GIPHYAPIKEY) when the caller has none
import logging
from typing import List, Optional

import httpx
from fastapi import Depends, HTTPException, Request
from pydantic import BaseModel, Field
from starlette.responses import Response

from config import DEFAULT_SEARCH_LIMIT, GatewayConfig
from relay import fetch_and_relay

logger = logging.getLogger(__name__)


# Giphy search response schema (only used by the optional search sink)
class GifObject(BaseModel):
    type: Optional[str] = None
    id: Optional[str] = None
    url: Optional[str] = None
    slug: Optional[str] = None
    bitly_gif_url: Optional[str] = None
    bitly_url: Optional[str] = None
    embed_url: Optional[str] = None
    username: Optional[str] = None
    source: Optional[str] = None
    title: Optional[str] = None
    rating: Optional[str] = None
    content_url: Optional[str] = None
    source_tld: Optional[str] = None
    source_post_url: Optional[str] = None
    is_sticker: int = 0
    import_datetime: Optional[str] = None
    trending_datetime: Optional[str] = None


class Pagination(BaseModel):
    total_count: int = 0
    count: int = 0
    offset: int = 0


class Meta(BaseModel):
    status: int = 0
    msg: Optional[str] = None
    response_id: Optional[str] = None


class GiphySearchResponse(BaseModel):
    data: List[GifObject] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)
    meta: Meta = Field(default_factory=Meta)


def resolve_api_key(config: GatewayConfig, supplied: Optional[str]) -> str:
    """Caller's key if given, else the configured default. Caller keys are honoured regardless of passthrough."""
    if not supplied:
        return config.default_api_key
    if not config.allow_client_supplied_key:
        logger.debug("Using caller-supplied api_key with GIPHYKEYPASSTHROUGH off")
    return supplied


def first_query_value(request: Request, name: str) -> Optional[str]:
    """First value of a repeated query parameter (?q=a&q=b gives "a"), None when absent."""
    values = request.query_params.getlist(name)
    return values[0] if values else None


def resolve_limit(raw: Optional[str]) -> int:
    """
    Missing, blank and 0 all mean the default limit; any other integer goes through unchecked.
    Raises ValueError when raw is not an integer.
    """
    if not raw:
        return DEFAULT_SEARCH_LIMIT
    return int(raw) or DEFAULT_SEARCH_LIMIT


def build_search_url(base_url: str, query: str, api_key: str, limit: int) -> httpx.URL:
    return httpx.URL(base_url, params={"q": query, "api_key": api_key, "limit": str(limit)})


def log_search_summary(result: GiphySearchResponse) -> None:
    logger.info(
        "Giphy search: status=%s results=%d total=%d",
        result.meta.status, len(result.data), result.pagination.total_count,
    )


def body_parser_for(sink):
    """Wrap a GiphySearchResponse sink as a raw-body callback. Unparseable bodies are dropped silently."""
    if sink is None:
        return None

    def on_body(body: bytes) -> None:
        try:
            result = GiphySearchResponse.model_validate_json(body)
        except ValueError:
            return
        sink(result)

    return on_body


def register(router):
    """Register giphy routes. Dependencies from server to avoid circular imports."""
    import server as srv

    @router.get("/v1/gifs/search")
    async def giphy_search(
        request: Request,
        config: GatewayConfig = Depends(srv.get_config),
        client: httpx.AsyncClient = Depends(srv.get_http_client),
        sink=Depends(srv.get_search_sink),
    ):
        """Forward a Giphy search upstream and relay the response unchanged."""
        query = first_query_value(request, "q") or ""
        api_key = resolve_api_key(config, first_query_value(request, "api_key"))
        raw_limit = first_query_value(request, "limit")
        try:
            limit = resolve_limit(raw_limit)
        except ValueError:
            raise HTTPException(status_code=422, detail=f"limit must be an integer, got {raw_limit!r}")

        try:
            url = build_search_url(config.upstream_search_url, query, api_key, limit)
            upstream_request = client.build_request("GET", url)
        except httpx.InvalidURL:
            logger.exception("Could not build Giphy search URL from %s", config.upstream_search_url)
            return Response(status_code=500)

        try:
            return await fetch_and_relay(client, upstream_request, body_parser_for(sink))
        except httpx.RequestError as e:
            logger.warning("Giphy search upstream unreachable: %s", e)
            return Response(status_code=404)
