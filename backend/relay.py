# Relay an upstream httpx response back to the caller: headers, status, then body.
from typing import Callable, Optional

import httpx
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse

# Hop-by-hop headers (RFC 7230 6.1) are per-connection and never relayed.
# The body is relayed decoded, so content-encoding/content-length no longer apply.
EXCLUDED_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
    "content-encoding",
    "content-length",
})

BodySink = Callable[[bytes], None]


def relay_headers(upstream: httpx.Response) -> list:
    """Upstream headers as ASGI raw headers, every value of every relayed name kept in order."""
    return [
        (name.lower(), value)
        for name, value in upstream.headers.raw
        if name.decode("latin-1").lower() not in EXCLUDED_HEADERS
    ]


async def _stream_body(upstream: httpx.Response, on_body: Optional[BodySink]):
    buf = bytearray() if on_body is not None else None
    try:
        async for chunk in upstream.aiter_bytes():
            if buf is not None:
                buf.extend(chunk)
            yield chunk
    finally:
        # aclose is idempotent; the background task may run it again
        await upstream.aclose()
    if on_body is not None:
        on_body(bytes(buf))


def relay(upstream: httpx.Response, on_body: Optional[BodySink] = None) -> StreamingResponse:
    """
    Turn an open (stream=True) upstream response into the caller's response.

    Status and headers are copied as-is (minus EXCLUDED_HEADERS) and the body is streamed
    through unmodified. The upstream response is closed when the body generator finishes
    or is closed, and again by a background task once the caller's response has been sent.
    on_body, if given, receives the complete body after the last chunk was relayed.
    """
    response = StreamingResponse(
        _stream_body(upstream, on_body),
        status_code=upstream.status_code,
        background=BackgroundTask(upstream.aclose),
    )
    response.raw_headers = relay_headers(upstream)
    return response


async def fetch_and_relay(
    client: httpx.AsyncClient,
    request: httpx.Request,
    on_body: Optional[BodySink] = None,
) -> StreamingResponse:
    """Send request with streaming enabled and relay the result. httpx.RequestError propagates."""
    upstream = await client.send(request, stream=True)
    try:
        return relay(upstream, on_body)
    except BaseException:
        await upstream.aclose()
        raise
