from fastapi import FastAPI, APIRouter, Request
from dotenv import load_dotenv
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Optional
import logging
import logging.handlers
import time
import httpx
import uvicorn

from config import GatewayConfig, load_config

ROOT_DIR = Path(__file__).parent

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("gifly.access")


def configure_logging(log_dir: Path = ROOT_DIR / "logs", retention_days: int = 30):
    """
    Root logging for the gateway process: every record goes to stderr and to
    log_dir/server.log. The file rolls over at midnight and keeps retention_days old files.
    """
    log_dir.mkdir(exist_ok=True)
    file_handler = logging.handlers.TimedRotatingFileHandler(
        log_dir / "server.log", when="midnight", backupCount=retention_days, encoding="utf-8"
    )
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(), file_handler],
    )


class AccessLogMiddleware(BaseHTTPMiddleware):
    """One line per request: [METHOD] "STATUS LATENCY PATH"."""
    async def dispatch(self, request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        access_logger.info('[%s] "%d %.1fms %s"', request.method, response.status_code, elapsed_ms, request.url.path)
        return response


# Dependencies for routers (read from app.state, set once in create_app / lifespan)
def get_config(request: Request) -> GatewayConfig:
    return request.app.state.config


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_search_sink(request: Request):
    return request.app.state.search_sink


def create_app(
    config: GatewayConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    search_sink: Optional[Callable] = None,
) -> FastAPI:
    """
    Build the gateway app. transport overrides the upstream HTTP transport (tests use
    httpx.MockTransport). search_sink, if given, receives each parsed search response;
    when omitted and config.log_search_responses is set, a logging sink is installed.
    """
    from routers import giphy, proxy

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # One pooled client per process. Redirects are followed like a plain GET would.
        app.state.http_client = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(config.upstream_timeout),
            follow_redirects=True,
        )
        try:
            yield
        finally:
            await app.state.http_client.aclose()

    # Docs routes are disabled: every unmatched path belongs to the upstream.
    app = FastAPI(title="gifly", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.config = config
    if search_sink is None and config.log_search_responses:
        search_sink = giphy.log_search_summary
    app.state.search_sink = search_sink

    router = APIRouter()
    giphy.register(router)
    # Catch-all last so registered routes win
    proxy.register(router)
    app.include_router(router)

    app.add_middleware(AccessLogMiddleware)
    return app


def main():
    load_dotenv(ROOT_DIR / '.env')
    # Also load project root .env if present (e.g. when running from root)
    load_dotenv(ROOT_DIR.parent / '.env')
    configure_logging()

    config = load_config()
    try:
        port = int(config.port)
    except ValueError:
        logger.error("PORT must be a number, got %r. Refusing to start.", config.port)
        raise SystemExit(1)

    logger.info(
        "Starting gifly on port %d (upstream %s, key passthrough %s, timeout %ss)",
        port, config.upstream_host, "on" if config.allow_client_supplied_key else "off", config.upstream_timeout,
    )
    uvicorn.run(create_app(config), host="0.0.0.0", port=port, log_config=None)


if __name__ == "__main__":
    main()
