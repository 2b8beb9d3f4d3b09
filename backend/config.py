"""
Gateway configuration. Read once from the environment at startup; immutable afterwards.
No request dependencies. Imported by server.py and the routers.
"""
import logging
import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

# Upstream Giphy service
GIPHY_SEARCH_URL = "https://api.giphy.com/v1/gifs/search"
GIPHY_HOST = "api.giphy.com"

DEFAULT_PORT = "8080"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_SEARCH_LIMIT = 10

_TRUE_VALUES = ("1", "t", "T", "TRUE", "true", "True")
_FALSE_VALUES = ("0", "f", "F", "FALSE", "false", "False")


class GatewayConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    default_api_key: str
    allow_client_supplied_key: bool = False
    port: str = DEFAULT_PORT
    upstream_search_url: str = GIPHY_SEARCH_URL
    upstream_host: str = GIPHY_HOST
    upstream_timeout: float = DEFAULT_TIMEOUT_SECONDS
    log_search_responses: bool = False


def parse_bool(value: str) -> bool:
    """Strict boolean parse (1/t/true/0/f/false and their capitalised forms). Raises ValueError otherwise."""
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean: {value!r}")


def _optional_bool(env: Mapping[str, str], name: str) -> bool:
    raw = env.get(name)
    if raw is None:
        return False
    try:
        return parse_bool(raw)
    except ValueError:
        logger.warning("%s not a boolean value - setting off", name)
        return False


def _optional_timeout(env: Mapping[str, str]) -> float:
    raw = env.get("GIPHYTIMEOUT")
    if raw is None:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        seconds = float(raw)
    except ValueError:
        seconds = 0.0
    if seconds <= 0:
        logger.warning("GIPHYTIMEOUT must be a positive number of seconds - using %s", DEFAULT_TIMEOUT_SECONDS)
        return DEFAULT_TIMEOUT_SECONDS
    return seconds


def load_config(environ: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """Build the gateway config from the environment. Missing GIPHYAPIKEY refuses to start (exit 1)."""
    env = os.environ if environ is None else environ

    api_key = (env.get("GIPHYAPIKEY") or "").strip()
    if not api_key:
        logger.error("No GIPHYAPIKEY in environment. Refusing to start.")
        raise SystemExit(1)

    return GatewayConfig(
        default_api_key=api_key,
        allow_client_supplied_key=_optional_bool(env, "GIPHYKEYPASSTHROUGH"),
        port=env.get("PORT") or DEFAULT_PORT,
        upstream_timeout=_optional_timeout(env),
        log_search_responses=_optional_bool(env, "GIPHYLOGRESPONSES"),
    )
