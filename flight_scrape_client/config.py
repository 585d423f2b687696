import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_UPSTREAM_URL = "http://localhost:8000"

ENV_UPSTREAM_URL = "FLIGHT_SCRAPER_UPSTREAM_URL"
ENV_LOG_LEVEL = "FLIGHT_SCRAPER_LOG_LEVEL"


class ProxySettings(BaseModel):
    """Settings for the CORS proxy in front of the scraping server.

    Values can be overridden via environment variables:
    - FLIGHT_SCRAPER_UPSTREAM_URL
    - FLIGHT_PROXY_HOST
    - FLIGHT_PROXY_PORT
    - FLIGHT_PROXY_PREFIX
    - FLIGHT_PROXY_TIMEOUT
    - FLIGHT_SCRAPER_LOG_LEVEL
    """

    upstream_url: str = DEFAULT_UPSTREAM_URL
    host: str = "127.0.0.1"
    port: int = Field(default=3000, ge=0, le=65535)
    prefix: str = "/api"
    request_timeout: float = 30.0
    log_level: str = "INFO"

    @field_validator("upstream_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("prefix")
    @classmethod
    def _normalize_prefix(cls, value: str) -> str:
        value = value.strip("/")
        return f"/{value}" if value else ""

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ProxySettings":
        environ = os.environ if environ is None else environ
        overrides = {
            "upstream_url": environ.get(ENV_UPSTREAM_URL),
            "host": environ.get("FLIGHT_PROXY_HOST"),
            "port": environ.get("FLIGHT_PROXY_PORT"),
            "prefix": environ.get("FLIGHT_PROXY_PREFIX"),
            "request_timeout": environ.get("FLIGHT_PROXY_TIMEOUT"),
            "log_level": environ.get(ENV_LOG_LEVEL),
        }
        return cls(**{k: v for k, v in overrides.items() if v is not None})
