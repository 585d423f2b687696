import socket
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from flight_scrape_client.models import PollingConfig
from flight_scrape_client.request_builder import build_scrape_request
from scrape_server import ScrapeServer

BASE_URL_TEMPLATE = "http://127.0.0.1:{}"


@pytest_asyncio.fixture
async def server() -> AsyncGenerator[ScrapeServer, None]:
    """Start and yield a simulated ScrapeServer on a free port."""
    server_instance = ScrapeServer(completion_attempts=2, error_rate=0.0)
    await server_instance.start()
    try:
        yield server_instance
    finally:
        await server_instance.stop()


@pytest.fixture
def base_url(server) -> str:
    return BASE_URL_TEMPLATE.format(server.port)


@pytest.fixture
def config() -> PollingConfig:
    """Polling configuration with no wait between attempts."""
    return PollingConfig(interval=0.0, max_attempts=60, request_timeout=5.0)


@pytest.fixture
def scrape_request():
    return build_scrape_request(
        origin="yyz",
        destination="lhr",
        outbound="2025-03-14",
        airline="ac",
        retries="3",
        proxy="",
    )


@pytest.fixture
def closed_port() -> int:
    """A local port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
