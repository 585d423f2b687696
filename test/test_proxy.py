from typing import AsyncGenerator

import aiohttp
import pytest
import pytest_asyncio
from flight_scrape_client.config import ProxySettings
from flight_scrape_client.flight_scrape_client import FlightScrapeClient
from flight_scrape_client.models import JobStatus
from flight_scrape_client.proxy import ProxyServer

BASE_URL_TEMPLATE = "http://127.0.0.1:{}"


async def _start_proxy(upstream_port: int) -> ProxyServer:
    proxy = ProxyServer(
        ProxySettings(upstream_url=BASE_URL_TEMPLATE.format(upstream_port), request_timeout=5.0)
    )
    await proxy.start(port=0, host="127.0.0.1")
    return proxy


@pytest_asyncio.fixture
async def proxy(server) -> AsyncGenerator[ProxyServer, None]:
    """Start a proxy in front of the simulated server."""
    proxy_instance = await _start_proxy(server.port)
    try:
        yield proxy_instance
    finally:
        await proxy_instance.stop()


@pytest.fixture
def proxy_url(proxy) -> str:
    return BASE_URL_TEMPLATE.format(proxy.port)


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/api/scrape", "/api/results/abc123", "/somewhere/else"])
async def test_preflight_on_any_path(proxy_url, server, path):
    async with aiohttp.ClientSession() as session:
        async with session.options(f"{proxy_url}{path}") as response:
            body = await response.read()
            assert response.status == 200
            assert body == b""
            assert response.headers["Access-Control-Allow-Origin"] == "*"

    assert server.submissions == []


@pytest.mark.asyncio
async def test_scrape_is_forwarded(proxy_url, server, scrape_request):
    payload = scrape_request.model_dump(mode="json")

    async with aiohttp.ClientSession() as session:
        async with session.post(f"{proxy_url}/api/scrape", json=payload) as response:
            data = await response.json()
            assert response.status == 200
            assert response.headers["Access-Control-Allow-Origin"] == "*"

    assert data["task_id"] in server.status_queries
    assert server.submissions == [payload]


@pytest.mark.asyncio
async def test_results_are_relayed(proxy_url, server):
    server.status_queries["abc123"] = 0
    server.completion_attempts = 1

    async with aiohttp.ClientSession() as session:
        async with session.get(f"{proxy_url}/api/results/abc123") as response:
            data = await response.json()
            assert response.status == 200
            assert response.headers["Access-Control-Allow-Origin"] == "*"

    assert data == {"status": "success", "data": {"flights": []}}
    assert server.status_queries["abc123"] == 1


@pytest.mark.asyncio
async def test_upstream_status_is_relayed(proxy_url):
    async with aiohttp.ClientSession() as session:
        async with session.get(f"{proxy_url}/api/results/missing") as response:
            data = await response.json()
            assert response.status == 404
            assert response.headers["Access-Control-Allow-Origin"] == "*"

    assert data == {"detail": "Task missing not found"}


@pytest.mark.asyncio
async def test_non_json_body_is_relayed_verbatim(proxy_url, server):
    server.status_queries["abc123"] = 0
    server.malformed_results = True

    async with aiohttp.ClientSession() as session:
        async with session.get(f"{proxy_url}/api/results/abc123") as response:
            body = await response.text()
            assert response.status == 200
            assert response.content_type == "text/html"

    assert body == "<html>Bad Gateway</html>"


@pytest.mark.asyncio
async def test_unrouted_path_has_cors_header(proxy_url):
    async with aiohttp.ClientSession() as session:
        async with session.get(f"{proxy_url}/api/unknown") as response:
            assert response.status == 404
            assert response.headers["Access-Control-Allow-Origin"] == "*"


@pytest.mark.asyncio
async def test_upstream_unavailable(closed_port):
    proxy_instance = await _start_proxy(closed_port)
    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(
                f"{BASE_URL_TEMPLATE.format(proxy_instance.port)}/api/results/abc123"
            ) as response:
                data = await response.json()
                assert response.status == 500
                assert response.headers["Access-Control-Allow-Origin"] == "*"
    finally:
        await proxy_instance.stop()

    assert data["error"]


@pytest.mark.asyncio
async def test_client_through_proxy(proxy_url, server, config, scrape_request):
    server.completion_attempts = 3
    client = FlightScrapeClient(base_url=f"{proxy_url}/api", config=config)

    result = await client.scrape(scrape_request)

    assert result.status == JobStatus.success
    assert result.attempt == 3
    assert server.total_queries() == 3


@pytest.mark.asyncio
async def test_unexpected_handler_error_has_cors_header(server):
    proxy_instance = ProxyServer(
        ProxySettings(upstream_url=BASE_URL_TEMPLATE.format(server.port))
    )

    async def handle_broken(request):
        raise RuntimeError("handler exploded")

    proxy_instance.app.router.add_get("/api/broken", handle_broken)
    await proxy_instance.start(port=0, host="127.0.0.1")
    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(
                f"{BASE_URL_TEMPLATE.format(proxy_instance.port)}/api/broken"
            ) as response:
                data = await response.json()
                assert response.status == 500
                assert response.headers["Access-Control-Allow-Origin"] == "*"
    finally:
        await proxy_instance.stop()

    assert data == {"error": "handler exploded"}
