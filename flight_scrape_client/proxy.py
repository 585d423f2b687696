import asyncio
import sys
from typing import Optional
from urllib.parse import quote

import aiohttp
from aiohttp import web
from loguru import logger
from flight_scrape_client.config import ProxySettings

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Accept",
}


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Answers pre-flight requests on any path and adds CORS headers to every response"""
    if request.method == "OPTIONS":
        return web.Response(status=200, headers=CORS_HEADERS)

    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.update(CORS_HEADERS)
        raise
    except Exception as e:
        logger.exception(f"Unhandled error in {request.method} {request.path}")
        return web.json_response(
            {"error": str(e) or type(e).__name__}, status=500, headers=CORS_HEADERS
        )
    response.headers.update(CORS_HEADERS)
    return response


class ProxyServer:
    """Relays the scrape and results endpoints to the upstream scraping server"""

    def __init__(self, settings: Optional[ProxySettings] = None):
        self.settings = settings or ProxySettings()
        self.session: Optional[aiohttp.ClientSession] = None
        self.runner: Optional[web.AppRunner] = None
        self.port: Optional[int] = None
        self.app = web.Application(middlewares=[cors_middleware])
        self.app.cleanup_ctx.append(self._client_session_ctx)
        prefix = self.settings.prefix
        self.app.router.add_post(f"{prefix}/scrape", self.handle_scrape)
        self.app.router.add_get(f"{prefix}/results/{{task_id}}", self.handle_results)
        self.logger = logger

    async def _client_session_ctx(self, app: web.Application):
        timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout)
        self.session = aiohttp.ClientSession(timeout=timeout)
        yield
        await self.session.close()

    async def handle_scrape(self, request: web.Request) -> web.Response:
        return await self._forward(request, "/scrape")

    async def handle_results(self, request: web.Request) -> web.Response:
        task_id = quote(request.match_info["task_id"], safe="")
        return await self._forward(request, f"/results/{task_id}")

    async def _forward(self, request: web.Request, path: str) -> web.Response:
        url = f"{self.settings.upstream_url}{path}"
        body = await request.read()
        headers = {}
        if body:
            headers["Content-Type"] = request.headers.get("Content-Type", "application/json")

        try:
            async with self.session.request(
                request.method, url, data=body or None, headers=headers
            ) as upstream:
                payload = await upstream.read()
                response_headers = {}
                if "Content-Type" in upstream.headers:
                    response_headers["Content-Type"] = upstream.headers["Content-Type"]
                self.logger.info(f"{request.method} {url} -> {upstream.status}")
                return web.Response(
                    status=upstream.status, body=payload, headers=response_headers
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            message = str(e) or type(e).__name__
            self.logger.error(f"Upstream request {request.method} {url} failed: {message}")
            return web.json_response({"error": message}, status=500)

    async def start(self, port: Optional[int] = None, host: Optional[str] = None) -> int:
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        host = host or self.settings.host
        port = self.settings.port if port is None else port
        site = web.TCPSite(self.runner, host, port)
        await site.start()
        self.port = self.runner.addresses[0][1]
        self.logger.info(
            f"Proxy started on port {self.port}, forwarding to {self.settings.upstream_url}"
        )
        return self.port

    async def stop(self) -> None:
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None


def main() -> None:
    settings = ProxySettings.from_env()
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper())
    server = ProxyServer(settings)
    logger.info(f"Forwarding {settings.prefix}/* to {settings.upstream_url}")
    web.run_app(server.app, host=settings.host, port=settings.port, print=None)


if __name__ == "__main__":
    main()
