import random
import uuid
from collections import Counter
from typing import Any, Optional

from aiohttp import web
from loguru import logger


class ScrapeServer:
    """Simulated scraping backend with a job queue that completes after a number of status checks"""

    def __init__(
        self,
        completion_attempts: int = 3,
        error_rate: float = 0.0,
        result: Any = None,
        error_message: Optional[str] = "Scraper blocked by airline",
        pending_status: str = "pending",
    ):
        self.completion_attempts = completion_attempts
        self.error_rate = error_rate
        self.result = result if result is not None else {"flights": []}
        self.error_message = error_message
        self.pending_status = pending_status
        # test hooks for misbehaving upstreams
        self.direct_result: Optional[Any] = None
        self.malformed_results = False
        self.submissions = []
        self.status_queries = Counter()
        self.runner: Optional[web.AppRunner] = None
        self.port: Optional[int] = None
        self.app = web.Application()
        self.app.router.add_post("/scrape", self.handle_scrape)
        self.app.router.add_get("/results/{task_id}", self.handle_results)
        self.logger = logger

    async def handle_scrape(self, request):
        try:
            payload = await request.json()
        except ValueError:
            return web.json_response({"detail": "Request body must be JSON"}, status=422)

        self.submissions.append(payload)
        if self.direct_result is not None:
            self.logger.info("Returning direct result without a task")
            return web.json_response(self.direct_result)

        task_id = uuid.uuid4().hex
        self.status_queries[task_id] = 0
        self.logger.info(f"Accepted scrape request as task {task_id}")
        return web.json_response({"task_id": task_id})

    async def handle_results(self, request):
        task_id = request.match_info["task_id"]
        if task_id not in self.status_queries:
            return web.json_response({"detail": f"Task {task_id} not found"}, status=404)

        self.status_queries[task_id] += 1
        queries = self.status_queries[task_id]

        if self.malformed_results:
            return web.Response(text="<html>Bad Gateway</html>", content_type="text/html")

        if random.random() < self.error_rate:
            self.logger.info("Returning failed status")
            body = {"status": "failed"}
            if self.error_message:
                body["error"] = self.error_message
            return web.json_response(body)

        if queries >= self.completion_attempts:
            self.logger.info("Returning success status")
            return web.json_response({"status": "success", "data": self.result})

        self.logger.info(f"Returning {self.pending_status} status (query {queries})")
        return web.json_response({"status": self.pending_status})

    def total_queries(self) -> int:
        return sum(self.status_queries.values())

    async def start(self, port: int = 0) -> int:
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "127.0.0.1", port)
        await site.start()
        self.port = self.runner.addresses[0][1]
        self.logger.info(f"Server started on port {self.port}")
        return self.port

    async def stop(self) -> None:
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
