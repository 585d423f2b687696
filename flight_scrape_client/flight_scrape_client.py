import asyncio
import json
from typing import Any, Awaitable, Callable, Optional

import aiohttp
from loguru import logger
from flight_scrape_client.errors import (
    JobTimeoutError,
    MalformedResponseError,
    RemoteError,
    TransportError,
)
from flight_scrape_client.models import (
    JobStatus,
    PollingConfig,
    ScrapeRequest,
    StatusResponse,
    Submission,
)

StatusCallback = Callable[[StatusResponse], Awaitable[Any]]


class PollSession:
    """One job's poll loop, running as its own asyncio task.

    The session owns its HTTP session and its interval timer; cancelling it
    releases both and suppresses any further notifications.
    """

    def __init__(self, client: "FlightScrapeClient", task_id: str):
        self.client = client
        self.task_id = task_id
        self.attempts = 0
        self.cancelled = False
        self.logger = logger
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "PollSession":
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self.logger.info(f"Polling cancelled for task {self.task_id} after {self.attempts} attempts")
        if self._task is not None:
            self._task.cancel()

    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> StatusResponse:
        if self._task is None:
            raise RuntimeError("Poll session has not been started")
        return await self._task

    async def _emit(self, callback: Optional[StatusCallback], status_response: StatusResponse) -> None:
        if callback is None or self.cancelled:
            return
        await callback(status_response)

    async def _handle_status_change(
        self, status_response: StatusResponse, last_status: Optional[JobStatus]
    ) -> None:
        """Invoke the status change callback if the status has changed"""
        if last_status != status_response.status:
            self.logger.debug(f"Task {self.task_id} status changed to {status_response.status.value}")
            await self._emit(self.client.on_status_change, status_response)

    async def _run(self) -> StatusResponse:
        config = self.client.config
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        next_tick = start_time + config.interval
        last_status = None

        timeout = aiohttp.ClientTimeout(total=config.request_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            while True:
                # ticks are wall-clock periodic; an overrun re-anchors the schedule
                await asyncio.sleep(max(0.0, next_tick - loop.time()))
                next_tick = max(next_tick + config.interval, loop.time())

                self.attempts += 1
                self.logger.debug(f"Polling attempt {self.attempts} for task {self.task_id}")
                status_response = await self.client.get_status(
                    session, self.task_id, attempt=self.attempts, start_time=start_time
                )
                if self.cancelled:
                    raise asyncio.CancelledError()

                await self._handle_status_change(status_response, last_status)
                last_status = status_response.status

                if status_response.status == JobStatus.success:
                    self.logger.info(f"Task {self.task_id} completed after {self.attempts} attempts")
                    return status_response
                if status_response.status == JobStatus.failed:
                    self.logger.error(f"Task {self.task_id} failed: {status_response.error}")
                    return status_response

                await self._emit(self.client.on_progress, status_response)

                if self.attempts >= config.max_attempts:
                    error = JobTimeoutError(self.task_id, self.attempts, config.interval)
                    self.logger.error(str(error))
                    raise error


class FlightScrapeClient:
    def __init__(
        self,
        base_url: str,
        config: Optional[PollingConfig] = None,
        on_status_change: Optional[StatusCallback] = None,
        on_progress: Optional[StatusCallback] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.config = config or PollingConfig()
        self.logger = logger
        self.on_status_change = on_status_change
        self.on_progress = on_progress

    async def _request_json(
        self, session: aiohttp.ClientSession, method: str, url: str, payload: Any = None
    ) -> Any:
        """Sends a request and returns the parsed JSON body, raising on any failure"""
        try:
            async with session.request(
                method, url, json=payload, headers={"Accept": "application/json"}
            ) as response:
                body = await response.read()
                status, reason = response.status, response.reason
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            error = TransportError(url, str(e) or type(e).__name__)
            self.logger.error(str(error))
            raise error from e

        # undecodable bytes must still end up as a MalformedResponseError
        raw_body = body.decode("utf-8", errors="replace")
        self.logger.debug(f"Raw response from {url}: {raw_body}")
        try:
            data = json.loads(raw_body)
        except ValueError as e:
            error = MalformedResponseError(url, raw_body, str(e))
            self.logger.error(str(error))
            raise error from e

        if not 200 <= status < 300:
            message = None
            if isinstance(data, dict):
                message = data.get("detail") or data.get("error")
            if not message:
                message = f"HTTP {status}: {reason}"
            self.logger.error(f"HTTP error {status} at {url}: {message}")
            raise RemoteError(status, str(message), url)

        return data

    async def submit(
        self, request: ScrapeRequest, session: Optional[aiohttp.ClientSession] = None
    ) -> Submission:
        """Submits a scrape request and returns the task id, or the direct result if none was issued"""
        url = f"{self.base_url}/scrape"
        payload = request.model_dump(mode="json")
        self.logger.info(f"Submitting scrape request to {url}: {payload}")

        if session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
            async with aiohttp.ClientSession(timeout=timeout) as own_session:
                data = await self._request_json(own_session, "POST", url, payload)
        else:
            data = await self._request_json(session, "POST", url, payload)

        task_id = data.get("task_id") if isinstance(data, dict) else None
        if task_id:
            self.logger.info(f"Task ID received: {task_id}")
            return Submission(task_id=str(task_id), raw_response=data)

        self.logger.info("No task ID in response, treating it as the final result")
        return Submission(task_id=None, raw_response=data)

    async def get_status(
        self,
        session: aiohttp.ClientSession,
        task_id: str,
        attempt: int = 1,
        start_time: Optional[float] = None,
    ) -> StatusResponse:
        """Fetches the status of a job from the results endpoint"""
        loop = asyncio.get_running_loop()
        if start_time is None:
            start_time = loop.time()
        url = f"{self.base_url}/results/{task_id}"

        data = await self._request_json(session, "GET", url)
        body = data if isinstance(data, dict) else {}

        raw_status = body.get("status")
        status = JobStatus.parse(raw_status)
        if raw_status != status.value:
            self.logger.warning(f"Unrecognized status {raw_status!r} for task {task_id}, treating as pending")

        error = None
        if status == JobStatus.failed:
            error = body.get("error") or "Unknown error"

        return StatusResponse(
            status=status,
            raw_response=data,
            elapsed_time=loop.time() - start_time,
            attempt=attempt,
            task_id=task_id,
            data=body.get("data") if status == JobStatus.success else None,
            error=error,
        )

    def start_polling(self, task_id: str) -> PollSession:
        """Starts polling a job in the background and returns its cancellable session"""
        self.logger.info(f"Task submitted (ID: {task_id}). Waiting for results...")
        return PollSession(self, task_id).start()

    async def poll_until_complete(self, task_id: str) -> StatusResponse:
        """Poll the results endpoint at a fixed interval until the job succeeds, fails or times out"""
        return await self.start_polling(task_id).wait()

    async def scrape(self, request: ScrapeRequest) -> StatusResponse:
        """Submits a request and polls it to completion, or returns the direct result"""
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        submission = await self.submit(request)
        if submission.task_id is not None:
            return await self.poll_until_complete(submission.task_id)

        return StatusResponse(
            status=JobStatus.success,
            raw_response=submission.raw_response,
            elapsed_time=loop.time() - start_time,
            data=submission.raw_response,
        )
