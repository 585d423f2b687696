from typing import Optional


class FlightScrapeError(Exception):
    """Base class for every error raised by the flight scrape client"""


class InvalidInputError(FlightScrapeError, ValueError):
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Invalid {field}: {message}")


class MalformedResponseError(FlightScrapeError):
    def __init__(self, url: str, raw_body: str, reason: str):
        self.url = url
        self.raw_body = raw_body
        self.reason = reason
        super().__init__(f"Invalid JSON response from {url}: {reason} (body: {raw_body[:200]!r})")


class RemoteError(FlightScrapeError):
    def __init__(self, status: int, message: str, url: Optional[str] = None):
        self.status = status
        self.message = message
        self.url = url
        super().__init__(f"HTTP {status} from {url}: {message}" if url else message)


class TransportError(FlightScrapeError):
    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(
            f"Network error: cannot connect to {url} ({reason}). "
            "Make sure the server is running and CORS is enabled."
        )


class JobTimeoutError(FlightScrapeError, TimeoutError):
    def __init__(self, task_id: str, attempts: int, interval: float):
        self.task_id = task_id
        self.attempts = attempts
        super().__init__(
            f"Task {task_id} did not complete within {attempts} attempts "
            f"({attempts * interval:.0f} seconds)"
        )
