from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

from flight_scrape_client.errors import InvalidInputError
from flight_scrape_client.models import Route, ScrapeRequest

DATE_FORMAT = "%Y-%m-%d"


def _normalize_code(field: str, value: str) -> str:
    code = (value or "").strip().upper()
    if not code:
        raise InvalidInputError(field, "value is required")
    return code


def _parse_outbound(value: str) -> datetime:
    """Interpret a YYYY-MM-DD date as local midnight and convert it to a UTC instant"""
    try:
        local_midnight = datetime.strptime((value or "").strip(), DATE_FORMAT)
    except ValueError:
        raise InvalidInputError("outbound", f"expected YYYY-MM-DD, got {value!r}")
    # a naive datetime is taken to be in the local timezone by astimezone()
    return local_midnight.astimezone(timezone.utc)


def _parse_retries(value: Union[int, str]) -> int:
    try:
        retries = int(str(value).strip())
    except ValueError:
        raise InvalidInputError("retries", f"expected an integer, got {value!r}")
    if retries < 0:
        raise InvalidInputError("retries", f"must not be negative, got {retries}")
    return retries


def build_scrape_request(
    origin: str,
    destination: str,
    outbound: str,
    airline: str,
    retries: Union[int, str],
    proxy: Optional[str] = None,
) -> ScrapeRequest:
    """Builds a normalized ScrapeRequest from raw form values.

    Airport and airline codes are upper-cased, the outbound date becomes the
    UTC instant of local midnight, and a blank proxy becomes None.
    Raises InvalidInputError before anything reaches the network.
    """
    return ScrapeRequest(
        route=Route(
            origin=_normalize_code("origin", origin),
            destination=_normalize_code("destination", destination),
        ),
        outbound=_parse_outbound(outbound),
        airline=_normalize_code("airline", airline),
        retries=_parse_retries(retries),
        proxy=(proxy or "").strip() or None,
    )


def default_outbound_date(today: Optional[date] = None) -> str:
    """Tomorrow's date in YYYY-MM-DD form"""
    today = today or date.today()
    return (today + timedelta(days=1)).strftime(DATE_FORMAT)
