import asyncio

from flight_scrape_client.config import ProxySettings
from flight_scrape_client.errors import FlightScrapeError, JobTimeoutError
from flight_scrape_client.flight_scrape_client import FlightScrapeClient
from flight_scrape_client.models import PollingConfig
from flight_scrape_client.proxy import ProxyServer
from flight_scrape_client.request_builder import build_scrape_request, default_outbound_date
from scrape_server import ScrapeServer


async def status_changed(status_response):
    print(f"Status changed to: {status_response.status.value}")
    print(f"Elapsed time: {status_response.elapsed_time:.6f}s")


async def progress(status_response):
    print(f"Task in progress ({status_response.attempt}s elapsed)...")


async def main():
    server = ScrapeServer(
        completion_attempts=5,
        error_rate=0.1,
        result={"flights": [{"flight": "AC101", "price": 289.0}]},
    )
    upstream_port = await server.start()
    proxy = ProxyServer(ProxySettings(upstream_url=f"http://127.0.0.1:{upstream_port}"))
    proxy_port = await proxy.start(port=0)
    print(f"Proxy started on http://127.0.0.1:{proxy_port}/api")

    client = FlightScrapeClient(
        f"http://127.0.0.1:{proxy_port}/api",
        PollingConfig(interval=1.0, max_attempts=60),
        on_status_change=status_changed,
        on_progress=progress,
    )
    request = build_scrape_request(
        origin="yyz",
        destination="lhr",
        outbound=default_outbound_date(),
        airline="ac",
        retries="2",
        proxy="",
    )

    try:
        final_status = await client.scrape(request)
        print(f"Final status: {final_status.status.value}")
        if final_status.error:
            print(f"Task failed: {final_status.error}")
        else:
            print(f"Result: {final_status.data}")
    except JobTimeoutError as e:
        print(f"Polling timed out: {e}")
    except FlightScrapeError as e:
        print(f"Error occurred: {e}")
    finally:
        await proxy.stop()
        await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
