"""HTTP client used for discovery probes and feed fetches.

Certificate verification is switched off for this client only. Plenty of
real-world feeds are served with self-signed, expired or mismatched
certificates and are otherwise fine to read; the client is never used for
anything that sends credentials.
"""

import asyncio

import httpx

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

# Seconds. Probes are short so a slow site cannot stall discovery.
PROBE_TIMEOUT = 5.0
PAGE_TIMEOUT = 10.0
FEED_TIMEOUT = 10.0


def create_http_client(
    user_agent: str = DEFAULT_USER_AGENT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build the permissive async client shared by discovery and sync.

    Args:
        user_agent: User-Agent header sent with every request.
        transport: Optional transport override (tests pass a MockTransport).

    Returns:
        An ``httpx.AsyncClient`` that follows redirects and skips TLS
        certificate verification. Callers own closing it.
    """
    return httpx.AsyncClient(
        verify=False,
        follow_redirects=True,
        headers={"User-Agent": user_agent},
        timeout=httpx.Timeout(FEED_TIMEOUT, connect=PROBE_TIMEOUT),
        transport=transport,
    )


# Failures that mean "this request did not produce a response".
# InvalidURL is raised while building the request and is not an HTTPError.
REQUEST_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


async def get_with_deadline(
    client: httpx.AsyncClient, url: str, timeout: float
) -> httpx.Response:
    """GET ``url``, giving up once ``timeout`` seconds have passed in total.

    httpx timeouts apply to each connect/read/write, so a server trickling
    one byte at a time never trips them. The outer deadline bounds the
    whole request.

    Raises:
        httpx.TimeoutException: If the deadline passes first.
        httpx.HTTPError, httpx.InvalidURL: As raised by ``client.get``.
    """
    try:
        return await asyncio.wait_for(client.get(url, timeout=timeout), timeout)
    except asyncio.TimeoutError as e:
        raise httpx.TimeoutException(
            f"No complete response from {url} within {timeout:g}s"
        ) from e
