# mcpgate/shared/_httpx_utils.py
"""Utilities for creating standardized httpx AsyncClient instances."""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import httpx

# Timeout for outbound calls to the integrations API and proxy (seconds).
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0

__all__ = ["bearer_headers", "create_gateway_http_client"]


def bearer_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@asynccontextmanager
async def create_gateway_http_client(
    base_url: str | None = None,
    headers: dict[str, str] | None = None,
    timeout: httpx.Timeout | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Provide a standardized httpx AsyncClient as an async context manager.

    Defaults shared by every outbound call the gateway makes (integration
    metadata at startup, proxied API requests from tools):
    - follow_redirects=True
    - a 30 second timeout if none is given

    Args:
        base_url: Optional base URL that relative request paths resolve against.
        headers: Optional headers to include with all requests.
        timeout: Request timeout as an httpx.Timeout object.
        transport: Optional transport, mainly for tests (httpx.MockTransport).

    Examples:
        async with create_gateway_http_client(base_url, headers=bearer_headers(token)) as client:
            response = await client.get("/projects/123/sdk/integrations")
    """
    kwargs: dict[str, Any] = {
        "follow_redirects": True,
        "timeout": timeout if timeout is not None else httpx.Timeout(DEFAULT_HTTP_TIMEOUT_SECONDS),
    }
    if base_url is not None:
        kwargs["base_url"] = base_url
    if headers is not None:
        kwargs["headers"] = headers
    if transport is not None:
        kwargs["transport"] = transport

    client = httpx.AsyncClient(**kwargs)
    try:
        yield client
    finally:
        await client.aclose()
