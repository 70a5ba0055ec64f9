# mcpgate/server/runtime/tools/integrations.py
from __future__ import annotations

from collections.abc import Iterable, Sequence

import httpx
from mcp.server.fastmcp.utilities.logging import get_logger
from pydantic import TypeAdapter

from mcpgate.shared._httpx_utils import bearer_headers, create_gateway_http_client

from .types import Integration

logger = get_logger(__name__)

_integrations_adapter = TypeAdapter(list[Integration])


async def fetch_integrations(
    *,
    api_base_url: str,
    project_id: str,
    token: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[Integration]:
    """GET every integration configured for the project. Raises on HTTP errors."""
    async with create_gateway_http_client(
        base_url=api_base_url,
        headers=bearer_headers(token),
        transport=transport,
    ) as client:
        response = await client.get(f"/projects/{project_id}/sdk/integrations")
        response.raise_for_status()
        return _integrations_adapter.validate_python(response.json())


def filter_integrations(integrations: Iterable[Integration], allowed: Sequence[str] | None) -> list[Integration]:
    """Keep only integrations whose type is allow-listed (all of them when no list is set)."""
    if not allowed:
        return list(integrations)
    allowed_set = set(allowed)
    return [i for i in integrations if i.type in allowed_set]
