# mcpgate/server/runtime/tools/proxy.py
from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any
from urllib.parse import unquote

import httpx
import mcp.types as types

from mcpgate.shared._httpx_utils import bearer_headers, create_gateway_http_client

from .types import ExtendedTool, Integration, ToolContext

PROXY_TOOL_NAME = "CALL_API_REQUEST"

_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def _relative_path(path: str) -> str:
    """Strip leading slashes; dot segments are refused."""
    path = path.lstrip("/")
    segments = unquote(path.split("?", 1)[0]).replace("\\", "/").split("/")
    if any(s in (".", "..") for s in segments):
        raise ValueError(f"Path must not contain dot segments: {path}")
    return path


def _input_schema(integration_types: Sequence[str]) -> dict[str, Any]:
    integration: dict[str, Any] = {
        "type": "string",
        "description": "Integration to call, e.g. 'slack' or 'salesforce'.",
    }
    if integration_types:
        integration["enum"] = list(integration_types)
    return {
        "type": "object",
        "properties": {
            "integration": integration,
            "method": {"type": "string", "enum": _METHODS},
            "path": {
                "type": "string",
                "description": "Path on the integration's API, relative to its base URL.",
            },
            "body": {"description": "Optional JSON request body."},
            "headers": {
                "type": "object",
                "additionalProperties": {"type": "string"},
                "description": "Optional extra request headers.",
            },
        },
        "required": ["integration", "method", "path"],
    }


def create_proxy_api_tool(
    integrations: Sequence[Integration],
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ExtendedTool:
    """
    Build the generic proxy tool: one tool that can call any allowed integration's
    API on behalf of the connected user.
    """
    integration_types = sorted({i.type for i in integrations})

    async def call_api_request(arguments: dict[str, Any], ctx: ToolContext) -> list[types.TextContent]:
        if not ctx.user_token:
            raise PermissionError("No user token bound to this session")
        integration = arguments["integration"]
        if "/" in integration or integration in (".", ".."):
            raise ValueError(f"Invalid integration: {integration}")
        if integration_types and integration not in integration_types:
            raise ValueError(f"Integration not available: {integration}")

        path = _relative_path(str(arguments["path"]))
        headers = {**(arguments.get("headers") or {}), **bearer_headers(ctx.user_token)}
        async with create_gateway_http_client(
            base_url=ctx.settings.proxy_base_url,
            headers=headers,
            transport=transport,
        ) as client:
            response = await client.request(
                arguments["method"],
                f"/projects/{ctx.settings.project_id}/sdk/proxy/{integration}/{path}",
                json=arguments.get("body"),
            )
        try:
            payload: Any = response.json()
            text = json.dumps({"status": response.status_code, "output": payload})
        except ValueError:
            text = json.dumps({"status": response.status_code, "output": response.text})
        return [types.TextContent(type="text", text=text)]

    return ExtendedTool(
        name=PROXY_TOOL_NAME,
        description=(
            "Call an integration's API directly on behalf of the connected user. "
            f"Available integrations: {', '.join(integration_types) or 'none'}."
        ),
        input_schema=_input_schema(integration_types),
        fn=call_api_request,
    )
