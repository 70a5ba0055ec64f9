# mcpgate/server/runtime/tools/aggregator.py
from __future__ import annotations as _annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

import httpx
from mcp.server.fastmcp.utilities.logging import get_logger

from .integrations import fetch_integrations, filter_integrations
from .proxy import create_proxy_api_tool
from .types import ExtendedTool, Integration, ToolFn

if TYPE_CHECKING:
    from mcpgate.server.runtime.auth.tokens import TokenCodec
    from mcpgate.server.runtime.server import Settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class Toolset:
    """Immutable result of the startup build: what the protocol server advertises."""

    integrations: tuple[Integration, ...] = ()
    tools: tuple[ExtendedTool, ...] = ()
    _index: dict[str, ExtendedTool] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._index.update({t.name: t for t in self.tools})

    def get(self, name: str) -> ExtendedTool | None:
        return self._index.get(name)

    def __len__(self) -> int:
        return len(self.tools)


class ToolAggregator:
    """Collects tools from every enabled source, once, at startup."""

    def __init__(
        self,
        warn_on_duplicate_tools: bool = True,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._custom_tools: dict[str, ExtendedTool] = {}
        self.warn_on_duplicate_tools = warn_on_duplicate_tools
        self._http_transport = http_transport

    def add_tool(
        self,
        fn: ToolFn,
        *,
        name: str,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
    ) -> ExtendedTool:
        """Register a custom tool."""
        kwargs: dict[str, Any] = {"name": name, "description": description, "fn": fn}
        if input_schema is not None:
            kwargs["input_schema"] = input_schema
        tool = ExtendedTool(**kwargs)

        existing = self._custom_tools.get(tool.name)
        if existing:
            if self.warn_on_duplicate_tools:
                logger.warning("Tool already exists: %s", tool.name)
            return existing
        self._custom_tools[tool.name] = tool
        return tool

    def tool(
        self,
        name: str,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
    ) -> Callable[[ToolFn], ToolFn]:
        def decorator(fn: ToolFn) -> ToolFn:
            self.add_tool(fn, name=name, description=description, input_schema=input_schema)
            return fn

        return decorator

    @property
    def custom_tools(self) -> list[ExtendedTool]:
        return list(self._custom_tools.values())

    async def load_integrations(self, settings: Settings, codec: TokenCodec) -> list[Integration]:
        """
        Best-effort integration metadata load with a project-scoped token.

        Any failure is logged and yields an empty list so the gateway can still serve.
        """
        if not settings.project_id:
            logger.warning("No project id configured; skipping integration metadata")
            return []
        try:
            return await fetch_integrations(
                api_base_url=settings.api_base_url,
                project_id=settings.project_id,
                token=codec.sign({"userId": settings.project_id}),
                transport=self._http_transport,
            )
        except Exception:
            logger.exception("Failed to load integrations for project %s", settings.project_id)
            return []

    async def build(self, settings: Settings, codec: TokenCodec) -> Toolset:
        integrations = await self.load_integrations(settings, codec)

        candidates: list[ExtendedTool] = []
        if settings.enable_proxy_api_tool:
            allowed = filter_integrations(integrations, settings.limit_to_integrations)
            candidates.append(create_proxy_api_tool(allowed, transport=self._http_transport))
        if settings.enable_custom_tools:
            candidates.extend(self._custom_tools.values())

        toolset = Toolset(integrations=tuple(integrations), tools=tuple(_dedupe(candidates, self.warn_on_duplicate_tools)))
        logger.info(
            "Loaded %d integration(s) and %d tool(s)",
            len(toolset.integrations),
            len(toolset.tools),
        )
        return toolset


def _dedupe(tools: Sequence[ExtendedTool], warn: bool) -> list[ExtendedTool]:
    seen: dict[str, ExtendedTool] = {}
    for t in tools:
        if t.name in seen:
            if warn:
                logger.warning("Duplicate tool name %s; keeping the first definition", t.name)
            continue
        seen[t.name] = t
    return list(seen.values())
