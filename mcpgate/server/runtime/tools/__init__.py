"""Tool sources consumed once by the protocol server at startup."""

from .aggregator import ToolAggregator, Toolset
from .integrations import fetch_integrations, filter_integrations
from .proxy import PROXY_TOOL_NAME, create_proxy_api_tool
from .types import ExtendedTool, Integration, ToolContext

__all__ = (
    "ExtendedTool",
    "Integration",
    "PROXY_TOOL_NAME",
    "ToolAggregator",
    "ToolContext",
    "Toolset",
    "create_proxy_api_tool",
    "fetch_integrations",
    "filter_integrations",
)
