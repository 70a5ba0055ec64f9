# mcpgate/server/runtime/tools/types.py
from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import jsonschema
import mcp.types as types
from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from mcpgate.server.runtime.auth.access_tokens import AccessTokenStore
    from mcpgate.server.runtime.server import Settings


class Integration(BaseModel):
    """Integration metadata as returned by the integrations API."""

    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    name: str | None = None
    isActive: bool | None = None


@dataclass(frozen=True)
class ToolContext:
    """Per-call view of the calling session handed to a tool."""

    session_id: str | None
    user_token: str | None
    user_id: str | None
    settings: Settings
    access_tokens: AccessTokenStore


ToolFn = Callable[[dict[str, Any], ToolContext], Awaitable[Any]]


class ExtendedTool(BaseModel):
    """An MCP tool definition together with the coroutine that runs it."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str | None = None
    input_schema: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})
    fn: ToolFn = Field(exclude=True)

    @field_validator("input_schema")
    @classmethod
    def _check_schema(cls, value: dict[str, Any]) -> dict[str, Any]:
        try:
            jsonschema.Draft7Validator.check_schema(value)
        except jsonschema.SchemaError as e:
            raise ValueError(f"Invalid input schema: {e.message}") from e
        return value

    def definition(self) -> types.Tool:
        return types.Tool(name=self.name, description=self.description, inputSchema=self.input_schema)

    async def run(self, arguments: dict[str, Any], ctx: ToolContext) -> Any:
        return await self.fn(arguments, ctx)
