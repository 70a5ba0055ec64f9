# mcpgate/server/runtime/server.py
from __future__ import annotations as _annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Annotated, Any, Literal

import anyio
import httpx
import uvicorn
from mcp.server.fastmcp.utilities.logging import configure_logging, get_logger
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Mount, Route
from starlette.staticfiles import StaticFiles

from mcpgate.server.protocol import ProtocolServer
from mcpgate.server.runtime.auth.access_tokens import AccessTokenStore
from mcpgate.server.runtime.auth.tokens import TokenCodec
from mcpgate.server.runtime.handlers.messages import MessageRouter
from mcpgate.server.runtime.handlers.setup import SetupPage
from mcpgate.server.runtime.handlers.stream import StreamConnectionHandler
from mcpgate.server.runtime.limits import DEFAULT_CLOSE_TIMEOUT_SECONDS, DEFAULT_TOKEN_TTL_SECONDS
from mcpgate.server.runtime.sessions.registry import SessionRegistry
from mcpgate.server.runtime.shutdown import ShutdownCoordinator
from mcpgate.server.runtime.tools.aggregator import ToolAggregator, Toolset
from mcpgate.server.runtime.tools.types import ExtendedTool, ToolContext, ToolFn
from mcpgate.server.sse import SseSessionTransport

logger = get_logger(__name__)

_PROCESS_STARTED = time.monotonic()


def pkg_version(package: str) -> str:
    try:
        from importlib.metadata import version

        return version(package)
    except Exception:
        pass

    return "unknown"


class Settings(BaseSettings):
    """Gateway settings.

    All settings can be configured via environment variables with the prefix MCPGATE_.
    For example, MCPGATE_ENVIRONMENT=development enables `?user=` authentication.
    """

    model_config = SettingsConfigDict(
        env_prefix="MCPGATE_",
        env_file=".env",
        extra="ignore",
    )

    # Server settings
    environment: str = "production"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # HTTP settings
    host: str = "127.0.0.1"
    port: int = 3001
    stream_path: str = "/stream"
    sse_alias_path: str | None = "/sse"
    """Extra path serving the same stream endpoint; unset to disable."""
    message_path: str = "/messages"
    static_dir: str = "static"

    # Identity tokens
    project_id: str | None = None
    signing_key: SecretStr | None = None
    signing_key_path: str | None = None
    jwt_algorithm: str = "RS256"
    token_ttl_seconds: int | None = DEFAULT_TOKEN_TTL_SECONDS

    # Upstream services
    api_base_url: str = "https://api.useparagon.com"
    proxy_base_url: str = "https://proxy.useparagon.com"
    connect_sdk_cdn_url: str = "https://cdn.useparagon.com/latest/sdk/index.js"

    # Tool sources
    enable_proxy_api_tool: bool = False
    enable_custom_tools: bool = False
    limit_to_integrations: Annotated[list[str] | None, NoDecode] = None
    """Integration types exposed through tools. Env var: comma separated list."""

    # Shutdown
    close_timeout_seconds: float | None = DEFAULT_CLOSE_TIMEOUT_SECONDS

    @field_validator("limit_to_integrations", mode="before")
    @classmethod
    def _split_integrations(cls, value: Any) -> Any:
        if isinstance(value, str):
            items = [v.strip() for v in value.split(",")]
            return [v for v in items if v] or None
        return value

    @property
    def dev_mode(self) -> bool:
        return self.environment.lower() == "development"


class GatewayUvicornServer(uvicorn.Server):
    """
    uvicorn server whose exit signals drain every session before stopping.

    The first SIGINT/SIGTERM starts `drain`; later signals are ignored while it
    runs. `drain` is expected to set `should_exit` once sessions are closed.
    No signal is handed to uvicorn, so none is re-raised after `serve()`.
    """

    def __init__(self, config: uvicorn.Config, drain: Callable[[], Awaitable[None]]) -> None:
        super().__init__(config)
        self._drain = drain
        self._loop: asyncio.AbstractEventLoop | None = None
        self._drain_requested: anyio.Event | None = None
        self.draining = False

    def handle_exit(self, sig: int, frame: Any) -> None:
        if self._loop is None or self._drain_requested is None:
            # Not serving through serve_and_drain(); plain stop.
            self.should_exit = True
            return
        if self.draining:
            logger.info("Shutdown already in progress (signal %s)", sig)
            return
        self.draining = True
        self._loop.call_soon_threadsafe(self._drain_requested.set)

    async def serve_and_drain(self, sockets: Any = None) -> None:
        """Run `serve()`; if a drain started, wait for it before returning."""
        self._loop = asyncio.get_running_loop()
        self._drain_requested = anyio.Event()
        drained = anyio.Event()

        async def drain_on_signal() -> None:
            await self._drain_requested.wait()
            try:
                await self._drain()
            finally:
                drained.set()

        async with anyio.create_task_group() as tg:
            tg.start_soon(drain_on_signal)
            await self.serve(sockets)
            if self.draining:
                await drained.wait()
            tg.cancel_scope.cancel()


class Gateway:
    def __init__(  # noqa: PLR0913
        self,
        name: str | None = None,
        instructions: str | None = None,
        *,
        settings: Settings | None = None,
        codec: TokenCodec | None = None,
        environment: str | None = None,
        debug: bool | None = None,
        log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] | None = None,
        host: str | None = None,
        port: int | None = None,
        project_id: str | None = None,
        signing_key: str | None = None,
        signing_key_path: str | None = None,
        jwt_algorithm: str | None = None,
        enable_proxy_api_tool: bool | None = None,
        enable_custom_tools: bool | None = None,
        limit_to_integrations: list[str] | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        # Build Settings while *only* overriding values that were provided.
        if settings is None:
            _overrides = dict[str, Any](
                environment=environment,
                debug=debug,
                log_level=log_level,
                host=host,
                port=port,
                project_id=project_id,
                signing_key=signing_key,
                signing_key_path=signing_key_path,
                jwt_algorithm=jwt_algorithm,
                enable_proxy_api_tool=enable_proxy_api_tool,
                enable_custom_tools=enable_custom_tools,
                limit_to_integrations=limit_to_integrations,
            )
            settings = Settings(**{k: v for k, v in _overrides.items() if v is not None})
        self.settings = settings
        self._name = name or "mcpgate"
        self._instructions = instructions

        self._codec = codec or TokenCodec.from_settings(
            signing_key=self.settings.signing_key.get_secret_value() if self.settings.signing_key else None,
            signing_key_path=self.settings.signing_key_path,
            algorithm=self.settings.jwt_algorithm,
            ttl_seconds=self.settings.token_ttl_seconds,
        )
        self._sessions = SessionRegistry()
        self._access_tokens = AccessTokenStore(self._codec)
        self._aggregator = ToolAggregator(http_transport=http_transport)
        self._toolset: Toolset | None = None
        self._protocol_server: ProtocolServer | None = None
        self._custom_starlette_routes: list[Route] = []

        # Configure logging
        configure_logging(self.settings.log_level)

    @property
    def name(self) -> str:
        return self._name

    @property
    def version(self) -> str:
        return pkg_version("mcpgate")

    @property
    def sessions(self) -> SessionRegistry:
        return self._sessions

    @property
    def codec(self) -> TokenCodec:
        return self._codec

    @property
    def access_tokens(self) -> AccessTokenStore:
        return self._access_tokens

    @property
    def toolset(self) -> Toolset:
        return self._toolset if self._toolset is not None else Toolset()

    @property
    def protocol_server(self) -> ProtocolServer:
        """The shared protocol server, created on first use with the current tool set."""
        if self._protocol_server is None:
            self._protocol_server = ProtocolServer(
                self._name,
                version=self.version,
                instructions=self._instructions,
                toolset=self.toolset,
                context_factory=self._tool_context,
            )
        return self._protocol_server

    def run(self) -> None:
        """Run the gateway. Note this is a synchronous function."""
        anyio.run(self.run_sse_async)

    def add_tool(
        self,
        fn: ToolFn,
        *,
        name: str,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
    ) -> ExtendedTool:
        """Register a custom tool (served when enable_custom_tools is set)."""
        return self._aggregator.add_tool(fn, name=name, description=description, input_schema=input_schema)

    def tool(
        self,
        name: str,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
    ) -> Callable[[ToolFn], ToolFn]:
        """Decorator to register a custom tool.

        Example:
            @gateway.tool("whoami", description="Return the connected user id")
            async def whoami(arguments: dict, ctx: ToolContext) -> str:
                return ctx.user_id or "anonymous"
        """
        return self._aggregator.tool(name, description=description, input_schema=input_schema)

    async def prepare(self) -> Toolset:
        """Build the tool set once. Must run before the protocol server is first used."""
        if self._toolset is None:
            if self._protocol_server is not None:
                raise RuntimeError("Tools must be prepared before the protocol server is created")
            self._toolset = await self._aggregator.build(self.settings, self._codec)
        return self._toolset

    def _tool_context(self, session_id: str | None) -> ToolContext:
        session = self._sessions.get(session_id) if session_id else None
        return ToolContext(
            session_id=session_id,
            user_token=session.identity_token if session else None,
            user_id=session.user_id if session else None,
            settings=self.settings,
            access_tokens=self._access_tokens,
        )

    def shutdown_coordinator(self, request_exit: Callable[[], None]) -> ShutdownCoordinator:
        return ShutdownCoordinator(
            self._sessions,
            self.protocol_server,
            request_exit=request_exit,
            close_timeout=self.settings.close_timeout_seconds,
        )

    def custom_route(
        self,
        path: str,
        methods: list[str],
        name: str | None = None,
        include_in_schema: bool = True,
    ):
        """
        Decorator to register a custom HTTP route on the gateway.

        The handler function must be an async function that accepts a Starlette
        Request and returns a Response.

        Example:
            @gateway.custom_route("/version", methods=["GET"])
            async def version(request: Request) -> Response:
                return JSONResponse({"version": gateway.version})
        """

        def decorator(
            func: Callable[[Request], Awaitable[Response]],
        ) -> Callable[[Request], Awaitable[Response]]:
            self._custom_starlette_routes.append(
                Route(
                    path,
                    endpoint=func,
                    methods=methods,
                    name=name,
                    include_in_schema=include_in_schema,
                )
            )
            return func

        return decorator

    async def health(self, request: Request) -> Response:
        toolset = self.toolset
        return JSONResponse(
            {
                "status": "healthy",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "uptime": time.monotonic() - _PROCESS_STARTED,
                "version": self.version,
                "environment": self.settings.environment,
                "activeConnections": self._sessions.count(),
                "integrations": len(toolset.integrations),
                "tools": len(toolset.tools),
            }
        )

    async def run_sse_async(self) -> None:
        """Serve the gateway with uvicorn; SIGINT/SIGTERM drain every session before exit."""
        # Build tools before creating the app / accepting connections.
        await self.prepare()
        starlette_app = self.sse_app()

        config = uvicorn.Config(
            starlette_app,
            host=self.settings.host,
            port=self.settings.port,
            log_level=self.settings.log_level.lower(),
        )

        def request_exit() -> None:
            server.should_exit = True

        coordinator = self.shutdown_coordinator(request_exit)
        server = GatewayUvicornServer(config, drain=coordinator.shutdown)

        logger.info("Server is running on http://%s:%d", self.settings.host, self.settings.port)
        await server.serve_and_drain()

    def sse_app(self) -> Starlette:
        """Return an instance of the SSE gateway app."""
        message_path = self.settings.message_path
        protocol_server = self.protocol_server

        stream_handler = StreamConnectionHandler(
            registry=self._sessions,
            codec=self._codec,
            protocol_server=protocol_server,
            transport_factory=lambda: SseSessionTransport(message_path),
            dev_mode=self.settings.dev_mode,
        )
        setup_page = SetupPage(self._access_tokens, self.settings.connect_sdk_cdn_url)

        routes: list[Route | Mount] = [
            Route(self.settings.stream_path, endpoint=stream_handler, methods=["GET"]),
            Route(message_path, endpoint=MessageRouter(self._sessions), methods=["POST"]),
            Route("/health", endpoint=self.health, methods=["GET"]),
            Route("/setup", endpoint=setup_page.handle, methods=["GET"]),
            Mount("/static", app=StaticFiles(directory=self.settings.static_dir, check_dir=False), name="static"),
        ]
        if self.settings.sse_alias_path and self.settings.sse_alias_path != self.settings.stream_path:
            routes.append(Route(self.settings.sse_alias_path, endpoint=stream_handler, methods=["GET"]))

        # mount these routes last, so they have the lowest route matching precedence
        routes.extend(self._custom_starlette_routes)

        return Starlette(debug=self.settings.debug, routes=routes)
