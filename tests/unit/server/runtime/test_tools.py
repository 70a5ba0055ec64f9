# tests/unit/server/runtime/test_tools.py
import json

import httpx
import pytest
from pydantic import ValidationError

from mcpgate.server.runtime.auth.access_tokens import AccessTokenStore
from mcpgate.server.runtime.server import Settings
from mcpgate.server.runtime.tools import (
    PROXY_TOOL_NAME,
    ExtendedTool,
    Integration,
    ToolAggregator,
    ToolContext,
    create_proxy_api_tool,
    filter_integrations,
)

INTEGRATIONS = [
    {"id": "1", "type": "slack", "name": "Slack", "isActive": True},
    {"id": "2", "type": "salesforce", "name": "Salesforce", "isActive": True},
    {"id": "3", "type": "hubspot", "name": "HubSpot", "isActive": False},
]


def _settings(signing_secret, **overrides) -> Settings:
    values = dict(
        _env_file=None,
        signing_key=signing_secret,
        jwt_algorithm="HS256",
        project_id="p1",
        api_base_url="https://api.example.test",
        proxy_base_url="https://proxy.example.test",
    )
    values.update(overrides)
    return Settings(**values)


def _ctx(settings: Settings, codec, user_token: str | None) -> ToolContext:
    return ToolContext(
        session_id="s1",
        user_token=user_token,
        user_id=None,
        settings=settings,
        access_tokens=AccessTokenStore(codec),
    )


@pytest.mark.anyio
async def test_build_loads_integrations_and_filters_proxy_tool(signing_secret, codec):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=INTEGRATIONS)

    settings = _settings(signing_secret, enable_proxy_api_tool=True, limit_to_integrations=["slack", "salesforce"])
    aggregator = ToolAggregator(http_transport=httpx.MockTransport(handler))

    toolset = await aggregator.build(settings, codec)

    assert len(toolset.integrations) == 3
    assert [t.name for t in toolset.tools] == [PROXY_TOOL_NAME]
    schema = toolset.get(PROXY_TOOL_NAME).input_schema
    assert schema["properties"]["integration"]["enum"] == ["salesforce", "slack"]

    # Integration metadata is fetched with a project-scoped token.
    (request,) = requests
    assert request.url.path == "/projects/p1/sdk/integrations"
    token = request.headers["authorization"].removeprefix("Bearer ")
    assert codec.verify(token)["sub"] == "p1"


@pytest.mark.anyio
async def test_build_survives_integration_load_failure(signing_secret, codec, caplog):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    settings = _settings(signing_secret, enable_proxy_api_tool=True)
    aggregator = ToolAggregator(http_transport=httpx.MockTransport(handler))

    toolset = await aggregator.build(settings, codec)

    assert toolset.integrations == ()
    assert [t.name for t in toolset.tools] == [PROXY_TOOL_NAME]
    assert "Failed to load integrations" in caplog.text


@pytest.mark.anyio
async def test_build_without_project_skips_integrations(signing_secret, codec):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    settings = _settings(signing_secret, project_id=None)
    aggregator = ToolAggregator(http_transport=httpx.MockTransport(handler))

    toolset = await aggregator.build(settings, codec)

    assert len(toolset) == 0
    assert toolset.integrations == ()


def test_filter_integrations():
    integrations = [Integration.model_validate(i) for i in INTEGRATIONS]

    assert filter_integrations(integrations, None) == integrations
    assert [i.type for i in filter_integrations(integrations, ["hubspot"])] == ["hubspot"]
    assert filter_integrations(integrations, ["unknown"]) == []


def test_duplicate_custom_tool_keeps_first(caplog):
    aggregator = ToolAggregator()

    async def first(arguments, ctx):
        return "first"

    async def second(arguments, ctx):
        return "second"

    kept = aggregator.add_tool(first, name="echo")
    again = aggregator.add_tool(second, name="echo")

    assert again is kept
    assert [t.fn for t in aggregator.custom_tools] == [first]
    assert "Tool already exists: echo" in caplog.text


@pytest.mark.anyio
async def test_custom_tool_cannot_shadow_proxy_tool(signing_secret, codec):
    aggregator = ToolAggregator(http_transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[])))

    @aggregator.tool(PROXY_TOOL_NAME)
    async def impostor(arguments, ctx):
        return "impostor"

    settings = _settings(signing_secret, enable_proxy_api_tool=True, enable_custom_tools=True)
    toolset = await aggregator.build(settings, codec)

    assert len(toolset) == 1
    assert toolset.get(PROXY_TOOL_NAME).fn is not impostor


def test_invalid_input_schema_rejected():
    async def fn(arguments, ctx):
        return None

    with pytest.raises(ValidationError):
        ExtendedTool(name="bad", fn=fn, input_schema={"type": "not-a-type"})


def test_tool_definition():
    async def fn(arguments, ctx):
        return None

    tool = ExtendedTool(name="noop", description="Does nothing", fn=fn)
    definition = tool.definition()

    assert definition.name == "noop"
    assert definition.inputSchema == {"type": "object", "properties": {}}


@pytest.mark.anyio
async def test_proxy_tool_calls_integration_api_as_user(signing_secret, codec):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    settings = _settings(signing_secret)
    integrations = [Integration.model_validate(i) for i in INTEGRATIONS[:1]]
    tool = create_proxy_api_tool(integrations, transport=httpx.MockTransport(handler))
    user_token = codec.sign_user("alice")

    result = await tool.run(
        {"integration": "slack", "method": "POST", "path": "/chat.postMessage", "body": {"text": "hi"}},
        _ctx(settings, codec, user_token),
    )

    (request,) = seen
    assert request.method == "POST"
    assert str(request.url) == "https://proxy.example.test/projects/p1/sdk/proxy/slack/chat.postMessage"
    assert request.headers["authorization"] == f"Bearer {user_token}"
    assert json.loads(request.content) == {"text": "hi"}
    assert json.loads(result[0].text) == {"status": 200, "output": {"ok": True}}


@pytest.mark.anyio
async def test_proxy_tool_requires_session_user(signing_secret, codec):
    tool = create_proxy_api_tool([], transport=httpx.MockTransport(lambda r: httpx.Response(200)))

    with pytest.raises(PermissionError):
        await tool.run({"integration": "slack", "method": "GET", "path": "x"}, _ctx(_settings(signing_secret), codec, None))


@pytest.mark.anyio
async def test_proxy_tool_rejects_unlisted_integration(signing_secret, codec):
    integrations = [Integration.model_validate(i) for i in INTEGRATIONS[:1]]
    tool = create_proxy_api_tool(integrations, transport=httpx.MockTransport(lambda r: httpx.Response(200)))

    with pytest.raises(ValueError):
        await tool.run(
            {"integration": "salesforce", "method": "GET", "path": "x"},
            _ctx(_settings(signing_secret), codec, codec.sign_user("alice")),
        )


@pytest.mark.anyio
@pytest.mark.parametrize(
    "arguments",
    [
        {"integration": "slack", "method": "GET", "path": "../../other-project/secrets"},
        {"integration": "slack", "method": "GET", "path": "api/%2e%2e/%2E%2E/admin"},
        {"integration": "slack", "method": "GET", "path": "./api"},
        {"integration": "../slack", "method": "GET", "path": "api"},
    ],
)
async def test_proxy_tool_refuses_to_leave_integration_prefix(signing_secret, codec, arguments):
    seen: list[httpx.Request] = []
    tool = create_proxy_api_tool([], transport=httpx.MockTransport(lambda r: seen.append(r) or httpx.Response(200)))

    with pytest.raises(ValueError):
        await tool.run(arguments, _ctx(_settings(signing_secret), codec, codec.sign_user("alice")))
    assert seen == []
