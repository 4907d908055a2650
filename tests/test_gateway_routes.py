try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import httpx
import pytest

from autostack import dependencies
from autostack.main import app as combined_app
from autostack.main import gateway_app
from autostack.models.token import TokenKey, TokenRecord, now_ms
from autostack.schemas.rpc import ToolDescriptor, ToolResult


class FakeAdapter:
    def __init__(self, adapter_id: str, tools: list[str], provider: str | None = None) -> None:
        self.id = adapter_id
        self.name = adapter_id.title()
        self.provider = provider
        self.keywords: tuple[str, ...] = ()
        self.tools = tools
        self.tokens: list[str | None] = []

    async def list_tools(self) -> list[ToolDescriptor]:
        return [ToolDescriptor(name=name) for name in self.tools]

    async def call_tool(self, name: str, arguments: dict, access_token: str | None) -> ToolResult:
        self.tokens.append(access_token)
        return ToolResult(content=[{"type": "text", "text": f"{self.id}:{name}"}])

    def describe(self) -> dict:
        note = "Uses OAuth broker for authentication" if self.provider else "Uses direct API keys"
        return {"id": self.id, "name": self.name, "status": "available", "note": note}


@pytest.fixture()
def github_adapter():
    adapter = FakeAdapter("github", ["list_repos"], provider="github")
    apps = (gateway_app, combined_app)
    for target in apps:
        target.dependency_overrides[dependencies.get_backend_adapters] = lambda: (adapter,)

    yield adapter

    for target in apps:
        target.dependency_overrides.clear()


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


@pytest.mark.anyio
async def test_health_and_index() -> None:
    async with _client(gateway_app) as client:
        health = await client.get("/health")
        index = await client.get("/")

    assert health.json() == {"status": "healthy", "service": "mcp-gateway"}
    assert index.json()["endpoints"]["mcp"] == "/mcp/sse"
    assert health.headers["x-request-id"]


@pytest.mark.anyio
async def test_sse_probe_reports_server_info() -> None:
    async with _client(gateway_app) as client:
        response = await client.get("/mcp/sse")

    assert response.status_code == 200
    assert response.json()["serverInfo"]["name"] == "mcp-gateway"


@pytest.mark.anyio
async def test_servers_descriptor(github_adapter):
    async with _client(gateway_app) as client:
        response = await client.get("/mcp/servers")

    assert response.json() == {
        "servers": [
            {
                "id": "github",
                "name": "Github",
                "status": "available",
                "note": "Uses OAuth broker for authentication",
            }
        ]
    }


@pytest.mark.anyio
@pytest.mark.parametrize("path", ["/mcp/sse", "/"])
async def test_initialize_over_http(path: str, github_adapter):
    async with _client(gateway_app) as client:
        response = await client.post(
            path,
            json={
                "jsonrpc": "2.0",
                "id": 0,
                "method": "initialize",
                "params": {"protocolVersion": "2024-11-05"},
            },
        )

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == 0
    assert body["result"]["protocolVersion"] == "2024-11-05"


@pytest.mark.anyio
async def test_rpc_errors_use_http_200(github_adapter):
    async with _client(gateway_app) as client:
        parse_error = await client.post(
            "/mcp/sse", content=b"{oops", headers={"content-type": "application/json"}
        )
        unknown = await client.post(
            "/mcp/sse", json={"jsonrpc": "2.0", "id": 5, "method": "nope"}
        )

    assert parse_error.status_code == 200
    assert parse_error.json()["error"]["code"] == -32700
    assert parse_error.json()["id"] is None
    assert unknown.status_code == 200
    assert unknown.json()["error"]["code"] == -32601


@pytest.mark.anyio
async def test_bearer_header_forwarded_to_adapter(github_adapter):
    async with _client(gateway_app) as client:
        response = await client.post(
            "/mcp/sse",
            json={
                "jsonrpc": "2.0",
                "id": "call-1",
                "method": "tools/call",
                "params": {"name": "list_repos", "arguments": {}},
            },
            headers={"authorization": "Bearer caller-token"},
        )

    assert response.json()["result"]["isError"] is False
    assert github_adapter.tokens == ["caller-token"]


@pytest.mark.anyio
async def test_tools_list_over_http(github_adapter):
    async with _client(gateway_app) as client:
        response = await client.post(
            "/mcp/sse", json={"jsonrpc": "2.0", "id": 2, "method": "tools/list"}
        )

    assert [tool["name"] for tool in response.json()["result"]["tools"]] == ["list_repos"]


@pytest.mark.anyio
async def test_combined_app_resolves_tokens_in_process(github_adapter):
    store = dependencies.get_token_store()
    store.put(
        TokenKey("test-user", "github"),
        TokenRecord(access_token="gho_in_process", expires_at=now_ms() + 60_000),
    )

    async with _client(combined_app) as client:
        response = await client.post(
            "/mcp/sse",
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "method": "tools/call",
                "params": {"name": "list_repos"},
            },
        )

    assert response.json()["result"]["content"][0]["text"] == "github:list_repos"
    assert github_adapter.tokens == ["gho_in_process"]
