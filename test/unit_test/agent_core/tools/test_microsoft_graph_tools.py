from __future__ import annotations

from typing import List

import httpx
import pytest

from flowmesh_ai.agent_core.errors import ToolError
from flowmesh_ai.agent_core.tools import (
    ACCESS_TOKEN_SECRET,
    ListMyDrivesTool,
    MicrosoftGraphUserInformationTool,
    ProviderPosture,
    SearchMyDriveTool,
    SearchSpecificDriveTool,
    ToolInvocationContext,
    ToolProviderType,
    microsoft_graph_tools,
)
from flowmesh_ai.agent_core.tools.base import EmptyInput
from flowmesh_ai.agent_core.tools.microsoft_graph import SearchMyDriveInput, SearchSpecificDriveInput
from flowmesh_ai.core.config import MicrosoftGraphConfig

CONFIG = MicrosoftGraphConfig(base_url="https://mock.graph/v1.0")


class _Graph:
    def __init__(self, status: int = 200, payload=None) -> None:
        self.status = status
        self.payload = payload if payload is not None else {"value": []}
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.payload)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def _context(token: str = "graph-token") -> ToolInvocationContext:
    posture = ProviderPosture(
        provider_type=ToolProviderType.microsoft,
        scopes=frozenset({"User.Read", "Files.Read"}),
        secrets={ACCESS_TOKEN_SECRET: token} if token else {},
    )
    return ToolInvocationContext(posture=posture)


@pytest.mark.asyncio
async def test_user_information_calls_me_with_bearer_token() -> None:
    graph = _Graph(payload={"displayName": "Ada"})
    tool = MicrosoftGraphUserInformationTool(CONFIG, transport=graph.transport)

    result = await tool(EmptyInput(), _context())

    assert result == {"displayName": "Ada"}
    request = graph.requests[0]
    assert request.url.path == "/v1.0/me"
    assert request.headers["Authorization"] == "Bearer graph-token"


@pytest.mark.asyncio
async def test_list_my_drives() -> None:
    graph = _Graph(payload={"value": [{"id": "d1"}]})

    result = await ListMyDrivesTool(CONFIG, transport=graph.transport)(EmptyInput(), _context())

    assert result["value"][0]["id"] == "d1"
    assert graph.requests[0].url.path == "/v1.0/me/drives"


@pytest.mark.asyncio
async def test_search_my_drive_escapes_quotes() -> None:
    graph = _Graph()

    await SearchMyDriveTool(CONFIG, transport=graph.transport)(SearchMyDriveInput(query="bob's plan"), _context())

    assert graph.requests[0].url.path == "/v1.0/me/drive/root/search(q='bob''s plan')"


@pytest.mark.asyncio
async def test_search_specific_drive() -> None:
    graph = _Graph()

    await SearchSpecificDriveTool(CONFIG, transport=graph.transport)(
        SearchSpecificDriveInput(drive_id="b!abc", query="budget"), _context()
    )

    assert graph.requests[0].url.path == "/v1.0/drives/b!abc/root/search(q='budget')"


@pytest.mark.asyncio
async def test_missing_token_fails_without_request() -> None:
    graph = _Graph()
    tool = ListMyDrivesTool(CONFIG, transport=graph.transport)

    with pytest.raises(ToolError) as exc_info:
        await tool(EmptyInput(), _context(token=""))

    assert exc_info.value.tool_name == "list_my_drives"
    assert graph.requests == []


@pytest.mark.asyncio
async def test_graph_error_status_raises_tool_error() -> None:
    graph = _Graph(status=403, payload={"error": {"code": "accessDenied"}})

    with pytest.raises(ToolError, match="status 403"):
        await ListMyDrivesTool(CONFIG, transport=graph.transport)(EmptyInput(), _context())


def test_tool_declarations() -> None:
    tools = {t.name: t for t in microsoft_graph_tools(CONFIG)}

    assert set(tools) == {
        "get_microsoft_graph_user_information",
        "list_my_drives",
        "search_my_drive",
        "search_specific_drive",
    }
    assert all(t.provider_type == ToolProviderType.microsoft for t in tools.values())
    assert tools["get_microsoft_graph_user_information"].required_scopes == ("User.Read",)
    assert "Files.Read.All" in tools["search_my_drive"].required_scopes
    assert tools["search_specific_drive"].spec().parameters["required"] == ["drive_id", "query"]
