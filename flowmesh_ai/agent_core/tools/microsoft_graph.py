"""Microsoft Graph tools.

These tools call the Graph REST API with the bearer token found in the
user's ``microsoft`` posture (secret ``access_token``). Scope checks happen
when the registry is built; a handler only ever runs for a user whose
posture satisfied its ``required_scopes``.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from ...core.config import MicrosoftGraphConfig
from ..errors import ToolError
from .base import EmptyInput, ToolHandler, ToolInvocationContext
from .credentials import ACCESS_TOKEN_SECRET, ScopeMatch, ToolProviderType

logger = logging.getLogger(__name__)

FILES_READ_SCOPES = ("Files.Read", "Files.Read.All", "Files.ReadWrite", "Files.ReadWrite.All")


class SearchMyDriveInput(BaseModel):
    query: str = Field(..., description="Search terms to look for in the user's drive")


class SearchSpecificDriveInput(BaseModel):
    drive_id: str = Field(..., description="The drive id to search. Consider listing the drives first.")
    query: str = Field(..., description="Search terms to look for in the drive")


def _search_path(prefix: str, query: str) -> str:
    escaped = query.replace("'", "''")
    return f"{prefix}/root/search(q='{escaped}')"


class MicrosoftGraphTool(ToolHandler):
    """Base class for tools backed by the Microsoft Graph API."""

    provider_type = ToolProviderType.microsoft
    scope_match = ScopeMatch.any

    def __init__(
        self,
        config: Optional[MicrosoftGraphConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config or MicrosoftGraphConfig()
        self._transport = transport

    async def _get(self, context: ToolInvocationContext, path: str) -> Dict[str, Any]:
        token = context.posture.secret(ACCESS_TOKEN_SECRET) if context.posture else None
        if not token:
            raise ToolError(f"No Microsoft Graph access token available for '{self.name}'", tool_name=self.name)

        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        async with httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=self._config.timeout,
            transport=self._transport,
        ) as client:
            response = await client.get(path, headers=headers)
            if response.status_code >= 400:
                logger.warning(f"Microsoft Graph {path} failed: {response.status_code} - {response.text[:200]}")
                raise ToolError(
                    f"Microsoft Graph request failed with status {response.status_code}",
                    tool_name=self.name,
                )
            return response.json()


class MicrosoftGraphUserInformationTool(MicrosoftGraphTool):
    name = "get_microsoft_graph_user_information"
    description = "A tool to get the current user's information via the Microsoft Graph API."
    input_model = EmptyInput
    required_scopes = ("User.Read",)

    async def execute(self, input_data: EmptyInput, context: ToolInvocationContext) -> Dict[str, Any]:
        return await self._get(context, "/me")


class ListMyDrivesTool(MicrosoftGraphTool):
    name = "list_my_drives"
    description = "A tool to list the Microsoft Graph drives the user has access to."
    input_model = EmptyInput
    required_scopes = FILES_READ_SCOPES

    async def execute(self, input_data: EmptyInput, context: ToolInvocationContext) -> Dict[str, Any]:
        return await self._get(context, "/me/drives")


class SearchMyDriveTool(MicrosoftGraphTool):
    name = "search_my_drive"
    description = "A tool to search the user's own Microsoft Graph drive."
    input_model = SearchMyDriveInput
    required_scopes = FILES_READ_SCOPES

    async def execute(self, input_data: SearchMyDriveInput, context: ToolInvocationContext) -> Dict[str, Any]:
        return await self._get(context, _search_path("/me/drive", input_data.query))


class SearchSpecificDriveTool(MicrosoftGraphTool):
    name = "search_specific_drive"
    description = "A tool to search a specific Microsoft Graph drive."
    input_model = SearchSpecificDriveInput
    required_scopes = FILES_READ_SCOPES

    async def execute(self, input_data: SearchSpecificDriveInput, context: ToolInvocationContext) -> Dict[str, Any]:
        return await self._get(context, _search_path(f"/drives/{input_data.drive_id}", input_data.query))


def microsoft_graph_tools(
    config: Optional[MicrosoftGraphConfig] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list:
    """Instances of every Microsoft Graph tool handler."""
    return [
        MicrosoftGraphUserInformationTool(config, transport=transport),
        ListMyDrivesTool(config, transport=transport),
        SearchMyDriveTool(config, transport=transport),
        SearchSpecificDriveTool(config, transport=transport),
    ]
