"""Tools the model can call during a chat turn.

This package exports:

- ``ToolHandler`` / ``ToolInvocationContext``: the handler contract.
- ``ToolRegistry`` / ``RegisteredTool``: per-execution lookup, argument
  validation and time-boxed invocation.
- ``CredentialAccessor`` / ``ProviderPosture``: the read-only credential
  collaborator for OAuth-backed tools.
- The built-in and Microsoft Graph tool handlers.
"""

from .base import EmptyInput, ToolHandler, ToolInvocationContext, render_tool_result
from .builtin import CurrentDateTimeTool, DelayTool, builtin_tools
from .credentials import (
    ACCESS_TOKEN_SECRET,
    CredentialAccessor,
    ProviderPosture,
    ScopeMatch,
    StaticCredentialAccessor,
    ToolProviderType,
)
from .microsoft_graph import (
    ListMyDrivesTool,
    MicrosoftGraphUserInformationTool,
    SearchMyDriveTool,
    SearchSpecificDriveTool,
    microsoft_graph_tools,
)
from .registry import RegisteredTool, ToolRegistry

__all__ = [
    "ACCESS_TOKEN_SECRET",
    "CredentialAccessor",
    "CurrentDateTimeTool",
    "DelayTool",
    "EmptyInput",
    "ListMyDrivesTool",
    "MicrosoftGraphUserInformationTool",
    "ProviderPosture",
    "RegisteredTool",
    "ScopeMatch",
    "SearchMyDriveTool",
    "SearchSpecificDriveTool",
    "StaticCredentialAccessor",
    "ToolHandler",
    "ToolInvocationContext",
    "ToolProviderType",
    "ToolRegistry",
    "builtin_tools",
    "microsoft_graph_tools",
    "render_tool_result",
]
