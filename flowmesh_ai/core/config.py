"""
Configuration Settings.

This module defines the application configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# =====================================================================
# LLM Provider Configuration Models
# =====================================================================


class OpenAIConfig(BaseModel):
    """OpenAI API configuration."""

    api_key: Optional[str] = Field(default=None, description="OpenAI API key for authentication")
    base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI API base URL")
    timeout: float = Field(default=120.0, description="HTTP timeout in seconds for streaming requests")


class AnthropicConfig(BaseModel):
    """Anthropic API configuration."""

    api_key: Optional[str] = Field(default=None, description="Anthropic API key for authentication")
    base_url: str = Field(default="https://api.anthropic.com", description="Anthropic API base URL")
    api_version: str = Field(default="2023-06-01", description="Value sent as the anthropic-version header")
    default_max_tokens: int = Field(default=8192, description="max_tokens used when a model node sets none")
    timeout: float = Field(default=120.0, description="HTTP timeout in seconds for streaming requests")


class GoogleConfig(BaseModel):
    """Google Gemini API configuration."""

    api_key: Optional[str] = Field(default=None, description="Google API key for authentication")
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API base URL",
    )
    timeout: float = Field(default=120.0, description="HTTP timeout in seconds for streaming requests")


class MicrosoftGraphConfig(BaseModel):
    """Microsoft Graph API configuration used by OAuth-backed tools."""

    base_url: str = Field(default="https://graph.microsoft.com/v1.0", description="Microsoft Graph base URL")
    timeout: float = Field(default=30.0, description="HTTP timeout in seconds")


class EngineConfig(BaseModel):
    """Execution limits for the graph executor and the tool-calling loop."""

    max_tool_turns: int = Field(default=10, ge=1, description="Maximum provider turns per model node")
    tool_timeout_seconds: float = Field(default=30.0, gt=0, description="Timeout budget for one tool invocation")
    max_concurrent_nodes: int = Field(default=4, ge=1, description="Worker limit for concurrently ready nodes")


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Application settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    # =====================================================================
    # Pydantic Configuration
    # =====================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Logging Configuration
    # =====================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="FLOWMESH_AI_LOG_LEVEL",
    )
    log_format: str = Field(
        default="detailed",
        description="Log line format (simple, detailed, json)",
        alias="FLOWMESH_AI_LOG_FORMAT",
    )
    log_file_enabled: bool = Field(
        default=False,
        description="Also write logs to a file under log_file_dir",
        alias="FLOWMESH_AI_LOG_FILE_ENABLED",
    )
    log_file_dir: str = Field(
        default="logs",
        description="Directory for the log file",
        alias="FLOWMESH_AI_LOG_FILE_DIR",
    )

    # =====================================================================
    # Engine Configuration
    # =====================================================================
    max_tool_turns: int = Field(
        default=10,
        description="Maximum provider turns per model node before the tool loop is aborted",
        alias="FLOWMESH_AI_MAX_TOOL_TURNS",
    )
    tool_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout budget in seconds for a single tool invocation",
        alias="FLOWMESH_AI_TOOL_TIMEOUT_SECONDS",
    )
    max_concurrent_nodes: int = Field(
        default=4,
        description="Maximum number of graph nodes executing at the same time",
        alias="FLOWMESH_AI_MAX_CONCURRENT_NODES",
    )

    # =====================================================================
    # LLM Provider Configuration
    # =====================================================================
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    anthropic_base_url: str = Field(default="https://api.anthropic.com", alias="ANTHROPIC_BASE_URL")
    google_api_key: Optional[str] = Field(default=None, alias="GOOGLE_API_KEY")
    google_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        alias="GOOGLE_BASE_URL",
    )
    provider_timeout_seconds: float = Field(
        default=120.0,
        description="HTTP timeout for provider streaming requests",
        alias="FLOWMESH_AI_PROVIDER_TIMEOUT_SECONDS",
    )

    # =====================================================================
    # Tool Provider Configuration
    # =====================================================================
    microsoft_graph_base_url: str = Field(
        default="https://graph.microsoft.com/v1.0",
        alias="MICROSOFT_GRAPH_BASE_URL",
    )

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def openai(self) -> OpenAIConfig:
        """Get OpenAI configuration."""
        return OpenAIConfig(
            api_key=self.openai_api_key,
            base_url=self.openai_base_url,
            timeout=self.provider_timeout_seconds,
        )

    @property
    def anthropic(self) -> AnthropicConfig:
        """Get Anthropic configuration."""
        return AnthropicConfig(
            api_key=self.anthropic_api_key,
            base_url=self.anthropic_base_url,
            timeout=self.provider_timeout_seconds,
        )

    @property
    def google(self) -> GoogleConfig:
        """Get Google Gemini configuration."""
        return GoogleConfig(
            api_key=self.google_api_key,
            base_url=self.google_base_url,
            timeout=self.provider_timeout_seconds,
        )

    @property
    def microsoft_graph(self) -> MicrosoftGraphConfig:
        """Get Microsoft Graph configuration."""
        return MicrosoftGraphConfig(base_url=self.microsoft_graph_base_url)

    @property
    def engine(self) -> EngineConfig:
        """Get execution limits for the engine."""
        return EngineConfig(
            max_tool_turns=self.max_tool_turns,
            tool_timeout_seconds=self.tool_timeout_seconds,
            max_concurrent_nodes=self.max_concurrent_nodes,
        )


settings = Settings()
