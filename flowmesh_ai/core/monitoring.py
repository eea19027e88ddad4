"""
Monitoring and Tracing Configuration Module.

This module provides integration with Pydantic Logfire for monitoring and
tracing of agent executions, including:
- Execution start/completion with durations
- LLM provider calls and token usage
- Tool invocations
- Error tracking

All helpers are no-ops until ``initialize_logfire`` has successfully
configured Logfire, so the engine can call them unconditionally.
"""

import logging
import os
from typing import Any, Optional

import logfire

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


# Logfire configuration from environment
LOGFIRE_ENABLED = _env_flag("LOGFIRE_ENABLED", "false")
LOGFIRE_TOKEN = os.getenv("LOGFIRE_TOKEN", "")
LOGFIRE_ENVIRONMENT = os.getenv("LOGFIRE_ENVIRONMENT", "development")
LOGFIRE_SERVICE_NAME = os.getenv("LOGFIRE_SERVICE_NAME", "flowmesh-ai-engine")
LOGFIRE_SERVICE_VERSION = os.getenv("LOGFIRE_SERVICE_VERSION", "0.0.0")

# Feature flags
LOGFIRE_TRACE_HTTPX = _env_flag("LOGFIRE_TRACE_HTTPX", "true")

_configured = False


def is_logfire_configured() -> bool:
    """Return whether Logfire was configured by ``initialize_logfire``."""
    return _configured


def initialize_logfire() -> bool:
    """
    Initialize Pydantic Logfire for monitoring and tracing.

    The initialization is conditional on the LOGFIRE_ENABLED environment
    variable and requires LOGFIRE_TOKEN. When enabled, HTTPX requests made by
    the provider clients and the tools are traced as well.

    Returns:
        True if Logfire is configured after the call, False otherwise.
    """
    global _configured

    if not LOGFIRE_ENABLED:
        logger.info("Logfire monitoring is disabled. Set LOGFIRE_ENABLED=true to enable.")
        return False

    if not LOGFIRE_TOKEN:
        logger.warning(
            "Logfire is enabled but LOGFIRE_TOKEN is not set. "
            "Monitoring will not work. Set LOGFIRE_TOKEN to enable Logfire."
        )
        return False

    try:
        logfire.configure(
            token=LOGFIRE_TOKEN,
            service_name=LOGFIRE_SERVICE_NAME,
            service_version=LOGFIRE_SERVICE_VERSION,
            environment=LOGFIRE_ENVIRONMENT,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Logfire: {e}", exc_info=True)
        return False

    _configured = True

    if LOGFIRE_TRACE_HTTPX:
        try:
            logfire.instrument_httpx()
            logger.info("Logfire: HTTPX instrumentation enabled")
        except Exception as e:
            logger.warning(f"Failed to instrument HTTPX: {e}")

    logger.info(
        f"Logfire monitoring initialized: environment={LOGFIRE_ENVIRONMENT}, service={LOGFIRE_SERVICE_NAME}"
    )
    return True


def log_execution_started(execution_id: str, agent_name: str) -> None:
    """
    Log the start of an agent execution.

    Args:
        execution_id: The execution identifier shared by every stream item
        agent_name: The agent's display name
    """
    if not _configured:
        return
    try:
        logfire.info("Agent execution started", execution_id=execution_id, agent_name=agent_name)
    except Exception:
        logger.debug(f"Could not log execution start to Logfire: execution_id={execution_id}")


def log_execution_completed(execution_id: str, status: str, duration_ms: float) -> None:
    """
    Log the completion of an agent execution.

    Args:
        execution_id: The execution identifier
        status: The terminal status (completed, failed, cancelled)
        duration_ms: The duration of the execution in milliseconds
    """
    if not _configured:
        return
    try:
        logfire.info(
            "Agent execution completed",
            execution_id=execution_id,
            status=status,
            duration_ms=duration_ms,
        )
    except Exception:
        logger.debug(f"Could not log execution completion to Logfire: execution_id={execution_id}")


def log_llm_call(model: str, provider: str, input_tokens: int, output_tokens: int) -> None:
    """
    Log one provider turn with its token usage.

    Args:
        model: The model name
        provider: The provider type
        input_tokens: Prompt tokens reported by the provider
        output_tokens: Completion tokens reported by the provider
    """
    if not _configured:
        return
    try:
        logfire.info(
            "LLM call completed",
            model=model,
            provider=provider,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
    except Exception:
        logger.debug(f"Could not log LLM call to Logfire: model={model}")


def log_tool_invocation(tool_name: str, ok: bool, duration_ms: float) -> None:
    """
    Log a tool invocation outcome.

    Args:
        tool_name: The registered tool name
        ok: Whether the invocation produced a result
        duration_ms: Invocation duration in milliseconds
    """
    if not _configured:
        return
    try:
        logfire.info("Tool invoked", tool_name=tool_name, ok=ok, duration_ms=duration_ms)
    except Exception:
        logger.debug(f"Could not log tool invocation to Logfire: tool={tool_name}")


def log_error(error_type: str, error_message: str, context: Optional[dict[str, Any]] = None) -> None:
    """
    Log an error with context for debugging.

    Args:
        error_type: Type of error
        error_message: Error message
        context: Additional context dictionary
    """
    if not _configured:
        return
    try:
        logfire.error(f"{error_type}: {error_message}", **(context or {}))
    except Exception:
        logger.debug(f"Could not log error to Logfire: {error_type}")
