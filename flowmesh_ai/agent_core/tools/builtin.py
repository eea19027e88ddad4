"""Built-in tools with no external dependency."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, Field

from .base import EmptyInput, ToolHandler, ToolInvocationContext

logger = logging.getLogger(__name__)


class DelayInput(BaseModel):
    """Input schema for the delay tool."""

    milliseconds: float = Field(..., ge=0, description="How long to wait, in milliseconds")


class CurrentDateTimeTool(ToolHandler[EmptyInput]):
    name = "get_current_date_time"
    description = "A tool to get the current date and time in UTC, ISO 8601 format."

    async def execute(self, input_data: EmptyInput, context: ToolInvocationContext) -> str:
        return datetime.now(timezone.utc).isoformat()


class DelayTool(ToolHandler[DelayInput]):
    name = "delay"
    description = "A tool to wait for the given number of milliseconds before continuing."
    input_model = DelayInput

    async def execute(self, input_data: DelayInput, context: ToolInvocationContext) -> Dict[str, Any]:
        logger.debug(f"Delaying for {input_data.milliseconds:g} ms")
        await asyncio.sleep(input_data.milliseconds / 1000.0)
        return {
            "message": f"Delayed for {input_data.milliseconds:g} milliseconds.",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


def builtin_tools() -> list:
    """Instances of every built-in tool handler."""
    return [CurrentDateTimeTool(), DelayTool()]
