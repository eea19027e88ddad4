from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from flowmesh_ai.agent_core.tools import CurrentDateTimeTool, DelayTool, EmptyInput, builtin_tools, render_tool_result
from flowmesh_ai.agent_core.tools.builtin import DelayInput


@pytest.mark.asyncio
async def test_current_date_time_is_iso_utc() -> None:
    value = await CurrentDateTimeTool()(EmptyInput())

    parsed = datetime.fromisoformat(value)
    assert parsed.tzinfo is not None
    assert parsed.utcoffset() == timezone.utc.utcoffset(None)


@pytest.mark.asyncio
async def test_delay_waits_and_reports() -> None:
    result = await DelayTool()(DelayInput(milliseconds=1))

    assert result["message"] == "Delayed for 1 milliseconds."
    datetime.fromisoformat(result["timestamp"])


def test_delay_rejects_negative_duration() -> None:
    with pytest.raises(ValidationError):
        DelayInput(milliseconds=-5)


def test_delay_spec_describes_parameters() -> None:
    spec = DelayTool().spec()

    assert spec.name == "delay"
    assert spec.parameters["required"] == ["milliseconds"]
    assert spec.parameters["properties"]["milliseconds"]["minimum"] == 0


def test_no_argument_tool_spec_has_empty_properties() -> None:
    spec = CurrentDateTimeTool().spec()

    assert spec.parameters["properties"] == {}
    assert spec.parameters["type"] == "object"


def test_builtin_tools_lists_every_handler() -> None:
    assert [t.name for t in builtin_tools()] == ["get_current_date_time", "delay"]


@pytest.mark.parametrize(
    "result, expected",
    [
        ("plain", "plain"),
        ({"a": 1}, '{"a": 1}'),
        ([1, 2], "[1, 2]"),
        (DelayInput(milliseconds=2), '{"milliseconds":2.0}'),
    ],
)
def test_render_tool_result(result, expected) -> None:
    assert render_tool_result(result) == expected
