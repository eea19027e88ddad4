"""Sandboxed jinja2 rendering for StringFormatter templates and Conditional expressions.

Both node kinds see the same variable scope:

- ``input.text``: upstream results rendered as text, one per line.
- ``input.by_name``: upstream text keyed by the upstream node's name.
- ``messages``: the execution input messages (``role`` / ``content`` dicts).
- ``execution``: ``execution_id``, ``agent_id`` and ``agent_name``.
"""

from typing import Any, Dict, Sequence

from jinja2.sandbox import SandboxedEnvironment

from ..errors import TemplateRenderError
from ..schemas.results import AgentNodeResult, join_texts
from .models import ExecutionContext

_environment = SandboxedEnvironment(autoescape=False, keep_trailing_newline=True)


def build_scope(ctx: ExecutionContext, inputs: Sequence[AgentNodeResult]) -> Dict[str, Any]:
    return {
        "input": {
            "text": join_texts(inputs),
            "by_name": {result.node_name: result.text() for result in inputs},
        },
        "messages": [m.model_dump(mode="json") for m in ctx.input_details.messages],
        "execution": {
            "execution_id": ctx.execution_id,
            "agent_id": ctx.agent_id,
            "agent_name": ctx.agent_name,
        },
    }


def render_template(template: str, scope: Dict[str, Any]) -> str:
    try:
        return _environment.from_string(template).render(**scope)
    except Exception as e:
        raise TemplateRenderError(str(e) or type(e).__name__) from e


def evaluate_condition(expression: str, scope: Dict[str, Any]) -> bool:
    """Evaluate one condition expression; blank expressions never match."""
    if not expression or not expression.strip():
        return False
    try:
        return bool(_environment.compile_expression(expression)(**scope))
    except Exception as e:
        raise TemplateRenderError(f"condition '{expression}': {e}") from e
