"""Correction Messages — pure builders for the corrective user turns sent to the model.

Invariants:
    - Every corrective turn names exactly one tool (its model-facing name)
    - Context values quoted in messages are truncated scalars; structures are summarized
    - No builder reads or writes state beyond its arguments
"""

from typing import Any

from tradepilot.core.domain_types import ResponseKind
from tradepilot.core.execution_context import ExecutionContext
from tradepilot.core.tool_descriptor import ToolDescriptor, to_api_name
from tradepilot.core.workflow_plan import WorkflowStep

MAX_VALUE_CHARS = 60

_OPENERS = {
    ResponseKind.CODE_LIKE: "DO NOT write code.",
    ResponseKind.STATED_INTENT: "Do not describe what you will do.",
    ResponseKind.INCOMPLETE: "The workflow is not complete.",
}


def describe_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return f"<{len(value)} items>"
    if isinstance(value, dict):
        return "<object>"
    text = repr(value)
    if len(text) > MAX_VALUE_CHARS:
        return text[:MAX_VALUE_CHARS] + "…"
    return text


def build_correction_message(
    step: WorkflowStep,
    descriptor: ToolDescriptor,
    context: ExecutionContext,
    kind: ResponseKind = ResponseKind.INCOMPLETE,
) -> str:
    """Corrective turn for a non-compliant response: call step.tool next."""
    parts = [
        _OPENERS.get(kind, ""),
        f"You MUST call the {descriptor.api_name} tool now.",
    ]
    if step.hint:
        parts.append(step.hint)

    derived = [
        f"{name}={describe_value(context.resolve(path))}"
        for name, path in descriptor.dependencies.derived_inputs.items()
        if context.has(path)
    ]
    if derived:
        parts.append(
            "These arguments are filled in from context automatically: "
            + ", ".join(derived) + ".",
        )

    if step.args:
        fixed = ", ".join(f"{k}={v!r}" for k, v in step.args.items())
        parts.append(f"Use {fixed}.")
    elif not _model_must_supply(descriptor):
        parts.append("Call it with empty parameters: {}.")

    return " ".join(p for p in parts if p)


def _model_must_supply(descriptor: ToolDescriptor) -> bool:
    derived = descriptor.dependencies.derived_inputs
    return any(name not in derived for name in descriptor.required_inputs)


def build_multi_call_message(executed: str, discarded: list[str]) -> str:
    names = ", ".join(to_api_name(n) for n in discarded)
    return (
        f"Only {to_api_name(executed)} was executed. The other calls ({names}) "
        "were ignored. Call exactly ONE tool per turn and wait for its result."
    )


def build_skipped_tool_message(
    tool: str, reason: str, next_tool: str | None,
) -> str:
    message = f"DO NOT call {to_api_name(tool)} now."
    if reason:
        message += f" {reason}"
    if next_tool:
        message += f" Call {to_api_name(next_tool)} instead."
    return message


def build_tool_error_message(outcome: dict, next_tool: str | None) -> str:
    """Steer after a recoverable registry error (precondition, args, unknown tool)."""
    message = outcome.get("message", "ERROR: tool call failed.")
    if next_tool:
        message += f" The next required tool is {to_api_name(next_tool)}."
    return message


def build_rewrite_message(message: str, steer_to: str | None) -> str:
    if steer_to:
        return f"{message} Call {to_api_name(steer_to)} now."
    return message


FINAL_ANSWER_MESSAGE = (
    "The workflow is complete. Reply with a short plain-text summary of the "
    "result. No code and no further tool calls."
)


def format_recommendation(result: Any) -> str:
    """Plain-text summary of an advisor recommendation (fallback final output)."""
    if not isinstance(result, dict):
        return str(result)
    if result.get("action") == "NO_TRADE":
        message = f"NO_TRADE: {result.get('reason') or 'No trade recommended'}"
        failed = result.get("failed_gates") or []
        if failed:
            message += f"\nFailed gates: {', '.join(failed)}"
        score = result.get("score")
        if score is not None:
            message += f"\nScore: {score}/100"
        return message

    lines = [
        f"{result.get('action', 'BUY')} {result.get('side', '')}".strip()
        + f" - Entry: {_money(result.get('entry_price'))}"
        + f", SL: {_money(result.get('stop_loss_price', result.get('stop_loss')))}"
        + f", Target: {_money(result.get('target_price'))}",
    ]
    if result.get("quantity") is not None:
        lines.append(
            f"Quantity: {result['quantity']} ({result.get('lots', '?')} lots)",
        )
    if result.get("score") is not None:
        lines.append(f"Score: {result['score']}/100")
    return "\n".join(lines)


def _money(value: Any) -> str:
    if isinstance(value, (int, float)):
        return f"{value:.2f}"
    return "n/a"
