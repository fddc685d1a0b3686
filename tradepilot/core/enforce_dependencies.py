"""Dependency Enforcement — pure precondition checks and host-side argument resolution.

Invariants:
    - All functions are PURE: no IO, no async, no context mutation
    - check_* functions return a list of unmet-dependency messages (empty = satisfied)
    - collect_unmet_preconditions runs every check so the model sees all gaps at once
    - resolve_arguments REPLACES derived keys, never merges: the model's value is discarded
    - A derived input that cannot be resolved is unmet only if the input schema requires it

Design Decisions:
    - Lists over first-error-wins: corrective turns name every missing dependency
"""

from typing import Any

from tradepilot.core.execution_context import ExecutionContext, dig
from tradepilot.core.tool_descriptor import ToolDescriptor


def check_forbidden_state(
    descriptor: ToolDescriptor, context: ExecutionContext,
) -> list[str]:
    if context.phase in descriptor.dependencies.forbidden_states:
        return [f"not allowed during phase {context.phase.value}"]
    return []


def check_required_tools(
    descriptor: ToolDescriptor, context: ExecutionContext,
) -> list[str]:
    return [
        f"requires {tool} to be called first"
        for tool in descriptor.dependencies.required_tools
        if not context.was_called(tool)
    ]


def check_required_outputs(
    descriptor: ToolDescriptor, context: ExecutionContext,
) -> list[str]:
    return [
        f"missing required output '{path}' in context"
        for path in descriptor.dependencies.required_outputs
        if not context.has(path)
    ]


def check_call_limit(
    descriptor: ToolDescriptor, context: ExecutionContext,
) -> list[str]:
    limit = descriptor.dependencies.max_calls_per_trade
    if limit is None:
        return []
    count = context.call_count(descriptor.name)
    if count >= limit:
        return [f"call limit reached ({count}/{limit} for this trade)"]
    return []


def collect_unmet_preconditions(
    descriptor: ToolDescriptor, context: ExecutionContext,
) -> list[str]:
    """All precondition checks, in contract order."""
    return (
        check_forbidden_state(descriptor, context)
        + check_required_tools(descriptor, context)
        + check_required_outputs(descriptor, context)
        + check_call_limit(descriptor, context)
    )


def resolve_arguments(
    descriptor: ToolDescriptor,
    model_args: dict[str, Any],
    context: ExecutionContext,
) -> tuple[dict[str, Any], list[str]]:
    """Apply derived inputs over model args. Returns (resolved_args, unmet)."""
    resolved = {
        k: v for k, v in (model_args or {}).items()
        if k not in descriptor.dependencies.derived_inputs
    }
    unmet = []
    for input_name, path in descriptor.dependencies.derived_inputs.items():
        value = context.resolve(path)
        if value is None:
            if input_name in descriptor.required_inputs:
                unmet.append(
                    f"derived input '{input_name}' unresolvable from context path '{path}'",
                )
            continue
        resolved[input_name] = value
    return resolved, unmet


def resolve_outputs(
    descriptor: ToolDescriptor, args: dict[str, Any], result: Any,
) -> dict[str, Any]:
    """Map a handler result to Context keys per descriptor.produces.

    Keys may be templated with resolved args ("candles_{interval}m").
    Path "" stores the whole result; unresolvable paths are skipped.
    """
    outputs: dict[str, Any] = {}
    for key_template, path in descriptor.produces.items():
        try:
            key = key_template.format(**args)
        except (KeyError, IndexError):
            continue
        value = result if not path else dig(result, path)
        if value is not None:
            outputs[key] = value
    return outputs
