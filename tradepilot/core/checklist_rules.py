"""Checklist Rules — evaluates declarative boolean predicates against a data snapshot.

Invariants:
    - PURE: rules and data are read, never mutated
    - A missing field is None; comparisons against None fail, not_equals passes
    - Unknown ops fail closed (the rule is reported as failed)
"""

import operator
from typing import Any, Callable, Mapping

from tradepilot.core.execution_context import dig


def _numeric(op: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def compare(actual: Any, expected: Any) -> bool:
        if isinstance(actual, bool) or not isinstance(actual, (int, float)):
            return False
        return op(actual, expected)
    return compare


def _contains(actual: Any, values: Any) -> bool:
    try:
        return actual in (values or ())
    except TypeError:
        return False


PREDICATES: dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda actual, expected: actual == expected,
    "not_equals": lambda actual, expected: actual != expected,
    "in": _contains,
    "not_in": lambda actual, values: not _contains(actual, values),
    "present": lambda actual, _: actual is not None,
    "truthy": lambda actual, _: bool(actual),
    "gt": _numeric(operator.gt),
    "gte": _numeric(operator.ge),
    "lt": _numeric(operator.lt),
    "lte": _numeric(operator.le),
}


def evaluate_rule(rule: Mapping[str, Any], data: Mapping[str, Any]) -> bool:
    predicate = PREDICATES.get(rule.get("op", "present"))
    if predicate is None:
        return False
    expected = rule["values"] if "values" in rule else rule.get("value")
    return predicate(dig(data, rule["field"]), expected)


def rule_failure_description(rule: Mapping[str, Any], data: Mapping[str, Any]) -> str:
    """Human-readable reason: the rule's description plus the offending value."""
    actual = dig(data, rule["field"])
    description = rule.get("description") or rule["id"]
    return f"{description} ({rule['field']}={actual!r})"


def failed_rules(
    rules: list[Mapping[str, Any]], data: Mapping[str, Any],
) -> list[tuple[str, str]]:
    """(rule_id, description) for every failing rule, in config order."""
    return [
        (rule["id"], rule_failure_description(rule, data))
        for rule in rules
        if not evaluate_rule(rule, data)
    ]
