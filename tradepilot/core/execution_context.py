"""Execution Context — run-scoped accumulator of tool outputs, call history and corrections.

Invariants:
    - One ExecutionContext per run, passed by reference; never a process-wide singleton
    - Paths are dotted with optional list indexes: "instrument.security_id", "expiries[0]"
    - resolve() returns None for any unresolvable path (never raises)
    - record_call() is the only mutation performed on behalf of a successful tool call
    - trace is append-only

Design Decisions:
    - Dataclass with field(default_factory) over a bare dict: call counts and
      correction counters live next to the values they gate
"""

import copy
import re
from dataclasses import dataclass, field
from typing import Any

from tradepilot.core.domain_types import Phase

_INDEX_RE = re.compile(r"^(?P<key>[^\[\]]*)(?P<indexes>(\[\d+\])*)$")


def parse_path(path: str) -> list[str | int]:
    """'a.b[0].c' → ['a', 'b', 0, 'c']. Raises ValueError on malformed segments."""
    parts: list[str | int] = []
    if not path:
        return parts
    for segment in path.split("."):
        match = _INDEX_RE.match(segment)
        if not match:
            raise ValueError(f"Malformed context path: {path!r}")
        if match.group("key"):
            parts.append(match.group("key"))
        for idx in re.findall(r"\[(\d+)\]", match.group("indexes")):
            parts.append(int(idx))
    return parts


def dig(data: Any, path: str) -> Any:
    """Resolve a dotted/indexed path inside nested dicts and lists."""
    current = data
    for part in parse_path(path):
        if isinstance(part, int):
            if not isinstance(current, (list, tuple)) or part >= len(current):
                return None
            current = current[part]
        else:
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]
    return current


@dataclass
class ExecutionContext:
    """Mutable state for a single run."""
    values: dict[str, Any] = field(default_factory=dict)
    called_tools: list[str] = field(default_factory=list)
    phase: Phase = Phase.PRECHECK
    correction_counts: dict[str, int] = field(default_factory=dict)
    trace: list[dict[str, Any]] = field(default_factory=list)
    run_id: str | None = None

    # -- values --------------------------------------------------------------

    def resolve(self, path: str) -> Any:
        return dig(self.values, path)

    def has(self, path: str) -> bool:
        return self.resolve(path) is not None

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value

    # -- calls ---------------------------------------------------------------

    def call_count(self, tool_name: str) -> int:
        return self.called_tools.count(tool_name)

    def was_called(self, tool_name: str) -> bool:
        return tool_name in self.called_tools

    def record_call(self, tool_name: str, outputs: dict[str, Any]) -> None:
        """Append to called tools and write produced outputs."""
        self.called_tools.append(tool_name)
        self.values.update(outputs)

    # -- corrections ---------------------------------------------------------

    def corrections_for(self, tool_name: str) -> int:
        return self.correction_counts.get(tool_name, 0)

    def increment_corrections(self, tool_name: str) -> int:
        self.correction_counts[tool_name] = self.corrections_for(tool_name) + 1
        return self.correction_counts[tool_name]

    def reset_corrections(self, tool_name: str) -> None:
        self.correction_counts.pop(tool_name, None)

    # -- trace ---------------------------------------------------------------

    def log(self, event: str, **data: Any) -> None:
        self.trace.append({"event": event, "phase": self.phase.value, **data})

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of values for guard evaluation (guards never mutate context)."""
        return copy.deepcopy(self.values)
