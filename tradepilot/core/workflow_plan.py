"""Workflow Plan — declarative tool order, skip edges and recognized-error rewrites.

Invariants:
    - Steps are evaluated in order; the next required step is the first one that is
      neither done nor skipped
    - A SkipEdge fires when the value at its context path is in its value set;
      skip edges never skip the terminal tool
    - The workflow is complete once the terminal tool has been called
    - PURE: every query takes the ExecutionContext and never mutates it
    - A matched ErrorRewrite with steer_to rules out the pending steps between the
      failing tool and its target (the caller passes them back as extra skips)

Design Decisions:
    - Skip rules as data (SkipEdge) instead of string matching inside the loop:
      "structure_15m.valid in {False} ⇒ skip trend, expiry, chain" reads as one edge
    - A step may appear twice for the same tool (e.g. 15m then 5m history); done_when
      tells the two apart by the context key each one produces
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from tradepilot.core.execution_context import ExecutionContext


@dataclass(frozen=True)
class WorkflowStep:
    tool: str
    key: str = ""
    args: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    done_when: str | None = None
    hint: str = ""
    auto_invoke: bool = True

    def __post_init__(self):
        if not self.key:
            object.__setattr__(self, "key", self.tool)
        object.__setattr__(self, "args", MappingProxyType(dict(self.args)))

    def is_done(self, context: ExecutionContext) -> bool:
        if self.done_when:
            return context.has(self.done_when)
        return context.was_called(self.tool)


@dataclass(frozen=True)
class SkipEdge:
    """If context[when] ∈ values, the listed step keys are skipped."""
    when: str
    values: frozenset
    skip: tuple[str, ...]
    reason: str = ""

    def applies(self, context: ExecutionContext) -> bool:
        value = context.resolve(self.when)
        if value is None:
            return False
        try:
            return value in self.values
        except TypeError:
            return False


@dataclass(frozen=True)
class ErrorRewrite:
    """Known handler failure turned into a corrective turn instead of a run failure."""
    tool: str
    match: str
    message: str
    steer_to: str | None = None

    def matches(self, tool: str, error_message: str) -> bool:
        return tool == self.tool and self.match.lower() in (error_message or "").lower()


@dataclass(frozen=True)
class WorkflowPlan:
    name: str
    steps: tuple[WorkflowStep, ...]
    terminal_tool: str
    skip_edges: tuple[SkipEdge, ...] = ()
    error_rewrites: tuple[ErrorRewrite, ...] = ()

    def __post_init__(self):
        terminal_keys = {s.key for s in self.steps if s.tool == self.terminal_tool}
        if not terminal_keys:
            raise ValueError(f"Plan {self.name}: terminal tool is not a step")
        for edge in self.skip_edges:
            if terminal_keys & set(edge.skip):
                raise ValueError(f"Plan {self.name}: skip edge skips terminal tool")

    @property
    def tool_names(self) -> tuple[str, ...]:
        """Distinct tools in step order."""
        return tuple(dict.fromkeys(s.tool for s in self.steps))

    def step(self, key: str) -> WorkflowStep | None:
        return next((s for s in self.steps if s.key == key), None)

    def active_skip_edges(self, context: ExecutionContext) -> list[SkipEdge]:
        return [e for e in self.skip_edges if e.applies(context)]

    def skipped_steps(
        self, context: ExecutionContext, extra: Iterable[str] = (),
    ) -> set[str]:
        """Step keys skipped by active edges, plus extra keys the caller has ruled out."""
        return {k for e in self.active_skip_edges(context) for k in e.skip} | set(extra)

    def skipped_tools(
        self, context: ExecutionContext, extra: Iterable[str] = (),
    ) -> set[str]:
        """Tools whose every step is currently skipped."""
        skipped = self.skipped_steps(context, extra)
        return {
            tool for tool in self.tool_names
            if all(s.key in skipped for s in self.steps if s.tool == tool)
        }

    def skip_reason(self, tool: str, context: ExecutionContext) -> str:
        for edge in self.active_skip_edges(context):
            if any(s.tool == tool and s.key in edge.skip for s in self.steps):
                return edge.reason
        return ""

    def next_step(
        self, context: ExecutionContext, extra_skips: Iterable[str] = (),
    ) -> WorkflowStep | None:
        if self.is_complete(context):
            return None
        skipped = self.skipped_steps(context, extra_skips)
        for step in self.steps:
            if step.key in skipped or step.is_done(context):
                continue
            return step
        return None

    def is_complete(self, context: ExecutionContext) -> bool:
        return context.was_called(self.terminal_tool)

    def find_rewrite(self, tool: str, error_message: str) -> ErrorRewrite | None:
        return next(
            (r for r in self.error_rewrites if r.matches(tool, error_message)),
            None,
        )

    def steps_before(self, rewrite: ErrorRewrite, context: ExecutionContext) -> set[str]:
        """Pending step keys from the failing tool up to the rewrite's steer_to step."""
        if not rewrite.steer_to:
            return set()
        keys: set[str] = set()
        collecting = False
        for step in self.steps:
            if step.tool == rewrite.steer_to and collecting:
                break
            if step.tool == rewrite.tool:
                collecting = True
            if collecting and not step.is_done(context):
                keys.add(step.key)
        return keys
