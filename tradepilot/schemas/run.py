"""Run Schemas — Pydantic models for the run and tool REST boundaries.

Invariants:
    - RunCreate.task: 3-2000 chars, stripped, non-empty
    - RunCreate.context carries host state (market/broker flags, kill-switch inputs)
    - Responses mirror RunResult.to_dict() without the raw trace

Design Decisions:
    - context as a free-form dict: the checklist rule set decides which keys matter
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class RunCreate(BaseModel):
    """Start a phased workflow run."""
    task: str = Field(min_length=3, max_length=2_000)
    context: dict[str, Any] = Field(default_factory=dict)

    @field_validator("task")
    @classmethod
    def strip_task(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("task cannot be empty or whitespace")
        return v


class LlmCalls(BaseModel):
    used: int
    budget: int


class RunResponse(BaseModel):
    """Outcome of one run."""
    run_id: str
    final_status: str
    terminal_state: str | None
    final_output: str
    reason: str | None = None
    phases: dict[str, dict[str, Any]]
    failed_rules: list[str] = []
    system_halted: bool = False
    alert: dict[str, Any] | None = None
    llm_calls: LlmCalls
    dry_run: bool
    outputs: dict[str, Any] = {}


class ToolCallRequest(BaseModel):
    """Direct (diagnostic) tool call through the registry."""
    args: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)
    called_tools: list[str] = Field(default_factory=list)
    phase: str = Field("analysis", pattern=r"^(precheck|analysis|validation|execution|position_tracking)$")


class ToolCallResponse(BaseModel):
    outcome: dict[str, Any]
    context: dict[str, Any]
