"""Run Journal — persists finished runs and their tool calls.

Invariants:
    - save_run() is called once per finished run; it never alters the RunResult
    - Stored payloads are JSON-safe: non-JSON values (enums, dates, Decimals) become strings
    - get_run() raises ResourceNotFoundError for unknown ids

Design Decisions:
    - The journal stores a copy of the trace, never the live ExecutionContext
"""

import json
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradepilot.core.errors import ResourceNotFoundError
from tradepilot.models.tool_call import ToolCall
from tradepilot.models.trade_run import TradeRun
from tradepilot.services.phased_workflow import RunResult


def json_safe(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


async def save_run(db: AsyncSession, result: RunResult) -> TradeRun:
    run = TradeRun(
        id=uuid.UUID(result.run_id),
        task=result.task,
        mode=result.mode,
        final_status=result.final_status.value,
        terminal_state=result.terminal_state.value if result.terminal_state else "",
        final_output=result.final_output or "",
        reason=result.reason,
        phases=json_safe(result.phases),
        trace=json_safe(result.trace),
        llm_calls=result.llm_calls_used,
        dry_run=result.dry_run,
    )
    run.tool_calls = [
        ToolCall(
            sequence=call["sequence"],
            phase=call["phase"],
            tool_name=call["tool_name"],
            tool_input=json_safe(call.get("tool_input")),
            tool_output=json_safe(call.get("tool_output")),
            error_code=call.get("error_code"),
            auto_invoked=bool(call.get("auto_invoked")),
        )
        for call in result.tool_calls
    ]
    db.add(run)
    await db.commit()
    await db.refresh(run)
    return run


async def get_run(db: AsyncSession, run_id: uuid.UUID) -> TradeRun:
    found = await db.execute(select(TradeRun).where(TradeRun.id == run_id))
    run = found.scalar_one_or_none()
    if run is None:
        raise ResourceNotFoundError("TradeRun", str(run_id))
    return run


def run_to_dict(run: TradeRun) -> dict:
    return {
        "id": str(run.id),
        "task": run.task,
        "mode": run.mode,
        "final_status": run.final_status,
        "terminal_state": run.terminal_state,
        "final_output": run.final_output,
        "reason": run.reason,
        "phases": run.phases,
        "llm_calls": run.llm_calls,
        "dry_run": run.dry_run,
        "created_at": run.created_at.isoformat() if run.created_at else None,
        "tool_calls": [
            {
                "sequence": c.sequence,
                "phase": c.phase,
                "tool_name": c.tool_name,
                "error_code": c.error_code,
                "auto_invoked": c.auto_invoked,
            }
            for c in run.tool_calls
        ],
        "trace": run.trace,
    }
