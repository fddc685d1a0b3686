"""Tools — catalogue listing and direct diagnostic calls through the registry.

Invariants:
    - Direct calls go through ToolRegistry.call(): same preconditions, derived
      inputs and dry-run handling as calls made by the agent loop
    - Each direct call gets a fresh ExecutionContext seeded from the request
      (context values and the tools already called)
"""

from fastapi import APIRouter, Depends, Request

from tradepilot.core.domain_types import Phase
from tradepilot.core.execution_context import ExecutionContext
from tradepilot.schemas.run import ToolCallRequest, ToolCallResponse
from tradepilot.services.run_journal import json_safe
from tradepilot.services.tool_registry import ToolRegistry

router = APIRouter(prefix="/api/v1/tools", tags=["tools"])


def get_registry(request: Request) -> ToolRegistry:
    return request.app.state.registry


@router.get("")
async def list_tools(registry: ToolRegistry = Depends(get_registry)):
    return {"dry_run": registry.dry_run, "tools": registry.describe()}


@router.post("/{name}/call", response_model=ToolCallResponse)
async def call_tool(
    name: str,
    body: ToolCallRequest,
    registry: ToolRegistry = Depends(get_registry),
):
    context = ExecutionContext(
        values=dict(body.context), phase=Phase(body.phase),
        called_tools=list(body.called_tools),
    )
    outcome = await registry.call(name, body.args, context)
    return ToolCallResponse(
        outcome=json_safe(outcome), context=json_safe(context.values),
    )
