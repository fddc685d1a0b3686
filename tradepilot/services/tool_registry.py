"""Tool Registry — contract-checked execution of tool handlers.

Invariants:
    - Names are unique; lookup is a dict access by canonical (dotted) name or API name
    - call() never raises for tool-level failures: UnknownTool, PreconditionFailed,
      InvalidArguments and HandlerError all come back as {"status": "error", ...} outcomes
    - Derived inputs REPLACE model-supplied values before validation and execution
    - Failed calls leave the ExecutionContext untouched; successful calls record the call
      and write the descriptor's produced outputs
    - In dry-run mode, descriptors with side_effects never reach their handler

Design Decisions:
    - Explicit register() over auto-discovery: every tool→handler pairing is visible
      at the call site that builds the registry (services/tool_catalog.py)
    - Handlers may be sync or async and may signal failure by raising or by returning
      {"status": "error", "message": ...}; both become HANDLER_ERROR
"""

import inspect
import logging
import uuid
from typing import Any, Callable, Iterable

from tradepilot.core.enforce_dependencies import (
    collect_unmet_preconditions, resolve_arguments, resolve_outputs,
)
from tradepilot.core.errors import (
    DuplicateToolError, ErrorContext, HandlerError, PreconditionFailedError,
    ToolValidationError, TradePilotError, UnknownToolError,
)
from tradepilot.core.execution_context import ExecutionContext
from tradepilot.core.tool_descriptor import ToolDescriptor, from_api_name

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Any]  # sync, or returning an Awaitable


def simulated_result(descriptor: ToolDescriptor, args: dict[str, Any]) -> dict:
    """Outcome used in place of a write tool's handler during dry runs."""
    return {
        "status": "simulated",
        "dry_run": True,
        "order_id": f"DRYRUN-{uuid.uuid4().hex[:12]}",
        "tool": descriptor.name,
        "request": args,
    }


class ToolRegistry:
    """Holds (descriptor, handler) entries and executes them under their contracts."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run
        self._entries: dict[str, tuple[ToolDescriptor, Handler]] = {}

    # ─── Registration & lookup ────────────────────────────────────

    def register(self, descriptor: ToolDescriptor, handler: Handler) -> None:
        if descriptor.name in self._entries:
            raise DuplicateToolError(descriptor.name)
        self._entries[descriptor.name] = (descriptor, handler)

    def canonical_name(self, name: str) -> str:
        return name if name in self._entries else from_api_name(name)

    def descriptor(self, name: str) -> ToolDescriptor | None:
        entry = self._entries.get(self.canonical_name(name))
        return entry[0] if entry else None

    def names(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, name: str) -> bool:
        return self.canonical_name(name) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def tool_schemas(self, names: Iterable[str] | None = None) -> list[dict]:
        """Anthropic tool definitions, optionally restricted to names (in that order)."""
        selected = self.names() if names is None else [
            n for n in names if n in self._entries
        ]
        return [self._entries[n][0].to_anthropic_tool() for n in selected]

    def describe(self) -> list[dict]:
        return [d.to_schema() for d, _ in self._entries.values()]

    # ─── Execution ────────────────────────────────────────────────

    async def call(
        self,
        name: str,
        args: dict[str, Any] | None = None,
        context: ExecutionContext | None = None,
    ) -> dict:
        """Check preconditions, resolve arguments, run the handler, record outputs."""
        context = context if context is not None else ExecutionContext()
        canonical = self.canonical_name(name)
        err_ctx = ErrorContext(
            run_id=context.run_id, tool_name=canonical, phase=context.phase.value,
        )
        try:
            descriptor, handler = self._lookup(canonical, err_ctx)
            resolved = self._prepare_arguments(descriptor, args or {}, context, err_ctx)
            result = await self._invoke(descriptor, handler, resolved, err_ctx)
        except TradePilotError as e:
            logger.warning(
                f"Tool call rejected: {e.message}",
                extra={
                    "tool_name": canonical, "error_code": e.code,
                    "run_id": context.run_id,
                },
            )
            return e.to_tool_result()

        outputs = resolve_outputs(descriptor, resolved, result)
        context.record_call(descriptor.name, outputs)
        logger.info(
            "Tool call succeeded",
            extra={"tool_name": descriptor.name, "run_id": context.run_id},
        )
        return {
            "status": "success",
            "tool": descriptor.name,
            "args": resolved,
            "result": result,
        }

    def _lookup(
        self, name: str, err_ctx: ErrorContext,
    ) -> tuple[ToolDescriptor, Handler]:
        entry = self._entries.get(name)
        if entry is None:
            raise UnknownToolError(name, err_ctx)
        return entry

    def _prepare_arguments(
        self,
        descriptor: ToolDescriptor,
        args: dict[str, Any],
        context: ExecutionContext,
        err_ctx: ErrorContext,
    ) -> dict[str, Any]:
        unmet = collect_unmet_preconditions(descriptor, context)
        resolved, unresolved = resolve_arguments(descriptor, args, context)
        unmet += unresolved
        if unmet:
            raise PreconditionFailedError(descriptor.name, unmet, err_ctx)
        errors = descriptor.validate_input(resolved)
        if errors:
            raise ToolValidationError(descriptor.name, errors, err_ctx)
        return resolved

    async def _invoke(
        self,
        descriptor: ToolDescriptor,
        handler: Handler,
        args: dict[str, Any],
        err_ctx: ErrorContext,
    ) -> Any:
        if self.dry_run and descriptor.side_effects:
            logger.info(
                "Dry run: simulated write tool",
                extra={"tool_name": descriptor.name, "run_id": err_ctx.run_id},
            )
            return simulated_result(descriptor, args)

        try:
            result = handler(dict(args))
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(
                f"Handler raised: {e}",
                extra={"tool_name": descriptor.name, "run_id": err_ctx.run_id},
                exc_info=True,
            )
            raise HandlerError(
                descriptor.name, str(e) or type(e).__name__, context=err_ctx,
            ) from e

        if isinstance(result, dict) and result.get("status") == "error":
            raise HandlerError(
                descriptor.name,
                result.get("message") or result.get("error") or "handler returned an error",
                handler_code=result.get("error_code"),
                context=err_ctx,
            )
        errors = descriptor.validate_output(result)
        if errors:
            raise HandlerError(
                descriptor.name,
                f"output contract violated: {'; '.join(errors)}",
                handler_code="INVALID_OUTPUT",
                context=err_ctx,
            )
        return result
