"""Agent Loop — plan-driven tool orchestration with correction and forced convergence.

Invariants:
    - One model call per step; at most one model-requested tool executes per turn
      (extra tool_use blocks are stripped from history and reported back)
    - Only the plan's next required tool may run; skipped, out-of-order and
      unknown tools are refused without reaching a handler
    - PRECONDITION_FAILED, INVALID_ARGUMENTS and UNKNOWN_TOOL are recovered with a
      corrective turn; HANDLER_ERROR is recovered only through a plan ErrorRewrite
    - Each non-compliant turn increments the next tool's correction counter; once it
      has reached the threshold, the next non-compliant turn makes the host call the
      tool itself (synthetic tool_use + tool_result) and resets the counter
    - Correction counters for the plan and the final answer start at zero on every
      run and are cleared when it finishes
    - The supervisor runs after every executed tool call; a halt raises
      KillSwitchTriggeredError
    - Exhausting max_steps raises NonConvergenceError

Design Decisions:
    - Non-streaming create_message(): every turn is inspected before anything is
      appended to history
    - Per-run mutable state lives in _Run so one AgentLoop can serve many runs
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from tradepilot.core.classify_response import classify_response
from tradepilot.core.conversation_state import ConversationState
from tradepilot.core.correction_messages import (
    FINAL_ANSWER_MESSAGE, build_correction_message, build_multi_call_message,
    build_rewrite_message, build_skipped_tool_message, build_tool_error_message,
    format_recommendation,
)
from tradepilot.core.domain_types import ResponseKind
from tradepilot.core.errors import (
    ErrorContext, HandlerError, KillSwitchTriggeredError, NonConvergenceError,
    UnknownToolError,
)
from tradepilot.core.execution_context import ExecutionContext
from tradepilot.core.kill_switch import KillSwitchVerdict
from tradepilot.core.workflow_plan import WorkflowPlan, WorkflowStep
from tradepilot.services.agent_loop_helpers import (
    refused_outcome, response_text, serialize_content, synthetic_tool_use,
    text_block, tool_result_block, tool_use_blocks, usage_tokens,
)
from tradepilot.services.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

FINAL_ANSWER = "final_answer"
RECOVERABLE_CODES = frozenset({
    "PRECONDITION_FAILED", "INVALID_ARGUMENTS", "UNKNOWN_TOOL",
})

Supervisor = Callable[[ExecutionContext], KillSwitchVerdict]


@dataclass
class LoopResult:
    final_output: str = ""
    llm_calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    tool_calls: list[dict] = field(default_factory=list)
    results: dict[str, Any] = field(default_factory=dict)
    auto_invoked: list[str] = field(default_factory=list)
    forced_final: bool = False


@dataclass
class _Run:
    conversation: ConversationState
    context: ExecutionContext
    result: LoopResult
    ruled_out: set[str] = field(default_factory=set)
    step: int = 0


class AgentLoop:
    """Drives one phase: model turns until the plan's terminal tool ran and a
    plain-text answer came back."""

    def __init__(
        self,
        client,
        registry: ToolRegistry,
        plan: WorkflowPlan,
        model: str = "claude-sonnet-4-5",
        max_tokens: int = 2048,
        max_steps: int = 30,
        correction_threshold: int = 3,
        supervisor: Supervisor | None = None,
    ):
        self.client = client
        self.registry = registry
        self.plan = plan
        self.model = model
        self.max_tokens = max_tokens
        self.max_steps = max_steps
        self.threshold = correction_threshold
        self.supervisor = supervisor
        self.last_result: LoopResult | None = None

    async def run(
        self, task: str, context: ExecutionContext, system: str,
    ) -> LoopResult:
        run = _Run(ConversationState(system), context, LoopResult())
        self.last_result = run.result
        self._reset_counters(context)
        run.conversation.add_user(task)
        tools = self.registry.tool_schemas(self.plan.tool_names)

        for step in range(1, self.max_steps + 1):
            run.step = step
            response = await self._call_model(run, tools)
            calls = tool_use_blocks(response)
            if calls:
                final = await self._handle_tool_turn(run, response, calls)
            else:
                final = await self._handle_text_turn(run, response)
            if final is not None:
                run.result.final_output = final
                self._reset_counters(context)
                logger.info(
                    f"Plan {self.plan.name} finished in {step} steps",
                    extra=self._log_extra(run),
                )
                return run.result

        pending = self._next_step(run)
        context.log("non_convergence", max_steps=self.max_steps)
        raise NonConvergenceError(
            self.max_steps, pending.tool if pending else None, self._err_ctx(run),
        )

    # ─── Model turns ──────────────────────────────────────────────

    async def _call_model(self, run: _Run, tools: list[dict]):
        response = await self.client.create_message(
            model=self.model,
            max_tokens=self.max_tokens,
            system=run.conversation.system,
            tools=tools,
            messages=run.conversation.as_api_messages(),
            context=self._err_ctx(run),
        )
        run.result.llm_calls += 1
        input_tokens, output_tokens = usage_tokens(response)
        run.result.input_tokens += input_tokens
        run.result.output_tokens += output_tokens
        return response

    async def _handle_tool_turn(self, run: _Run, response, calls) -> str | None:
        first, extra = calls[0], calls[1:]
        run.conversation.add_assistant(serialize_content(response, keep_tool_id=first.id))
        tool_name = self.registry.canonical_name(first.name)

        texts: list[str] = []
        outcome, compliant = await self._dispatch(
            run, tool_name, dict(first.input or {}), texts,
        )
        results = [tool_result_block(first.id, outcome)]
        if extra:
            discarded = [self.registry.canonical_name(b.name) for b in extra]
            run.context.log("discarded_tool_calls", step=run.step, tools=discarded)
            texts.append(build_multi_call_message(tool_name, discarded))

        if compliant:
            self._send(run, results, texts)
            return None
        return await self._steer(run, results, texts, ResponseKind.INCOMPLETE)

    async def _handle_text_turn(self, run: _Run, response) -> str | None:
        text = response_text(response)
        kind = classify_response(text, self.plan.is_complete(run.context))
        run.conversation.add_assistant(serialize_content(response))
        if kind == ResponseKind.FINAL:
            return text.strip()
        run.context.log("non_compliant_response", step=run.step, kind=kind.value)
        return await self._steer(run, [], [], kind)

    # ─── Tool dispatch ────────────────────────────────────────────

    async def _dispatch(
        self, run: _Run, tool_name: str, args: dict, texts: list[str],
    ) -> tuple[dict, bool]:
        """Run the requested tool if it is the next step. Returns (outcome, compliant)."""
        expected = self._next_step(run)
        expected_tool = expected.tool if expected else None

        if tool_name not in self.plan.tool_names:
            outcome = UnknownToolError(
                tool_name, self._err_ctx(run, tool_name),
            ).to_tool_result()
            texts.append(build_tool_error_message(outcome, expected_tool))
            return outcome, False

        if tool_name in self.plan.skipped_tools(run.context, run.ruled_out):
            reason = (
                self.plan.skip_reason(tool_name, run.context)
                or "That step has been ruled out."
            )
            texts.append(build_skipped_tool_message(tool_name, reason, expected_tool))
            return refused_outcome(
                tool_name, "TOOL_SKIPPED", f"{tool_name} is skipped in this run.",
            ), False

        if expected is None or tool_name != expected_tool:
            texts.append(build_skipped_tool_message(
                tool_name, "It is not the next step.", expected_tool,
            ))
            return refused_outcome(
                tool_name, "OUT_OF_ORDER", f"{tool_name} is not the next step.",
            ), False

        args.update(expected.args)
        outcome = await self._execute(run, tool_name, args, auto=False)
        return outcome, self._handle_outcome(run, tool_name, outcome, texts)

    async def _execute(
        self, run: _Run, tool_name: str, args: dict, auto: bool,
    ) -> dict:
        outcome = await self.registry.call(tool_name, args, run.context)
        self._record(run, tool_name, args, outcome, auto)
        self._supervise(run, tool_name)
        return outcome

    def _handle_outcome(
        self, run: _Run, tool_name: str, outcome: dict, texts: list[str],
    ) -> bool:
        """Turn an error outcome into corrective text. Returns True on success."""
        if outcome.get("status") != "error":
            run.context.reset_corrections(tool_name)
            return True

        code = outcome.get("error_code")
        message = outcome.get("message", "")
        if code == "HANDLER_ERROR":
            rewrite = self.plan.find_rewrite(tool_name, message)
            if rewrite is None:
                raise HandlerError(
                    tool_name,
                    message.removeprefix(f"ERROR: {tool_name} failed: "),
                    handler_code=outcome.get("handler_code"),
                    context=self._err_ctx(run, tool_name),
                )
            run.ruled_out |= self.plan.steps_before(rewrite, run.context)
            run.context.log("error_rewrite", step=run.step, tool=tool_name)
            texts.append(build_rewrite_message(rewrite.message, rewrite.steer_to))
            return False

        if code in RECOVERABLE_CODES:
            pending = self._next_step(run)
            texts.append(build_tool_error_message(
                outcome, pending.tool if pending else None,
            ))
            return False
        raise HandlerError(
            tool_name, f"unexpected outcome code {code}",
            context=self._err_ctx(run, tool_name),
        )

    # ─── Correction & forced convergence ──────────────────────────

    async def _steer(
        self, run: _Run, results: list[dict], texts: list[str], kind: ResponseKind,
    ) -> str | None:
        """Answer a non-compliant turn. Returns the final output when forced to finish."""
        step = self._next_step(run)

        if step is None:
            if run.context.corrections_for(FINAL_ANSWER) >= self.threshold:
                return self._forced_final(run)
            texts.append(FINAL_ANSWER_MESSAGE)
            run.context.increment_corrections(FINAL_ANSWER)
            self._send(run, results, texts)
            return None

        if step.auto_invoke and run.context.corrections_for(step.tool) >= self.threshold:
            await self._auto_invoke(run, step, results, texts)
        else:
            if not texts:
                texts.append(build_correction_message(
                    step, self._descriptor(run, step.tool), run.context, kind,
                ))
            count = run.context.increment_corrections(step.tool)
            run.context.log(
                "correction", step=run.step, tool=step.tool,
                kind=kind.value, count=count,
            )
            logger.info(
                f"Correction {count}/{self.threshold} for {step.tool}",
                extra=self._log_extra(run, step.tool),
            )
        self._send(run, results, texts)
        return None

    async def _auto_invoke(
        self, run: _Run, step: WorkflowStep, results: list[dict], texts: list[str],
    ) -> None:
        logger.warning(
            f"Forcing {step.tool} after {self.threshold} corrections",
            extra=self._log_extra(run, step.tool),
        )
        args = dict(step.args)
        outcome = await self._execute(run, step.tool, args, auto=True)
        block = synthetic_tool_use(step.tool, outcome.get("args", args), run.step)
        run.conversation.attach_to_assistant(block)
        results.append(tool_result_block(block["id"], outcome))
        run.context.reset_corrections(step.tool)
        run.result.auto_invoked.append(step.tool)
        self._handle_outcome(run, step.tool, outcome, texts)

    def _forced_final(self, run: _Run) -> str:
        run.result.forced_final = True
        run.context.log("forced_final_answer", step=run.step)
        return format_recommendation(run.result.results.get(self.plan.terminal_tool))

    # ─── Bookkeeping ──────────────────────────────────────────────

    def _reset_counters(self, context: ExecutionContext) -> None:
        """Correction counts never carry over between phases sharing a context."""
        context.reset_corrections(FINAL_ANSWER)
        for tool in self.plan.tool_names:
            context.reset_corrections(tool)

    def _send(self, run: _Run, results: list[dict], texts: list[str]) -> None:
        run.conversation.add_user([*results, *(text_block(t) for t in texts)])

    def _record(
        self, run: _Run, tool_name: str, args: dict, outcome: dict, auto: bool,
    ) -> None:
        ok = outcome.get("status") != "error"
        if ok:
            run.result.results[tool_name] = outcome.get("result")
        run.result.tool_calls.append({
            "sequence": len(run.result.tool_calls) + 1,
            "phase": run.context.phase.value,
            "tool_name": tool_name,
            "tool_input": outcome.get("args", args),
            "tool_output": outcome.get("result") if ok else outcome,
            "error_code": outcome.get("error_code"),
            "auto_invoked": auto,
        })
        run.context.log(
            "tool_call", step=run.step, tool=tool_name,
            status=outcome.get("status"), error_code=outcome.get("error_code"),
            auto_invoked=auto,
        )

    def _supervise(self, run: _Run, tool_name: str) -> None:
        if self.supervisor is None:
            return
        verdict = self.supervisor(run.context)
        if verdict.should_halt:
            run.context.log(
                "kill_switch", step=run.step, tool=tool_name,
                condition_id=verdict.condition_id, reason=verdict.reason,
            )
            raise KillSwitchTriggeredError(
                verdict.reason, verdict.condition_id, self._err_ctx(run, tool_name),
            )

    def _descriptor(self, run: _Run, tool_name: str):
        descriptor = self.registry.descriptor(tool_name)
        if descriptor is None:
            raise UnknownToolError(tool_name, self._err_ctx(run, tool_name))
        return descriptor

    def _next_step(self, run: _Run) -> WorkflowStep | None:
        return self.plan.next_step(run.context, run.ruled_out)

    def _err_ctx(self, run: _Run, tool_name: str | None = None) -> ErrorContext:
        return ErrorContext(
            run_id=run.context.run_id, tool_name=tool_name,
            phase=run.context.phase.value, step=run.step,
        )

    def _log_extra(self, run: _Run, tool_name: str | None = None) -> dict:
        return {
            "run_id": run.context.run_id, "phase": run.context.phase.value,
            "step": run.step, "tool_name": tool_name,
        }
