"""Phased Workflow — PRECHECK → ANALYSIS → VALIDATION → EXECUTION → POSITION_TRACKING.

Invariants:
    - Phases run strictly in order; every transition goes through PhaseStateMachine
    - PRECHECK and POSITION_TRACKING never call the model
    - A loop only starts in a phase whose PhaseConfig allows the model and admits
      every tool of the plan; anything else is an invalid state transition (halt)
    - Every LLM phase gets its own AgentLoop, plan and conversation; the
      ExecutionContext is shared across phases of one run
    - Kill-switch halts win over everything: reported with the active phase's failure
      status, terminal STOPPED and system_halted=True
    - STOP_SYSTEM (guard or kill switch) latches this instance: later runs are refused
      until reset_halt()
    - STOP_AND_ALERT always reaches the alert sink

Design Decisions:
    - Loop failures (non-convergence, unrecognized handler error, model API failure)
      end the run as REJECTED with the phase's failure status; they are not halts
    - max_llm_calls is a reported budget: exceeding it logs a warning
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from tradepilot.core.checklist_guard import ChecklistGuard, GuardResult, invalid_mode
from tradepilot.core.domain_types import (
    FinalStatus, GuardAction, PHASE_FAILURE_STATUS, Phase, TerminalState, TradingMode,
)
from tradepilot.core.errors import (
    GuardRejectedError, InvalidTransitionError, KillSwitchTriggeredError,
    TradePilotError,
)
from tradepilot.core.execution_context import ExecutionContext
from tradepilot.core.kill_switch import KillSwitchState, KillSwitchVerdict
from tradepilot.core.phase_machine import (
    PhaseConfig, PhaseStateMachine, default_phase_configs,
)
from tradepilot.core.workflow_plan import WorkflowPlan
from tradepilot.services.agent_loop import AgentLoop, LoopResult
from tradepilot.services.system_prompt import build_system_prompt
from tradepilot.services.tool_registry import ToolRegistry
from tradepilot.services.workflow_plans import (
    EXECUTION_PLAN, VALIDATION_PLAN, plan_for_mode,
)

logger = logging.getLogger(__name__)
alert_logger = logging.getLogger("tradepilot.alerts")

AlertSink = Callable[[str, dict], None]
KillStateProvider = Callable[[], Mapping[str, Any]]


def log_alert(message: str, details: dict) -> None:
    """Default alert sink: CRITICAL on the tradepilot.alerts logger."""
    alert_logger.critical(
        message,
        extra={"run_id": details.get("run_id"), "phase": details.get("phase")},
    )


@dataclass
class RunResult:
    run_id: str
    task: str
    mode: str
    final_status: FinalStatus | None = None
    terminal_state: TerminalState | None = None
    final_output: str = ""
    reason: str | None = None
    phases: dict[str, dict] = field(default_factory=dict)
    failed_rules: list[str] = field(default_factory=list)
    system_halted: bool = False
    alert: dict | None = None
    llm_calls_used: int = 0
    llm_calls_budget: int = 0
    dry_run: bool = True
    tool_calls: list[dict] = field(default_factory=list)
    outputs: dict[str, Any] = field(default_factory=dict)
    trace: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "task": self.task,
            "mode": self.mode,
            "final_status": self.final_status.value if self.final_status else None,
            "terminal_state": (
                self.terminal_state.value if self.terminal_state else None
            ),
            "final_output": self.final_output,
            "reason": self.reason,
            "phases": self.phases,
            "failed_rules": self.failed_rules,
            "system_halted": self.system_halted,
            "alert": self.alert,
            "llm_calls": {"used": self.llm_calls_used, "budget": self.llm_calls_budget},
            "dry_run": self.dry_run,
            "outputs": self.outputs,
            "tool_calls": self.tool_calls,
            "trace": self.trace,
        }


class _Stop(Exception):
    """Internal: the run reached a terminal state; unwinds to run()."""


class PhasedWorkflow:
    """Owns the phase sequence for one trading workflow instance."""

    def __init__(
        self,
        client,
        registry: ToolRegistry,
        guard: ChecklistGuard,
        mode: TradingMode | str = TradingMode.OPTIONS_INTRADAY,
        model: str = "claude-sonnet-4-5",
        max_tokens: int = 2048,
        correction_threshold: int = 3,
        max_llm_calls: int = 13,
        phase_configs: dict[Phase, PhaseConfig] | None = None,
        kill_state_provider: KillStateProvider | None = None,
        alert_sink: AlertSink | None = None,
    ):
        self.client = client
        self.registry = registry
        self.guard = guard
        self.mode = mode.value if isinstance(mode, TradingMode) else str(mode)
        self.model = model
        self.max_tokens = max_tokens
        self.correction_threshold = correction_threshold
        self.max_llm_calls = max_llm_calls
        self.phase_configs = phase_configs or default_phase_configs()
        self.kill_state_provider = kill_state_provider
        self.alert_sink = alert_sink or log_alert
        self.halted_reason: str | None = None

    def reset_halt(self) -> None:
        logger.warning(f"System halt cleared (was: {self.halted_reason})")
        self.halted_reason = None

    # ─── Entry point ──────────────────────────────────────────────

    async def run(
        self, task: str, context: Mapping[str, Any] | None = None,
    ) -> RunResult:
        run_id = str(uuid.uuid4())
        ctx = ExecutionContext(values=dict(context or {}), run_id=run_id)
        machine = PhaseStateMachine()
        result = RunResult(
            run_id=run_id, task=task, mode=self.mode,
            llm_calls_budget=self.max_llm_calls, dry_run=self.registry.dry_run,
        )
        extra = {"run_id": run_id}

        if self.halted_reason:
            logger.error(f"Run refused, system halted: {self.halted_reason}", extra=extra)
            self._refuse_halted(result, machine)
        else:
            logger.info(f"Run started ({self.mode})", extra=extra)
            try:
                await self._run_phases(task, ctx, machine, result)
            except _Stop:
                pass
            except KillSwitchTriggeredError as e:
                self._halt(result, machine, ctx, e.reason, e.condition_id)
            except InvalidTransitionError as e:
                self._halt(result, machine, ctx, e.message, "invalid_state_transition")
            except GuardRejectedError as e:
                self._guard_rejected(result, machine, ctx, e.guard_result)
            except TradePilotError as e:
                self._loop_failed(result, machine, ctx, e)

        self._finish(result, ctx)
        logger.info(
            f"Run finished: {result.final_status.value}",
            extra={**extra, "final_status": result.final_status.value},
        )
        return result

    async def _run_phases(
        self, task: str, ctx: ExecutionContext, machine: PhaseStateMachine,
        result: RunResult,
    ) -> None:
        # PRECHECK
        self._enter(ctx, Phase.PRECHECK)
        verdict = self._check_kill(ctx)
        if verdict.should_halt:
            raise KillSwitchTriggeredError(verdict.reason, verdict.condition_id)
        self._gate(machine, self.guard.run_global_precheck(ctx.snapshot()), result, ctx)

        # ANALYSIS
        self._enter(ctx, Phase.ANALYSIS)
        plan = plan_for_mode(self.mode)
        if plan is None:
            self._gate(machine, invalid_mode(self.mode), result, ctx)
        await self._run_loop(Phase.ANALYSIS, plan, task, ctx, result)
        trade_plan = ctx.get("trade_plan")
        if isinstance(trade_plan, dict) and trade_plan.get("action") == "NO_TRADE":
            self._no_trade(result, machine, ctx, trade_plan)
        self._gate(
            machine,
            self.guard.run_analysis_checks(self.mode, trade_plan or {}, ctx.snapshot()),
            result, ctx,
        )

        # VALIDATION
        self._enter(ctx, Phase.VALIDATION)
        await self._run_loop(
            Phase.VALIDATION, VALIDATION_PLAN,
            f"Validate and size this trade plan:\n{_as_json(trade_plan)}", ctx, result,
        )
        executable_plan = ctx.get("executable_plan") or {}
        self._gate(
            machine, self.guard.run_validation_checks(executable_plan, ctx.snapshot()),
            result, ctx,
        )

        # EXECUTION: pre-flight, then the order
        self._enter(ctx, Phase.EXECUTION)
        preflight = self.guard.run_execution_checks({
            **ctx.snapshot(),
            "trade_approved": True,
            "duplicate_order": self._duplicate_order(ctx, executable_plan),
            "order_type": executable_plan.get("order_type", ctx.get("order_type", "SUPER")),
        })
        if not preflight.passed:
            self._gate(machine, preflight, result, ctx)
        await self._run_loop(
            Phase.EXECUTION, EXECUTION_PLAN,
            f"Place the order for this approved plan:\n{_as_json(executable_plan)}",
            ctx, result,
        )
        self._gate(machine, preflight, result, ctx)

        # POSITION_TRACKING
        self._enter(ctx, Phase.POSITION_TRACKING)
        order = ctx.get("order") or {}
        registered = order.get("stop_loss_registered") if isinstance(order, dict) else None
        if registered is None:
            registered = ctx.resolve("executable_plan.stop_loss") is not None
        position = self.guard.run_position_checks({
            **ctx.snapshot(), "stop_loss_registered": registered,
        })
        if not position.passed:
            self._gate(machine, position, result, ctx)
        self._record_guard(position, result, ctx)
        result.terminal_state = machine.complete()
        result.final_status = FinalStatus.COMPLETED
        result.final_output = result.final_output or f"Order placed: {ctx.get('order_id')}"

    # ─── Phase helpers ────────────────────────────────────────────

    def _enter(self, ctx: ExecutionContext, phase: Phase) -> None:
        ctx.phase = phase
        ctx.log("phase_enter")
        logger.info(
            f"Entering {phase.value}", extra={"run_id": ctx.run_id, "phase": phase.value},
        )

    async def _run_loop(
        self, phase: Phase, plan: WorkflowPlan, task: str, ctx: ExecutionContext,
        result: RunResult,
    ) -> None:
        config = self.phase_configs[phase]
        if not config.llm_allowed:
            raise InvalidTransitionError(f"LLM calls are not allowed in {phase.value}")
        blocked = config.disallowed_tools(plan.tool_names)
        if blocked:
            raise InvalidTransitionError(
                f"Tools not allowed in {phase.value}: {', '.join(blocked)}",
            )
        loop = AgentLoop(
            self.client, self.registry, plan,
            model=self.model, max_tokens=self.max_tokens,
            max_steps=config.max_steps,
            correction_threshold=self.correction_threshold,
            supervisor=self._supervise,
        )
        entry = {"status": "running", "iterations": 0}
        result.phases[phase.value] = entry
        try:
            await loop.run(task, ctx, build_system_prompt(phase, plan))
        except TradePilotError:
            entry["status"] = "error"
            raise
        finally:
            self._merge_loop(loop.last_result, entry, result)

    def _merge_loop(
        self, outcome: LoopResult | None, entry: dict, result: RunResult,
    ) -> None:
        if outcome is None:
            return
        entry["iterations"] = outcome.llm_calls
        if outcome.auto_invoked:
            entry["auto_invoked"] = list(outcome.auto_invoked)
        result.llm_calls_used += outcome.llm_calls
        offset = len(result.tool_calls)
        result.tool_calls.extend(
            {**call, "sequence": offset + call["sequence"]}
            for call in outcome.tool_calls
        )
        if outcome.final_output:
            result.final_output = outcome.final_output

    def _gate(
        self, machine: PhaseStateMachine, guard_result: GuardResult,
        result: RunResult, ctx: ExecutionContext,
    ) -> None:
        """Advance on a passed guard; otherwise raise GuardRejectedError."""
        self._record_guard(guard_result, result, ctx)
        machine.advance(guard_result)
        if not guard_result.passed:
            raise GuardRejectedError(guard_result)

    def _guard_rejected(
        self, result: RunResult, machine: PhaseStateMachine, ctx: ExecutionContext,
        guard_result: GuardResult,
    ) -> None:
        phase = guard_result.phase
        result.final_status = PHASE_FAILURE_STATUS[phase]
        result.terminal_state = machine.terminal
        result.reason = guard_result.reason
        result.final_output = f"{phase.value} checks failed: {guard_result.reason}"
        result.failed_rules = [f.rule_id for f in guard_result.failures]

        if guard_result.action == GuardAction.STOP_SYSTEM:
            result.system_halted = True
            self.halted_reason = guard_result.reason
        if guard_result.action == GuardAction.STOP_AND_ALERT:
            self._alert(result, ctx, guard_result.reason)

    def _record_guard(
        self, guard_result: GuardResult, result: RunResult, ctx: ExecutionContext,
    ) -> None:
        entry = result.phases.setdefault(
            guard_result.phase.value, {"status": "running", "iterations": 0},
        )
        entry["status"] = "passed" if guard_result.passed else "failed"
        entry["guard"] = guard_result.to_dict()
        if not guard_result.passed:
            entry["reason"] = guard_result.reason
        ctx.log(
            "guard", passed=guard_result.passed, action=guard_result.action.value,
            failed_rules=[f.rule_id for f in guard_result.failures],
        )

    def _no_trade(
        self, result: RunResult, machine: PhaseStateMachine, ctx: ExecutionContext,
        trade_plan: dict,
    ) -> None:
        reason = trade_plan.get("reason") or "Advisor recommended NO_TRADE"
        machine.terminate(TerminalState.NO_TRADE, reason)
        result.phases[Phase.ANALYSIS.value].update({"status": "no_trade", "reason": reason})
        result.final_status = FinalStatus.NO_TRADE
        result.terminal_state = TerminalState.NO_TRADE
        result.reason = reason
        ctx.log("no_trade", reason=reason)
        raise _Stop()

    # ─── Failure paths ────────────────────────────────────────────

    def _halt(
        self, result: RunResult, machine: PhaseStateMachine, ctx: ExecutionContext,
        reason: str, condition_id: str | None,
    ) -> None:
        phase = ctx.phase
        if not machine.is_terminal:
            machine.terminate(TerminalState.STOPPED, reason)
        result.final_status = PHASE_FAILURE_STATUS[phase]
        result.terminal_state = TerminalState.STOPPED
        result.reason = reason
        result.final_output = f"Kill switch triggered: {reason}"
        result.failed_rules = [condition_id] if condition_id else []
        result.system_halted = True
        entry = result.phases.setdefault(phase.value, {"iterations": 0})
        entry.update({"status": "halted", "reason": reason})
        self.halted_reason = reason
        ctx.log("system_halted", condition_id=condition_id, reason=reason)
        self._alert(result, ctx, reason)

    def _loop_failed(
        self, result: RunResult, machine: PhaseStateMachine, ctx: ExecutionContext,
        error: TradePilotError,
    ) -> None:
        phase = ctx.phase
        logger.error(
            f"{phase.value} failed: {error.message}",
            extra={"run_id": ctx.run_id, "phase": phase.value, "error_code": error.code},
        )
        if not machine.is_terminal:
            machine.terminate(TerminalState.REJECTED, error.message)
        result.final_status = PHASE_FAILURE_STATUS[phase]
        result.terminal_state = TerminalState.REJECTED
        result.reason = error.message
        result.final_output = error.message
        result.failed_rules = [error.code]
        entry = result.phases.setdefault(phase.value, {"iterations": 0})
        entry.update({"status": "error", "reason": error.message})
        ctx.log("phase_error", error_code=error.code, message=error.message)

    def _refuse_halted(self, result: RunResult, machine: PhaseStateMachine) -> None:
        reason = f"System halted: {self.halted_reason}"
        machine.terminate(TerminalState.STOPPED, reason)
        result.final_status = FinalStatus.PRECHECK_FAILED
        result.terminal_state = TerminalState.STOPPED
        result.reason = reason
        result.final_output = reason
        result.failed_rules = ["system_halted"]
        result.system_halted = True
        result.phases[Phase.PRECHECK.value] = {
            "status": "failed", "iterations": 0, "reason": reason,
        }

    def _alert(self, result: RunResult, ctx: ExecutionContext, reason: str) -> None:
        details = {
            "run_id": ctx.run_id,
            "phase": ctx.phase.value,
            "reason": reason,
            "failed_rules": list(result.failed_rules),
        }
        result.alert = details
        self.alert_sink(f"ALERT [{ctx.phase.value}] {reason}", details)

    # ─── Kill switch ──────────────────────────────────────────────

    def _kill_state(self, ctx: ExecutionContext) -> KillSwitchState:
        data = dict(ctx.values)
        if self.kill_state_provider is not None:
            data.update(self.kill_state_provider())
        return KillSwitchState.from_mapping(data)

    def _check_kill(self, ctx: ExecutionContext) -> KillSwitchVerdict:
        return self.guard.check_system_kill_conditions(self._kill_state(ctx))

    def _supervise(self, ctx: ExecutionContext) -> KillSwitchVerdict:
        return self._check_kill(ctx)

    @staticmethod
    def _duplicate_order(ctx: ExecutionContext, executable_plan: Mapping) -> bool:
        if ctx.get("duplicate_order"):
            return True
        security_id = executable_plan.get("security_id")
        positions = ctx.get("open_positions") or []
        return security_id is not None and any(
            isinstance(p, dict) and p.get("security_id") == security_id
            for p in positions
        )

    # ─── Result assembly ──────────────────────────────────────────

    def _finish(self, result: RunResult, ctx: ExecutionContext) -> None:
        result.trace = list(ctx.trace)
        result.outputs = {
            key: ctx.get(key)
            for key in ("trade_plan", "executable_plan", "order_id")
            if ctx.get(key) is not None
        }
        if result.llm_calls_used > self.max_llm_calls:
            logger.warning(
                f"LLM call budget exceeded: {result.llm_calls_used}/{self.max_llm_calls}",
                extra={"run_id": result.run_id},
            )


def _as_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str, indent=2)
