"""Checklist Guard — phase-scoped safety checklists plus the system kill-switch monitor.

Invariants:
    - Every run_* call returns a fresh, frozen GuardResult; nothing is cached or mutated
    - passed=True ⇔ failures is empty ⇔ action is CONTINUE
    - Failing actions per phase: precheck STOP_SYSTEM, analysis NO_TRADE (STOP_SYSTEM for an
      unknown mode), validation REJECT, execution and position tracking STOP_AND_ALERT
    - The rule set is data (YAML dict); the guard never validates its schema

Design Decisions:
    - Generic predicates cover environment/pre-flight checks; numeric feasibility of a
      sized plan (SL %, lot bounds, lot granularity, R:R) is computed here because each
      check derives a number from several fields
"""

from dataclasses import dataclass
from typing import Any, Mapping

from tradepilot.core.checklist_rules import failed_rules
from tradepilot.core.domain_types import GuardAction, Phase, TradingMode
from tradepilot.core.execution_context import dig
from tradepilot.core.kill_switch import (
    KillSwitchState, KillSwitchVerdict, evaluate_kill_conditions,
)

DEFAULT_MAX_SL_PCT = 30.0
DEFAULT_MAX_LOTS = 6
DEFAULT_LOT_SIZE = 75


@dataclass(frozen=True)
class GuardFailure:
    rule_id: str
    description: str

    def to_dict(self) -> dict:
        return {"rule_id": self.rule_id, "description": self.description}


@dataclass(frozen=True)
class GuardResult:
    phase: Phase
    passed: bool
    failures: tuple[GuardFailure, ...] = ()
    action: GuardAction = GuardAction.CONTINUE

    @classmethod
    def evaluate(
        cls, phase: Phase, failures: list[GuardFailure], fail_action: GuardAction,
    ) -> "GuardResult":
        if not failures:
            return cls(phase, True)
        return cls(phase, False, tuple(failures), fail_action)

    @property
    def reason(self) -> str:
        return "; ".join(f.description for f in self.failures)

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "passed": self.passed,
            "failures": [f.to_dict() for f in self.failures],
            "action": self.action.value,
        }


def invalid_mode(mode: str) -> GuardResult:
    """Analysis failure for a mode with no checklist or no tool plan."""
    return GuardResult.evaluate(
        Phase.ANALYSIS,
        [GuardFailure("invalid_mode", f"Invalid mode: {mode}")],
        GuardAction.STOP_SYSTEM,
    )


def _to_failures(pairs: list[tuple[str, str]]) -> list[GuardFailure]:
    return [GuardFailure(rule_id, description) for rule_id, description in pairs]


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class ChecklistGuard:
    """Evaluates the configured checklist for each phase."""

    def __init__(self, config: Mapping[str, Any]):
        self.config = config

    def _section(self, name: str) -> Mapping[str, Any]:
        return self.config.get(name) or {}

    def _action(self, section: str, default: GuardAction) -> GuardAction:
        return GuardAction(self._section(section).get("action", default.value))

    # ─── Phase 0: global precheck ─────────────────────────────────

    def run_global_precheck(self, context: Mapping[str, Any]) -> GuardResult:
        section = self._section("global_precheck")
        failures = _to_failures(failed_rules(section.get("checks", []), context))
        return GuardResult.evaluate(
            Phase.PRECHECK, failures,
            self._action("global_precheck", GuardAction.STOP_SYSTEM),
        )

    # ─── Phase 1: analysis ────────────────────────────────────────

    def run_analysis_checks(
        self, mode: str, plan: Mapping[str, Any], context: Mapping[str, Any],
    ) -> GuardResult:
        modes = self._section("analysis").get("modes", {})
        mode_value = mode.value if isinstance(mode, TradingMode) else str(mode)
        if mode_value not in modes:
            return invalid_mode(mode_value)
        mode_config = modes[mode_value]
        data = {**context, **(plan or {})}
        failures = _to_failures(failed_rules(mode_config.get("checks", []), data))
        missing = [
            path for path in mode_config.get("required_outputs", [])
            if dig(data, path) is None
        ]
        if missing:
            failures.append(GuardFailure(
                "required_outputs",
                f"Missing required outputs: {', '.join(missing)}",
            ))
        return GuardResult.evaluate(
            Phase.ANALYSIS, failures,
            self._action("analysis", GuardAction.NO_TRADE),
        )

    # ─── Phase 2: validation ──────────────────────────────────────

    def run_validation_checks(
        self, plan: Mapping[str, Any], context: Mapping[str, Any],
    ) -> GuardResult:
        section = self._section("validation")
        plan = self._canonical_plan(plan or {}, section.get("field_aliases", {}))
        data = {**context, **plan}
        failures = _to_failures(failed_rules(section.get("checks", []), data))
        for field_name in section.get("required_fields", []):
            if plan.get(field_name) is None:
                failures.append(GuardFailure(
                    "required_fields", f"Required field missing: {field_name}",
                ))
        instrument = str(plan.get("symbol") or context.get("symbol") or "").upper()
        failures += self._check_stop_loss(plan, instrument, section)
        failures += self._check_lots(plan, instrument, section)
        failures += self._check_take_profit(plan, section)
        return GuardResult.evaluate(
            Phase.VALIDATION, failures,
            self._action("validation", GuardAction.REJECT),
        )

    @staticmethod
    def _canonical_plan(
        plan: Mapping[str, Any], aliases: Mapping[str, list[str]],
    ) -> dict[str, Any]:
        canonical = dict(plan)
        for name, alternatives in aliases.items():
            if canonical.get(name) is not None:
                continue
            for alt in alternatives:
                if plan.get(alt) is not None:
                    canonical[name] = plan[alt]
                    break
        return canonical

    @staticmethod
    def _check_stop_loss(
        plan: Mapping[str, Any], instrument: str, section: Mapping[str, Any],
    ) -> list[GuardFailure]:
        entry = _number(plan.get("entry_price"))
        stop = _number(plan.get("stop_loss"))
        if entry is None or stop is None or entry <= 0:
            return []
        sl_config = section.get("stop_loss", {})
        max_pct = float(
            sl_config.get("max_sl_percentages", {}).get(
                instrument, sl_config.get("default_max_sl_pct", DEFAULT_MAX_SL_PCT),
            ),
        )
        sl_pct = abs(entry - stop) / entry * 100
        if sl_pct > max_pct:
            return [GuardFailure(
                "stop_loss_validation",
                f"SL percentage ({sl_pct:.2f}%) exceeds max ({max_pct:g}%)",
            )]
        return []

    @staticmethod
    def _check_lots(
        plan: Mapping[str, Any], instrument: str, section: Mapping[str, Any],
    ) -> list[GuardFailure]:
        lots = _number(plan.get("lots"))
        if lots is None:
            return []
        lots_config = section.get("lots", {})
        min_lots = lots_config.get("min", 1)
        max_lots = lots_config.get("max", DEFAULT_MAX_LOTS)
        failures = []
        if lots < min_lots:
            failures.append(GuardFailure(
                "lot_size_calculation", f"Lots must be >= {min_lots}, got: {lots:g}",
            ))
        if lots > max_lots:
            failures.append(GuardFailure(
                "lot_size_calculation", f"Lots ({lots:g}) exceeds max ({max_lots})",
            ))
        quantity = _number(plan.get("quantity"))
        size_config = section.get("lot_size", {})
        lot_size = _number(plan.get("lot_size")) or float(
            size_config.get("instruments", {}).get(
                instrument, size_config.get("default", DEFAULT_LOT_SIZE),
            ),
        )
        expected = lots * lot_size
        if quantity is not None and quantity != expected:
            failures.append(GuardFailure(
                "lot_size_calculation",
                f"Quantity ({quantity:g}) does not match lots × lot_size ({expected:g})",
            ))
        return failures

    @staticmethod
    def _check_take_profit(
        plan: Mapping[str, Any], section: Mapping[str, Any],
    ) -> list[GuardFailure]:
        min_rr = section.get("take_profit", {}).get("min_rr")
        entry = _number(plan.get("entry_price"))
        stop = _number(plan.get("stop_loss"))
        targets = plan.get("targets") or []
        target = _number(targets[0] if targets else plan.get("target_price"))
        if min_rr is None or None in (entry, stop, target) or entry == stop:
            return []
        rr = abs(target - entry) / abs(entry - stop)
        if rr < float(min_rr):
            return [GuardFailure(
                "take_profit_validation",
                f"Partial TP RR ({rr:.2f}) below minimum ({float(min_rr):g})",
            )]
        return []

    # ─── Phase 3: execution pre-flight ────────────────────────────

    def run_execution_checks(self, context: Mapping[str, Any]) -> GuardResult:
        section = self._section("execution")
        failures = _to_failures(failed_rules(section.get("checks", []), context))
        return GuardResult.evaluate(
            Phase.EXECUTION, failures,
            self._action("execution", GuardAction.STOP_AND_ALERT),
        )

    # ─── Phase 4: position tracking ───────────────────────────────

    def run_position_checks(self, context: Mapping[str, Any]) -> GuardResult:
        section = self._section("position_tracking")
        failures = _to_failures(failed_rules(section.get("checks", []), context))
        return GuardResult.evaluate(
            Phase.POSITION_TRACKING, failures,
            self._action("position_tracking", GuardAction.STOP_AND_ALERT),
        )

    # ─── Supervisory ──────────────────────────────────────────────

    def check_system_kill_conditions(
        self, state: KillSwitchState | Mapping[str, Any],
    ) -> KillSwitchVerdict:
        if not isinstance(state, KillSwitchState):
            state = KillSwitchState.from_mapping(state)
        conditions = self._section("kill_switch").get("conditions")
        return evaluate_kill_conditions(state, conditions)
