"""Kill Switch — hard system conditions that halt everything regardless of phase.

Invariants:
    - KillSwitchState is an immutable snapshot supplied by the host (account/feed state)
    - Conditions are evaluated in configured order; the first tripped condition wins
    - A verdict never depends on the active phase
"""

from dataclasses import dataclass
from typing import Any, Callable, Mapping


@dataclass(frozen=True)
class KillSwitchState:
    daily_loss: float = 0.0
    max_daily_loss: float | None = None
    websocket_connected: bool = True
    has_position: bool = False
    duplicate_execution: bool = False
    invalid_state_transition: bool = False
    unexpected_llm_output: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "KillSwitchState":
        data = data or {}
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


@dataclass(frozen=True)
class KillSwitchVerdict:
    should_halt: bool
    reason: str = ""
    condition_id: str | None = None


def _daily_loss_breached(state: KillSwitchState) -> str | None:
    if state.max_daily_loss is None:
        return None
    if state.daily_loss >= state.max_daily_loss:
        return (
            f"Max daily loss breached ({state.daily_loss:.2f} >= "
            f"{state.max_daily_loss:.2f})"
        )
    return None


def _ws_disconnected_mid_position(state: KillSwitchState) -> str | None:
    if state.has_position and not state.websocket_connected:
        return "WS disconnected mid-position"
    return None


def _duplicate_execution(state: KillSwitchState) -> str | None:
    if state.duplicate_execution:
        return "Duplicate execution detected"
    return None


def _invalid_state_transition(state: KillSwitchState) -> str | None:
    if state.invalid_state_transition:
        return "Invalid state transition detected"
    return None


def _unexpected_llm_output(state: KillSwitchState) -> str | None:
    if state.unexpected_llm_output:
        return "Unexpected LLM output detected"
    return None


KILL_CONDITIONS: dict[str, Callable[[KillSwitchState], str | None]] = {
    "max_daily_loss_breached": _daily_loss_breached,
    "ws_disconnected_mid_position": _ws_disconnected_mid_position,
    "duplicate_execution_detected": _duplicate_execution,
    "invalid_state_transition": _invalid_state_transition,
    "unexpected_llm_output": _unexpected_llm_output,
}


def evaluate_kill_conditions(
    state: KillSwitchState, conditions: list[Mapping[str, Any]] | None = None,
) -> KillSwitchVerdict:
    """Check enabled conditions in order. Unknown ids are ignored."""
    if conditions is None:
        conditions = [{"id": cid, "enabled": True} for cid in KILL_CONDITIONS]
    for condition in conditions:
        if not condition.get("enabled", True):
            continue
        check = KILL_CONDITIONS.get(condition["id"])
        if check is None:
            continue
        reason = check(state)
        if reason:
            return KillSwitchVerdict(True, reason, condition["id"])
    return KillSwitchVerdict(False)
