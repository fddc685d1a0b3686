"""Phase State Machine — forward-only phase sequencing gated by GuardResults.

Invariants:
    - Phase only advances to the immediate successor in PHASE_ORDER; never backward
    - advance() requires a GuardResult for the CURRENT phase
    - A failed GuardResult ends the run in the terminal state named by its action
    - Once terminal, every further transition raises InvalidTransitionError
    - history records every phase entered, in order
"""

from dataclasses import dataclass, field

from tradepilot.core.checklist_guard import GuardResult
from tradepilot.core.domain_types import (
    ACTION_TERMINAL_STATE, PHASE_ORDER, Phase, TerminalState,
)
from tradepilot.core.errors import InvalidTransitionError


@dataclass(frozen=True)
class PhaseConfig:
    """Per-phase execution limits. allowed_tools=None admits the phase plan's tools."""
    llm_allowed: bool
    max_steps: int = 0
    allowed_tools: frozenset[str] | None = None

    def disallowed_tools(self, tool_names) -> list[str]:
        if self.allowed_tools is None:
            return []
        return [name for name in tool_names if name not in self.allowed_tools]


def default_phase_configs(
    analysis_steps: int = 30, validation_steps: int = 8, execution_steps: int = 6,
) -> dict[Phase, PhaseConfig]:
    return {
        Phase.PRECHECK: PhaseConfig(llm_allowed=False),
        Phase.ANALYSIS: PhaseConfig(llm_allowed=True, max_steps=analysis_steps),
        Phase.VALIDATION: PhaseConfig(llm_allowed=True, max_steps=validation_steps),
        Phase.EXECUTION: PhaseConfig(llm_allowed=True, max_steps=execution_steps),
        Phase.POSITION_TRACKING: PhaseConfig(llm_allowed=False),
    }


@dataclass
class PhaseStateMachine:
    current: Phase = Phase.PRECHECK
    terminal: TerminalState | None = None
    terminal_reason: str | None = None
    history: list[Phase] = field(default_factory=lambda: [Phase.PRECHECK])

    @property
    def is_terminal(self) -> bool:
        return self.terminal is not None

    def _ensure_active(self) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Run already ended in {self.terminal.value}; "
                f"cannot leave terminal state",
            )

    def advance(self, result: GuardResult) -> Phase | TerminalState:
        """Move to the next phase if result passed, else terminate per its action."""
        self._ensure_active()
        if result.phase != self.current:
            raise InvalidTransitionError(
                f"Guard result for {result.phase.value} cannot advance "
                f"phase {self.current.value}",
            )
        if not result.passed:
            return self.terminate(
                ACTION_TERMINAL_STATE[result.action], result.reason,
            )
        index = PHASE_ORDER.index(self.current)
        if index + 1 >= len(PHASE_ORDER):
            raise InvalidTransitionError(
                f"No phase after {self.current.value}; call complete()",
            )
        self.current = PHASE_ORDER[index + 1]
        self.history.append(self.current)
        return self.current

    def terminate(
        self, state: TerminalState, reason: str | None = None,
    ) -> TerminalState:
        self._ensure_active()
        self.terminal = state
        self.terminal_reason = reason
        return state

    def complete(self) -> TerminalState:
        if self.current != Phase.POSITION_TRACKING:
            raise InvalidTransitionError(
                f"Cannot complete from {self.current.value}",
            )
        return self.terminate(TerminalState.COMPLETED)
