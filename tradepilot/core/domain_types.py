"""Domain Types — enums that replace bare strings across the codebase.

Invariants:
    - Phase order is fixed: PRECHECK → ANALYSIS → VALIDATION → EXECUTION → POSITION_TRACKING
    - Every GuardAction except CONTINUE maps to exactly one TerminalState
    - All valid states encoded as Enums — no raw string matching in domain logic

Design Decisions:
    - str Enums: serialize to JSON without custom encoders (tool_result and journal are JSON)
"""

from enum import Enum


class Phase(str, Enum):
    """Workflow phases. Exactly one is active per run."""
    PRECHECK = "precheck"
    ANALYSIS = "analysis"
    VALIDATION = "validation"
    EXECUTION = "execution"
    POSITION_TRACKING = "position_tracking"


PHASE_ORDER: tuple[Phase, ...] = (
    Phase.PRECHECK,
    Phase.ANALYSIS,
    Phase.VALIDATION,
    Phase.EXECUTION,
    Phase.POSITION_TRACKING,
)


class TerminalState(str, Enum):
    """How a run ended."""
    COMPLETED = "completed"
    NO_TRADE = "no_trade"
    REJECTED = "rejected"
    STOPPED = "stopped"


class GuardAction(str, Enum):
    """What the workflow must do with a GuardResult."""
    STOP_SYSTEM = "STOP_SYSTEM"
    NO_TRADE = "NO_TRADE"
    REJECT = "REJECT"
    STOP_AND_ALERT = "STOP_AND_ALERT"
    CONTINUE = "CONTINUE"


ACTION_TERMINAL_STATE: dict[GuardAction, TerminalState] = {
    GuardAction.STOP_SYSTEM: TerminalState.STOPPED,
    GuardAction.NO_TRADE: TerminalState.NO_TRADE,
    GuardAction.REJECT: TerminalState.REJECTED,
    GuardAction.STOP_AND_ALERT: TerminalState.STOPPED,
}


class FinalStatus(str, Enum):
    """Run outcome reported to callers."""
    COMPLETED = "completed"
    NO_TRADE = "no_trade"
    PRECHECK_FAILED = "precheck_failed"
    ANALYSIS_FAILED = "analysis_failed"
    VALIDATION_FAILED = "validation_failed"
    EXECUTION_FAILED = "execution_failed"


PHASE_FAILURE_STATUS: dict[Phase, FinalStatus] = {
    Phase.PRECHECK: FinalStatus.PRECHECK_FAILED,
    Phase.ANALYSIS: FinalStatus.ANALYSIS_FAILED,
    Phase.VALIDATION: FinalStatus.VALIDATION_FAILED,
    Phase.EXECUTION: FinalStatus.EXECUTION_FAILED,
    Phase.POSITION_TRACKING: FinalStatus.EXECUTION_FAILED,
}


class TradingMode(str, Enum):
    """Analysis sub-mode; selects the workflow plan and the analysis rule set."""
    OPTIONS_INTRADAY = "OPTIONS_INTRADAY"
    SWING_LONG = "SWING_LONG"


class RiskLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    HIGH = "high"


class ToolCategory(str, Enum):
    """Tool groupings for the catalogue and observability."""
    MARKET_DATA = "market_data"
    ANALYSIS = "analysis"
    ADVISOR = "advisor"
    ACCOUNT = "account"
    RISK = "risk"
    ORDERS = "orders"


class ResponseKind(str, Enum):
    """Classification of a text-only model turn."""
    FINAL = "final"
    CODE_LIKE = "code_like"
    STATED_INTENT = "stated_intent"
    INCOMPLETE = "incomplete"
