"""Define Account Tools — descriptors for the VALIDATION phase (funds, positions, sizing).

Invariants:
    - Sizing reads the trade plan and funds from context only; the model passes nothing
    - Account tools are read-only; sizing is advisory (the guard decides feasibility)
"""

from tradepilot.core.domain_types import Phase, RiskLevel, ToolCategory
from tradepilot.core.tool_descriptor import ToolDependencies, ToolDescriptor

_NOT_BEFORE_ANALYSIS = frozenset({Phase.PRECHECK})

FUNDS_BALANCE = ToolDescriptor(
    name="account.funds.balance",
    category=ToolCategory.ACCOUNT,
    description="Return available trading balance and utilized margin.",
    when_to_use="First validation step.",
    outputs={
        "type": "object",
        "properties": {"available_balance": {"type": "number"}},
        "required": ["available_balance"],
    },
    dependencies=ToolDependencies(
        forbidden_states=_NOT_BEFORE_ANALYSIS, max_calls_per_trade=2,
    ),
    produces={"funds_available": "available_balance", "funds": ""},
    safety_rules=("Read-only",),
    risk_level=RiskLevel.NONE,
)

POSITIONS_LIST = ToolDescriptor(
    name="account.positions.list",
    category=ToolCategory.ACCOUNT,
    description="List open positions (used to detect duplicates before sizing).",
    when_to_use="After the balance is known.",
    outputs={
        "type": "object",
        "properties": {"positions": {"type": "array"}},
        "required": ["positions"],
    },
    dependencies=ToolDependencies(
        forbidden_states=_NOT_BEFORE_ANALYSIS, max_calls_per_trade=2,
    ),
    produces={"open_positions": "positions"},
    safety_rules=("Read-only",),
    risk_level=RiskLevel.NONE,
)

SIZE_PLAN = ToolDescriptor(
    name="risk.plan.size",
    category=ToolCategory.RISK,
    description="Turn the analysis plan into an executable plan: lots, quantity, "
                "entry, stop-loss and targets sized against available funds and the "
                "daily loss budget.",
    when_to_use="Last validation step, after balance and positions are known.",
    inputs={
        "type": "object",
        "properties": {
            "trade_plan": {"type": "object"},
            "funds_available": {"type": "number"},
            "open_positions": {"type": "array"},
        },
        "required": ["trade_plan", "funds_available"],
    },
    outputs={"type": "object"},
    dependencies=ToolDependencies(
        required_tools=("account.funds.balance",),
        required_outputs=("trade_plan",),
        derived_inputs={
            "trade_plan": "trade_plan",
            "funds_available": "funds_available",
            "open_positions": "open_positions",
        },
        forbidden_states=frozenset(
            {Phase.PRECHECK, Phase.ANALYSIS, Phase.EXECUTION, Phase.POSITION_TRACKING},
        ),
        max_calls_per_trade=1,
    ),
    produces={"executable_plan": ""},
    safety_rules=("Lots are capped by the daily loss budget",),
    risk_level=RiskLevel.LOW,
)

VALIDATION_TOOLS = [FUNDS_BALANCE, POSITIONS_LIST, SIZE_PLAN]
