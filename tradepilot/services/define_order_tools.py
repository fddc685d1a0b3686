"""Define Order Tools — the single write tool used in the EXECUTION phase.

Invariants:
    - Every order field comes from the validated executable plan (derived inputs)
    - Only callable in EXECUTION, at most once per trade
    - side_effects=True: dry-run registries simulate instead of calling the handler
"""

from tradepilot.core.domain_types import Phase, RiskLevel, ToolCategory
from tradepilot.core.tool_descriptor import ToolDependencies, ToolDescriptor

PLACE_SUPER_ORDER = ToolDescriptor(
    name="orders.super.place",
    category=ToolCategory.ORDERS,
    description="Place an entry order with attached stop-loss and target legs.",
    when_to_use="Only in the execution phase, once, for the approved plan.",
    when_not_to_use="For any plan that has not passed validation.",
    inputs={
        "type": "object",
        "properties": {
            "security_id": {"type": "string"},
            "exchange_segment": {"type": "string"},
            "transaction_type": {"type": "string", "enum": ["BUY", "SELL"]},
            "quantity": {"type": "integer", "minimum": 1},
            "price": {"type": "number", "exclusiveMinimum": 0},
            "stop_loss": {"type": "number", "exclusiveMinimum": 0},
            "target": {"type": "number", "exclusiveMinimum": 0},
        },
        "required": [
            "security_id", "exchange_segment", "transaction_type",
            "quantity", "price", "stop_loss",
        ],
    },
    outputs={
        "type": "object",
        "properties": {"order_id": {"type": "string"}},
        "required": ["order_id"],
    },
    dependencies=ToolDependencies(
        required_outputs=("executable_plan",),
        derived_inputs={
            "security_id": "executable_plan.security_id",
            "exchange_segment": "executable_plan.exchange_segment",
            "transaction_type": "executable_plan.transaction_type",
            "quantity": "executable_plan.quantity",
            "price": "executable_plan.entry_price",
            "stop_loss": "executable_plan.stop_loss",
            "target": "executable_plan.target_price",
        },
        forbidden_states=frozenset(
            {Phase.PRECHECK, Phase.ANALYSIS, Phase.VALIDATION, Phase.POSITION_TRACKING},
        ),
        max_calls_per_trade=1,
    ),
    produces={"order_id": "order_id", "order": ""},
    safety_rules=(
        "Stop-loss leg is mandatory",
        "Never called twice for the same plan",
    ),
    risk_level=RiskLevel.HIGH,
    side_effects=True,
)

EXECUTION_TOOLS = [PLACE_SUPER_ORDER]
