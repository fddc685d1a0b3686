"""Define Swing Tools — descriptors for the SWING_LONG analysis workflow."""

from tradepilot.core.domain_types import Phase, RiskLevel, ToolCategory
from tradepilot.core.tool_descriptor import ToolDependencies, ToolDescriptor

from tradepilot.services.define_market_tools import FIND_INSTRUMENT

_ANALYSIS_ONLY = frozenset({Phase.EXECUTION, Phase.POSITION_TRACKING})

FETCH_DAILY_HISTORY = ToolDescriptor(
    name="market.history.daily",
    category=ToolCategory.MARKET_DATA,
    description="Fetch daily OHLCV candles (about one year) for the resolved instrument.",
    when_to_use="After the instrument is resolved, for swing analysis.",
    inputs={
        "type": "object",
        "properties": {
            "security_id": {"type": "string"},
            "exchange_segment": {"type": "string"},
            "lookback_days": {"type": "integer", "minimum": 30, "maximum": 730},
        },
        "required": ["security_id", "exchange_segment"],
    },
    outputs={
        "type": "object",
        "properties": {"candles": {"type": "array"}},
        "required": ["candles"],
    },
    dependencies=ToolDependencies(
        required_tools=("market.instrument.find",),
        derived_inputs={
            "security_id": "instrument.security_id",
            "exchange_segment": "instrument.exchange_segment",
        },
        forbidden_states=_ANALYSIS_ONLY,
        max_calls_per_trade=1,
    ),
    produces={"candles_daily": "candles"},
    risk_level=RiskLevel.NONE,
)

ANALYZE_SWING_TECHNICALS = ToolDescriptor(
    name="analysis.swing.technicals",
    category=ToolCategory.ANALYSIS,
    description="Weekly/daily trend alignment, support/resistance and momentum summary.",
    when_to_use="After daily candles are available.",
    inputs={
        "type": "object",
        "properties": {"candles": {"type": "array"}},
        "required": ["candles"],
    },
    outputs={
        "type": "object",
        "properties": {"trend": {"type": "string"}},
        "required": ["trend"],
    },
    dependencies=ToolDependencies(
        required_outputs=("candles_daily",),
        derived_inputs={"candles": "candles_daily"},
        forbidden_states=_ANALYSIS_ONLY,
        max_calls_per_trade=1,
    ),
    produces={"swing_analysis": "", "trend": "trend"},
    risk_level=RiskLevel.NONE,
)

RECOMMEND_SWING_TRADE = ToolDescriptor(
    name="advisor.swing.recommend",
    category=ToolCategory.ADVISOR,
    description="Return a swing BUY plan (entry zone, stop-loss, targets) or NO_TRADE.",
    when_to_use="Last swing analysis step.",
    inputs={
        "type": "object",
        "properties": {
            "symbol": {"type": "string"},
            "analysis": {"type": "object"},
        },
        "required": ["symbol", "analysis"],
    },
    outputs={
        "type": "object",
        "properties": {"action": {"type": "string", "enum": ["BUY", "NO_TRADE"]}},
        "required": ["action"],
    },
    dependencies=ToolDependencies(
        required_tools=("analysis.swing.technicals",),
        derived_inputs={"symbol": "symbol", "analysis": "swing_analysis"},
        forbidden_states=_ANALYSIS_ONLY,
        max_calls_per_trade=1,
    ),
    produces={"trade_plan": ""},
    safety_rules=("Advisory only: never places orders",),
    risk_level=RiskLevel.LOW,
)

SWING_ANALYSIS_TOOLS = [
    FIND_INSTRUMENT,
    FETCH_DAILY_HISTORY,
    ANALYZE_SWING_TECHNICALS,
    RECOMMEND_SWING_TRADE,
]
