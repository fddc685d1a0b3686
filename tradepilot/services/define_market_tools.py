"""Define Market Tools — descriptors for the options-intraday analysis workflow.

Invariants:
    - Every identifier the host already knows (security_id, segment, candles, trend,
      expiry) is a derived input: the model never supplies it
    - Only the instrument lookup takes a model-chosen value (symbol) and the history
      fetch takes interval, which the workflow plan fixes per step
    - Analysis tools are forbidden once EXECUTION has started
"""

from tradepilot.core.domain_types import Phase, RiskLevel, ToolCategory
from tradepilot.core.tool_descriptor import ToolDependencies, ToolDescriptor

_NOT_AFTER_VALIDATION = frozenset({Phase.EXECUTION, Phase.POSITION_TRACKING})

_INSTRUMENT_INPUTS = {
    "security_id": {"type": "string", "description": "Venue security id"},
    "exchange_segment": {"type": "string", "description": "Venue segment, e.g. IDX_I"},
}
_INSTRUMENT_DERIVED = {
    "security_id": "instrument.security_id",
    "exchange_segment": "instrument.exchange_segment",
}

_CANDLES_SCHEMA = {
    "type": "array",
    "items": {"type": "object"},
    "description": "OHLCV candles, oldest first",
}

FIND_INSTRUMENT = ToolDescriptor(
    name="market.instrument.find",
    category=ToolCategory.MARKET_DATA,
    description="Look up an underlying (index or stock) and return its venue identifiers.",
    when_to_use="First step of every analysis: resolve the symbol the user asked about.",
    when_not_to_use="When the instrument has already been resolved in this run.",
    inputs={
        "type": "object",
        "properties": {
            "symbol": {"type": "string", "minLength": 1, "description": "Ticker, e.g. NIFTY"},
        },
        "required": ["symbol"],
    },
    outputs={
        "type": "object",
        "properties": {
            "security_id": {"type": "string"},
            "exchange_segment": {"type": "string"},
            "symbol": {"type": "string"},
        },
        "required": ["security_id", "exchange_segment", "symbol"],
    },
    dependencies=ToolDependencies(
        forbidden_states=_NOT_AFTER_VALIDATION, max_calls_per_trade=2,
    ),
    produces={"instrument": "", "symbol": "symbol"},
    safety_rules=("Read-only lookup",),
    risk_level=RiskLevel.NONE,
)

FETCH_INTRADAY_HISTORY = ToolDescriptor(
    name="market.history.intraday",
    category=ToolCategory.MARKET_DATA,
    description="Fetch intraday OHLCV candles for the resolved instrument.",
    when_to_use="After the instrument is resolved: 15-minute candles for structure, "
                "then 5-minute candles for trend.",
    when_not_to_use="To fetch option contract prices (use the option chain).",
    inputs={
        "type": "object",
        "properties": {
            **_INSTRUMENT_INPUTS,
            "interval": {"type": "string", "enum": ["1", "5", "15", "25", "60"]},
        },
        "required": ["security_id", "exchange_segment", "interval"],
    },
    outputs={
        "type": "object",
        "properties": {"candles": _CANDLES_SCHEMA},
        "required": ["candles"],
    },
    dependencies=ToolDependencies(
        required_tools=("market.instrument.find",),
        derived_inputs=_INSTRUMENT_DERIVED,
        forbidden_states=_NOT_AFTER_VALIDATION,
        max_calls_per_trade=3,
    ),
    produces={"candles_{interval}m": "candles"},
    safety_rules=("Read-only market data",),
    risk_level=RiskLevel.NONE,
)

ANALYZE_STRUCTURE = ToolDescriptor(
    name="analysis.structure.classify",
    category=ToolCategory.ANALYSIS,
    description="Classify 15-minute market structure (trend, range or expansion).",
    when_to_use="After 15-minute candles are available.",
    when_not_to_use="Before 15-minute history has been fetched.",
    inputs={
        "type": "object",
        "properties": {"candles": _CANDLES_SCHEMA},
        "required": ["candles"],
    },
    outputs={
        "type": "object",
        "properties": {
            "structure": {"type": "string", "enum": ["trend", "range", "expansion"]},
            "valid": {"type": "boolean"},
        },
        "required": ["structure", "valid"],
    },
    dependencies=ToolDependencies(
        required_outputs=("candles_15m",),
        derived_inputs={"candles": "candles_15m"},
        forbidden_states=_NOT_AFTER_VALIDATION,
        max_calls_per_trade=1,
    ),
    produces={"structure_15m": ""},
    risk_level=RiskLevel.NONE,
)

ANALYZE_TREND = ToolDescriptor(
    name="analysis.trend.classify",
    category=ToolCategory.ANALYSIS,
    description="Classify the 5-minute trend as bullish, bearish or avoid.",
    when_to_use="After 5-minute candles are available and structure is tradable.",
    when_not_to_use="When the 15-minute structure is a range (the workflow skips to the advisor).",
    inputs={
        "type": "object",
        "properties": {"candles": _CANDLES_SCHEMA},
        "required": ["candles"],
    },
    outputs={
        "type": "object",
        "properties": {
            "trend": {"type": "string", "enum": ["bullish", "bearish", "avoid"]},
        },
        "required": ["trend"],
    },
    dependencies=ToolDependencies(
        required_outputs=("candles_5m",),
        derived_inputs={"candles": "candles_5m"},
        forbidden_states=_NOT_AFTER_VALIDATION,
        max_calls_per_trade=1,
    ),
    produces={"trend": "trend", "trend_analysis": ""},
    risk_level=RiskLevel.NONE,
)

FETCH_EXPIRY_LIST = ToolDescriptor(
    name="options.expiry.list",
    category=ToolCategory.MARKET_DATA,
    description="List upcoming option expiries for the underlying, nearest tradable first.",
    when_to_use="After the trend is bullish or bearish.",
    when_not_to_use="When the trend is 'avoid'.",
    inputs={
        "type": "object",
        "properties": {**_INSTRUMENT_INPUTS, "symbol": {"type": "string"}},
        "required": ["security_id", "exchange_segment", "symbol"],
    },
    outputs={
        "type": "object",
        "properties": {
            "expiries": {"type": "array", "items": {"type": "string"}, "minItems": 1},
        },
        "required": ["expiries"],
    },
    dependencies=ToolDependencies(
        required_tools=("analysis.trend.classify",),
        derived_inputs={**_INSTRUMENT_DERIVED, "symbol": "symbol"},
        forbidden_states=_NOT_AFTER_VALIDATION,
        max_calls_per_trade=1,
    ),
    produces={"expiries": "expiries", "expiry": "expiries[0]"},
    risk_level=RiskLevel.NONE,
)

FETCH_OPTION_CHAIN = ToolDescriptor(
    name="options.chain.fetch",
    category=ToolCategory.MARKET_DATA,
    description="Fetch the option chain around ATM for the selected expiry, "
                "filtered to the side implied by the trend.",
    when_to_use="After the expiry is known and the trend is directional.",
    when_not_to_use="When the trend is 'avoid': go straight to the trade advisor.",
    inputs={
        "type": "object",
        "properties": {
            "symbol": {"type": "string"},
            "expiry": {"type": "string"},
            "trend": {"type": "string", "enum": ["bullish", "bearish"]},
        },
        "required": ["symbol", "expiry", "trend"],
    },
    outputs={
        "type": "object",
        "properties": {"strikes": {"type": "array"}},
        "required": ["strikes"],
    },
    dependencies=ToolDependencies(
        required_tools=("options.expiry.list",),
        required_outputs=("expiry", "trend"),
        derived_inputs={"symbol": "symbol", "expiry": "expiry", "trend": "trend"},
        forbidden_states=_NOT_AFTER_VALIDATION,
        max_calls_per_trade=1,
    ),
    produces={"option_chain": ""},
    risk_level=RiskLevel.NONE,
)

RECOMMEND_TRADE = ToolDescriptor(
    name="advisor.trade.recommend",
    category=ToolCategory.ADVISOR,
    description="Score the setup and return either a BUY plan (side, strike, entry, "
                "stop-loss, target) or NO_TRADE with the failed gates.",
    when_to_use="Last analysis step, once the structure (and, if tradable, the option "
                "chain) is known.",
    when_not_to_use="Before the 15-minute structure has been classified.",
    inputs={
        "type": "object",
        "properties": {
            "symbol": {"type": "string"},
            "structure": {"type": "object"},
            "trend": {"type": "string"},
            "option_chain": {"type": "object"},
        },
        "required": ["symbol", "structure"],
    },
    outputs={
        "type": "object",
        "properties": {"action": {"type": "string", "enum": ["BUY", "NO_TRADE"]}},
        "required": ["action"],
    },
    dependencies=ToolDependencies(
        required_tools=("analysis.structure.classify",),
        derived_inputs={
            "symbol": "symbol",
            "structure": "structure_15m",
            "trend": "trend",
            "option_chain": "option_chain",
        },
        forbidden_states=_NOT_AFTER_VALIDATION,
        max_calls_per_trade=1,
    ),
    produces={"trade_plan": ""},
    safety_rules=("Advisory only: never places orders",),
    risk_level=RiskLevel.LOW,
)

OPTIONS_ANALYSIS_TOOLS = [
    FIND_INSTRUMENT,
    FETCH_INTRADAY_HISTORY,
    ANALYZE_STRUCTURE,
    ANALYZE_TREND,
    FETCH_EXPIRY_LIST,
    FETCH_OPTION_CHAIN,
    RECOMMEND_TRADE,
]
