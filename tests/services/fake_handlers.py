"""Fake Broker Handlers — deterministic stand-ins for market, account and order handlers.

Invariants:
    - One handler per catalogue tool; every call is logged as {"tool", "args"}
    - Default results satisfy every output contract and every default checklist rule
      (a full SWING_LONG dry run completes with them unchanged)
    - overrides[tool] may be a result dict, an Exception instance to raise, or a
      callable(args) → result

Design Decisions:
    - build_handlers() doubles as a "module:factory" target for load_handlers()
"""

from functools import partial

CANDLES = [
    {"open": 100.0, "high": 104.0, "low": 99.0, "close": 103.0, "volume": 1200},
    {"open": 103.0, "high": 106.0, "low": 102.0, "close": 105.5, "volume": 1500},
    {"open": 105.5, "high": 108.0, "low": 104.0, "close": 107.0, "volume": 1800},
]

OPTIONS_BUY_PLAN = {
    "action": "BUY",
    "symbol": "NIFTY",
    "side": "CE",
    "strike": 25000,
    "regime": "TREND",
    "direction": "BULLISH",
    "alignment_with_htf": True,
    "entry_trigger": "15m close above 25010",
    "invalidation": "15m close below 24940",
    "entry_price": 95.25,
    "stop_loss_price": 70.0,
    "target_price": 140.0,
    "score": 78,
}

SWING_BUY_PLAN = {
    "action": "BUY",
    "symbol": "RELIANCE",
    "regime": "TREND",
    "direction": "BULLISH",
    "alignment_with_htf": True,
    "entry_zone": [2400.0, 2420.0],
    "invalidation": "daily close below 2340",
    "entry_price": 2410.0,
    "stop_loss": 2340.0,
    "target_price": 2560.0,
    "score": 71,
}


def _sized(args):
    plan = args["trade_plan"]
    return {
        "symbol": plan.get("symbol"),
        "security_id": "2885",
        "exchange_segment": "NSE_EQ",
        "transaction_type": "BUY",
        "order_type": "SUPER",
        "entry_price": plan.get("entry_price"),
        "stop_loss": plan.get("stop_loss", plan.get("stop_loss_price")),
        "target_price": plan.get("target_price"),
        "lots": 1,
        "quantity": 75,
    }


DEFAULT_RESULTS = {
    "market.instrument.find": lambda args: {
        "security_id": "13", "exchange_segment": "IDX_I",
        "symbol": str(args.get("symbol", "")).upper(),
    },
    "market.history.intraday": {"candles": CANDLES},
    "analysis.structure.classify": {"structure": "trend", "valid": True},
    "analysis.trend.classify": {"trend": "bullish"},
    "options.expiry.list": {"expiries": ["2026-10-22", "2026-10-29"]},
    "options.chain.fetch": {"strikes": [{"strike": 25000, "ce_ltp": 95.25}]},
    "advisor.trade.recommend": OPTIONS_BUY_PLAN,
    "market.history.daily": {"candles": CANDLES},
    "analysis.swing.technicals": {"trend": "up", "weekly": "up", "rsi": 58.2},
    "advisor.swing.recommend": SWING_BUY_PLAN,
    "account.funds.balance": {"available_balance": 250_000.0, "utilized": 0.0},
    "account.positions.list": {"positions": []},
    "risk.plan.size": _sized,
    "orders.super.place": {"order_id": "ORD-1001", "stop_loss_registered": True},
}


class FakeBroker:
    """Records calls and answers with DEFAULT_RESULTS unless overridden."""

    def __init__(self):
        self.log = []
        self.overrides = {}

    async def _call(self, tool, args):
        self.log.append({"tool": tool, "args": dict(args)})
        result = self.overrides.get(tool, DEFAULT_RESULTS[tool])
        if isinstance(result, Exception):
            raise result
        return result(args) if callable(result) else dict(result)

    def handlers(self):
        return {tool: partial(self._call, tool) for tool in DEFAULT_RESULTS}

    def called(self):
        return [entry["tool"] for entry in self.log]


def build_handlers():
    return FakeBroker().handlers()
