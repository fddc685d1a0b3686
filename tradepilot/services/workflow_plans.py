"""Workflow Plans — concrete tool orders for each LLM phase.

Invariants:
    - Every plan's steps only name catalogue tools
    - The advisor is the terminal tool of both analysis plans and is never skipped
    - Options intraday: a non-tradable 15m structure skips straight to the advisor;
      a trend of "avoid" skips the expiry and option chain steps

Design Decisions:
    - History is fetched twice through one tool; the two steps carry fixed interval
      args and are told apart by the context key each one produces
"""

from tradepilot.core.domain_types import TradingMode
from tradepilot.core.workflow_plan import (
    ErrorRewrite, SkipEdge, WorkflowPlan, WorkflowStep,
)

OPTIONS_INTRADAY_PLAN = WorkflowPlan(
    name="options_intraday_analysis",
    steps=(
        WorkflowStep(
            "market.instrument.find",
            hint="Resolve the underlying named in the task (e.g. NIFTY).",
            auto_invoke=False,
        ),
        WorkflowStep(
            "market.history.intraday", key="history_15m",
            args={"interval": "15"}, done_when="candles_15m",
        ),
        WorkflowStep("analysis.structure.classify"),
        WorkflowStep(
            "market.history.intraday", key="history_5m",
            args={"interval": "5"}, done_when="candles_5m",
        ),
        WorkflowStep("analysis.trend.classify"),
        WorkflowStep("options.expiry.list"),
        WorkflowStep("options.chain.fetch"),
        WorkflowStep("advisor.trade.recommend"),
    ),
    terminal_tool="advisor.trade.recommend",
    skip_edges=(
        SkipEdge(
            when="structure_15m.valid",
            values=frozenset({False}),
            skip=(
                "history_5m", "analysis.trend.classify",
                "options.expiry.list", "options.chain.fetch",
            ),
            reason="The 15-minute structure is not tradable.",
        ),
        SkipEdge(
            when="trend",
            values=frozenset({"avoid"}),
            skip=("options.expiry.list", "options.chain.fetch"),
            reason="The trend is 'avoid'.",
        ),
    ),
    error_rewrites=(
        ErrorRewrite(
            tool="options.chain.fetch",
            match="avoid",
            message="The trend is 'avoid', so there is no option side to fetch.",
            steer_to="advisor.trade.recommend",
        ),
    ),
)

SWING_LONG_PLAN = WorkflowPlan(
    name="swing_long_analysis",
    steps=(
        WorkflowStep(
            "market.instrument.find",
            hint="Resolve the stock named in the task.",
            auto_invoke=False,
        ),
        WorkflowStep("market.history.daily"),
        WorkflowStep("analysis.swing.technicals"),
        WorkflowStep("advisor.swing.recommend"),
    ),
    terminal_tool="advisor.swing.recommend",
)

VALIDATION_PLAN = WorkflowPlan(
    name="validation",
    steps=(
        WorkflowStep("account.funds.balance"),
        WorkflowStep("account.positions.list"),
        WorkflowStep("risk.plan.size"),
    ),
    terminal_tool="risk.plan.size",
)

EXECUTION_PLAN = WorkflowPlan(
    name="execution",
    steps=(
        WorkflowStep(
            "orders.super.place",
            hint="Every order field is taken from the validated plan.",
        ),
    ),
    terminal_tool="orders.super.place",
)

ANALYSIS_PLANS: dict[TradingMode, WorkflowPlan] = {
    TradingMode.OPTIONS_INTRADAY: OPTIONS_INTRADAY_PLAN,
    TradingMode.SWING_LONG: SWING_LONG_PLAN,
}


def plan_for_mode(mode: TradingMode | str) -> WorkflowPlan | None:
    """Analysis plan for a trading mode; None for an unknown mode."""
    try:
        return ANALYSIS_PLANS.get(TradingMode(mode))
    except ValueError:
        return None
