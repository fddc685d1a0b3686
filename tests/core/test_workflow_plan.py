"""Workflow plan tests — next-step computation, skip edges, rewrites, plan validation.

Tests cover:
    - next_step walks the options plan in order (15m history before 5m history)
    - Non-tradable 15m structure skips straight to the advisor
    - Trend "avoid" skips expiry and chain, not the advisor
    - Extra (ruled-out) step keys are honored
    - is_complete once the terminal tool is called
    - ErrorRewrite matching and steps_before
    - Plans reject a skip edge on the terminal tool and a missing terminal step
"""

import pytest

from tradepilot.core.domain_types import Phase
from tradepilot.core.execution_context import ExecutionContext
from tradepilot.core.workflow_plan import (
    ErrorRewrite, SkipEdge, WorkflowPlan, WorkflowStep,
)
from tradepilot.services.workflow_plans import (
    OPTIONS_INTRADAY_PLAN, SWING_LONG_PLAN, VALIDATION_PLAN, plan_for_mode,
)

PLAN = OPTIONS_INTRADAY_PLAN


def _ctx(*called: str, **values) -> ExecutionContext:
    ctx = ExecutionContext(values=dict(values), phase=Phase.ANALYSIS)
    ctx.called_tools.extend(called)
    return ctx


def _after_structure(valid=True, **values) -> ExecutionContext:
    return _ctx(
        "market.instrument.find", "market.history.intraday",
        "analysis.structure.classify",
        candles_15m=[{}], structure_15m={"structure": "trend", "valid": valid},
        **values,
    )


# --- next_step ----------------------------------------------------------------

def test_first_step_is_instrument_lookup():
    assert PLAN.next_step(_ctx()).tool == "market.instrument.find"


def test_history_15m_before_structure():
    step = PLAN.next_step(_ctx("market.instrument.find"))
    assert step.key == "history_15m"
    assert dict(step.args) == {"interval": "15"}


def test_history_5m_after_structure():
    step = PLAN.next_step(_after_structure())
    assert step.key == "history_5m"
    assert dict(step.args) == {"interval": "5"}


def test_expiry_after_directional_trend():
    ctx = _after_structure(candles_5m=[{}], trend="bullish")
    ctx.called_tools.extend(["market.history.intraday", "analysis.trend.classify"])
    assert PLAN.next_step(ctx).tool == "options.expiry.list"


def test_invalid_structure_skips_to_advisor():
    ctx = _after_structure(valid=False)
    assert PLAN.next_step(ctx).tool == "advisor.trade.recommend"
    assert PLAN.skipped_tools(ctx) == {
        "analysis.trend.classify", "options.expiry.list", "options.chain.fetch",
    }
    assert PLAN.skip_reason("options.chain.fetch", ctx) == (
        "The 15-minute structure is not tradable."
    )


def test_invalid_structure_does_not_skip_history_tool():
    # history_15m ran, so the tool still has a non-skipped step
    assert "market.history.intraday" not in PLAN.skipped_tools(_after_structure(valid=False))


def test_avoid_trend_skips_expiry_and_chain():
    ctx = _after_structure(candles_5m=[{}], trend="avoid")
    ctx.called_tools.extend(["market.history.intraday", "analysis.trend.classify"])
    assert PLAN.next_step(ctx).tool == "advisor.trade.recommend"
    assert PLAN.skipped_tools(ctx) == {"options.expiry.list", "options.chain.fetch"}


def test_extra_skips_are_honored():
    ctx = _after_structure(candles_5m=[{}], trend="bullish", expiry="2026-10-22")
    ctx.called_tools.extend([
        "market.history.intraday", "analysis.trend.classify", "options.expiry.list",
    ])
    assert PLAN.next_step(ctx).tool == "options.chain.fetch"
    assert PLAN.next_step(ctx, {"options.chain.fetch"}).tool == "advisor.trade.recommend"


def test_next_step_none_when_complete():
    ctx = _after_structure(valid=False)
    ctx.called_tools.append("advisor.trade.recommend")
    assert PLAN.is_complete(ctx)
    assert PLAN.next_step(ctx) is None


def test_unhashable_skip_value_does_not_apply():
    edge = SkipEdge(when="trend", values=frozenset({"avoid"}), skip=("x",))
    assert edge.applies(_ctx(trend=["avoid"])) is False


def test_missing_skip_value_does_not_apply():
    edge = SkipEdge(when="trend", values=frozenset({"avoid"}), skip=("x",))
    assert edge.applies(_ctx()) is False


# --- Error rewrites -----------------------------------------------------------

def test_find_rewrite_matches_case_insensitive():
    rewrite = PLAN.find_rewrite("options.chain.fetch", "ERROR: Trend is AVOID")
    assert rewrite is not None
    assert rewrite.steer_to == "advisor.trade.recommend"


def test_find_rewrite_requires_same_tool():
    assert PLAN.find_rewrite("options.expiry.list", "trend is avoid") is None


def test_steps_before_rules_out_failing_step():
    ctx = _after_structure(candles_5m=[{}], trend="bullish", expiry="2026-10-22")
    rewrite = PLAN.find_rewrite("options.chain.fetch", "avoid")
    assert PLAN.steps_before(rewrite, ctx) == {"options.chain.fetch"}


def test_steps_before_without_target_is_empty():
    rewrite = ErrorRewrite(tool="options.chain.fetch", match="x", message="m")
    assert PLAN.steps_before(rewrite, _ctx()) == set()


# --- Plan construction --------------------------------------------------------

def test_step_key_defaults_to_tool():
    assert WorkflowStep("a.b.c").key == "a.b.c"


def test_tool_names_are_distinct_in_order():
    assert PLAN.tool_names[:3] == (
        "market.instrument.find", "market.history.intraday",
        "analysis.structure.classify",
    )
    assert len(PLAN.tool_names) == 7


def test_terminal_tool_must_be_a_step():
    with pytest.raises(ValueError, match="terminal tool is not a step"):
        WorkflowPlan("bad", (WorkflowStep("a.b.c"),), terminal_tool="x.y.z")


def test_skip_edge_cannot_skip_terminal():
    with pytest.raises(ValueError, match="skips terminal tool"):
        WorkflowPlan(
            "bad", (WorkflowStep("a.b.c"), WorkflowStep("x.y.z")),
            terminal_tool="x.y.z",
            skip_edges=(SkipEdge("flag", frozenset({True}), ("x.y.z",)),),
        )


def test_plan_for_mode():
    assert plan_for_mode("SWING_LONG") is SWING_LONG_PLAN
    assert plan_for_mode("OPTIONS_INTRADAY") is PLAN
    assert plan_for_mode("FUTURES_SCALP") is None


def test_validation_plan_terminal_is_sizing():
    assert VALIDATION_PLAN.terminal_tool == "risk.plan.size"
