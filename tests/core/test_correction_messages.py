"""Correction message tests — pure builders for corrective user turns.

Tests cover:
    - build_correction_message names the tool by its API name, carries the opener
      for the response kind, the step hint, derived values and fixed args
    - "empty parameters" guidance only when the model supplies nothing
    - Multi-call, skipped-tool, tool-error and rewrite messages
    - describe_value summarizes structures and truncates long scalars
    - format_recommendation for BUY, NO_TRADE and non-dict results
"""

from tradepilot.core.correction_messages import (
    MAX_VALUE_CHARS,
    build_correction_message,
    build_multi_call_message,
    build_rewrite_message,
    build_skipped_tool_message,
    build_tool_error_message,
    describe_value,
    format_recommendation,
)
from tradepilot.core.domain_types import ResponseKind
from tradepilot.core.execution_context import ExecutionContext
from tradepilot.core.workflow_plan import WorkflowStep
from tradepilot.services.define_market_tools import (
    FETCH_EXPIRY_LIST, FETCH_INTRADAY_HISTORY, FIND_INSTRUMENT,
)


def _resolved() -> ExecutionContext:
    return ExecutionContext(values={
        "instrument": {"security_id": "13", "exchange_segment": "IDX_I"},
        "symbol": "NIFTY",
    })


# --- build_correction_message -------------------------------------------------

def test_correction_names_api_tool():
    message = build_correction_message(
        WorkflowStep("options.expiry.list"), FETCH_EXPIRY_LIST, _resolved(),
    )
    assert "You MUST call the options__expiry__list tool now." in message
    assert message.startswith("The workflow is not complete.")


def test_correction_lists_derived_values():
    message = build_correction_message(
        WorkflowStep("options.expiry.list"), FETCH_EXPIRY_LIST, _resolved(),
    )
    assert "security_id='13'" in message
    assert "symbol='NIFTY'" in message


def test_correction_empty_parameters_when_nothing_to_supply():
    message = build_correction_message(
        WorkflowStep("options.expiry.list"), FETCH_EXPIRY_LIST, _resolved(),
    )
    assert "Call it with empty parameters: {}." in message


def test_correction_fixed_args_instead_of_empty_parameters():
    step = WorkflowStep("market.history.intraday", key="history_5m", args={"interval": "5"})
    message = build_correction_message(step, FETCH_INTRADAY_HISTORY, _resolved())
    assert "Use interval='5'." in message
    assert "empty parameters" not in message


def test_correction_model_supplied_input_has_no_empty_guidance():
    step = WorkflowStep("market.instrument.find", hint="Resolve the underlying.")
    message = build_correction_message(step, FIND_INSTRUMENT, ExecutionContext())
    assert "Resolve the underlying." in message
    assert "empty parameters" not in message


def test_correction_opener_per_kind():
    step = WorkflowStep("options.expiry.list")
    code = build_correction_message(step, FETCH_EXPIRY_LIST, _resolved(), ResponseKind.CODE_LIKE)
    intent = build_correction_message(
        step, FETCH_EXPIRY_LIST, _resolved(), ResponseKind.STATED_INTENT,
    )
    assert code.startswith("DO NOT write code.")
    assert intent.startswith("Do not describe what you will do.")


# --- Other builders -----------------------------------------------------------

def test_multi_call_message():
    message = build_multi_call_message(
        "options.expiry.list", ["options.chain.fetch", "advisor.trade.recommend"],
    )
    assert message.startswith("Only options__expiry__list was executed.")
    assert "options__chain__fetch, advisor__trade__recommend" in message
    assert "exactly ONE tool" in message


def test_skipped_tool_message():
    message = build_skipped_tool_message(
        "options.chain.fetch", "The trend is 'avoid'.", "advisor.trade.recommend",
    )
    assert message == (
        "DO NOT call options__chain__fetch now. The trend is 'avoid'. "
        "Call advisor__trade__recommend instead."
    )


def test_skipped_tool_message_without_next_tool():
    assert build_skipped_tool_message("a.b.c", "", None) == "DO NOT call a__b__c now."


def test_tool_error_message_appends_next_tool():
    outcome = {"message": "ERROR: Cannot call x: missing"}
    assert build_tool_error_message(outcome, "options.expiry.list") == (
        "ERROR: Cannot call x: missing The next required tool is options__expiry__list."
    )


def test_tool_error_message_default_text():
    assert build_tool_error_message({}, None) == "ERROR: tool call failed."


def test_rewrite_message():
    assert build_rewrite_message("No side.", "advisor.trade.recommend") == (
        "No side. Call advisor__trade__recommend now."
    )
    assert build_rewrite_message("No side.", None) == "No side."


# --- describe_value -----------------------------------------------------------

def test_describe_value_structures():
    assert describe_value([1, 2, 3]) == "<3 items>"
    assert describe_value({"a": 1}) == "<object>"


def test_describe_value_truncates():
    described = describe_value("x" * 200)
    assert described.endswith("…")
    assert len(described) == MAX_VALUE_CHARS + 1


# --- format_recommendation ----------------------------------------------------

def test_format_buy_recommendation():
    text = format_recommendation({
        "action": "BUY", "side": "CE", "entry_price": 95.25,
        "stop_loss_price": 70, "target_price": 140,
        "quantity": 75, "lots": 1, "score": 78,
    })
    assert text.splitlines() == [
        "BUY CE - Entry: 95.25, SL: 70.00, Target: 140.00",
        "Quantity: 75 (1 lots)",
        "Score: 78/100",
    ]


def test_format_buy_with_plain_stop_loss_key():
    text = format_recommendation({"action": "BUY", "entry_price": 10, "stop_loss": 9})
    assert "SL: 9.00" in text
    assert "Target: n/a" in text


def test_format_no_trade():
    text = format_recommendation({
        "action": "NO_TRADE", "reason": "Range-bound",
        "failed_gates": ["structure", "trend"], "score": 35,
    })
    assert text == "NO_TRADE: Range-bound\nFailed gates: structure, trend\nScore: 35/100"


def test_format_no_trade_default_reason():
    assert format_recommendation({"action": "NO_TRADE"}) == "NO_TRADE: No trade recommended"


def test_format_non_dict():
    assert format_recommendation(None) == "None"
