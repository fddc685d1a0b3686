"""Integration Tests: ToolRegistry — contract-checked execution against fake handlers.

Invariants:
    - call() never raises for tool-level failures
    - Failed calls leave the ExecutionContext untouched
    - Derived inputs override model-supplied values
    - Dry-run registries never reach side-effecting handlers

Design Decisions:
    - Real descriptors from the catalogue, fake broker handlers (tests/services/fake_handlers.py)
"""

import pytest

from tradepilot.core.domain_types import Phase, ToolCategory
from tradepilot.core.errors import DuplicateToolError
from tradepilot.core.execution_context import ExecutionContext
from tradepilot.core.tool_descriptor import ToolDescriptor
from tradepilot.services.define_market_tools import FIND_INSTRUMENT
from tradepilot.services.tool_catalog import build_registry
from tradepilot.services.tool_registry import ToolRegistry


def _analysis_ctx() -> ExecutionContext:
    return ExecutionContext(phase=Phase.ANALYSIS, run_id="run-test")


async def _resolve_instrument(registry, ctx):
    outcome = await registry.call("market.instrument.find", {"symbol": "nifty"}, ctx)
    assert outcome["status"] == "success"
    return outcome


# ==============================================================================
# Registration & lookup
# ==============================================================================


def test_duplicate_registration_rejected():
    registry = ToolRegistry()
    registry.register(FIND_INSTRUMENT, lambda args: {})
    with pytest.raises(DuplicateToolError):
        registry.register(FIND_INSTRUMENT, lambda args: {})


def test_lookup_by_api_name(registry):
    assert registry.descriptor("market__instrument__find") is FIND_INSTRUMENT
    assert "market__instrument__find" in registry
    assert registry.canonical_name("options__chain__fetch") == "options.chain.fetch"


def test_tool_schemas_restricted_and_ordered(registry):
    schemas = registry.tool_schemas(["options.chain.fetch", "market.instrument.find", "x.y.z"])
    assert [s["name"] for s in schemas] == [
        "options__chain__fetch", "market__instrument__find",
    ]


def test_describe_lists_every_tool(registry):
    names = {d["name"] for d in registry.describe()}
    assert "orders.super.place" in names
    assert len(names) == len(registry)


# ==============================================================================
# Success path
# ==============================================================================


async def test_success_records_call_and_outputs(registry, broker):
    ctx = _analysis_ctx()
    outcome = await _resolve_instrument(registry, ctx)
    assert outcome["tool"] == "market.instrument.find"
    assert outcome["result"]["symbol"] == "NIFTY"
    assert ctx.was_called("market.instrument.find")
    assert ctx.get("symbol") == "NIFTY"
    assert ctx.resolve("instrument.security_id") == "13"
    assert broker.called() == ["market.instrument.find"]


async def test_api_name_call_is_recorded_canonically(registry):
    ctx = _analysis_ctx()
    await registry.call("market__instrument__find", {"symbol": "NIFTY"}, ctx)
    assert ctx.called_tools == ["market.instrument.find"]


async def test_derived_inputs_override_model_values(registry, broker):
    ctx = _analysis_ctx()
    await _resolve_instrument(registry, ctx)
    outcome = await registry.call(
        "market.history.intraday",
        {"security_id": "HALLUCINATED", "exchange_segment": "NSE_FNO", "interval": "15"},
        ctx,
    )
    assert outcome["status"] == "success"
    assert broker.log[-1]["args"] == {
        "security_id": "13", "exchange_segment": "IDX_I", "interval": "15",
    }
    assert ctx.has("candles_15m")


async def test_sync_handler_supported():
    registry = ToolRegistry()
    registry.register(FIND_INSTRUMENT, lambda args: {
        "security_id": "1", "exchange_segment": "NSE_EQ", "symbol": args["symbol"],
    })
    outcome = await registry.call("market.instrument.find", {"symbol": "TCS"}, _analysis_ctx())
    assert outcome["status"] == "success"


# ==============================================================================
# Preconditions
# ==============================================================================


async def test_precondition_failure_does_not_mutate_context(registry, broker):
    ctx = _analysis_ctx()
    before = (dict(ctx.values), list(ctx.called_tools))
    outcome = await registry.call("options.chain.fetch", {}, ctx)
    assert outcome["status"] == "error"
    assert outcome["error_code"] == "PRECONDITION_FAILED"
    assert "requires options.expiry.list to be called first" in outcome["unmet"]
    assert (ctx.values, ctx.called_tools) == before
    assert broker.log == []


async def test_forbidden_state_refused(registry):
    ctx = ExecutionContext(phase=Phase.EXECUTION)
    outcome = await registry.call("market.instrument.find", {"symbol": "NIFTY"}, ctx)
    assert outcome["error_code"] == "PRECONDITION_FAILED"
    assert outcome["unmet"] == ["not allowed during phase execution"]


async def test_call_limit_refused(registry):
    ctx = _analysis_ctx()
    await _resolve_instrument(registry, ctx)
    await _resolve_instrument(registry, ctx)
    outcome = await registry.call("market.instrument.find", {"symbol": "NIFTY"}, ctx)
    assert outcome["unmet"] == ["call limit reached (2/2 for this trade)"]
    assert ctx.call_count("market.instrument.find") == 2


async def test_invalid_arguments(registry):
    ctx = _analysis_ctx()
    await _resolve_instrument(registry, ctx)
    outcome = await registry.call("market.history.intraday", {"interval": "7"}, ctx)
    assert outcome["error_code"] == "INVALID_ARGUMENTS"
    assert outcome["errors"][0].startswith("interval:")
    assert not ctx.has("candles_7m")


async def test_unknown_tool(registry):
    outcome = await registry.call("market.nothing.here", {}, _analysis_ctx())
    assert outcome["error_code"] == "UNKNOWN_TOOL"
    assert outcome["tool"] == "market.nothing.here"


# ==============================================================================
# Handler failures
# ==============================================================================


async def test_handler_exception_becomes_handler_error(registry, broker):
    broker.overrides["market.instrument.find"] = ConnectionError("broker down")
    ctx = _analysis_ctx()
    outcome = await registry.call("market.instrument.find", {"symbol": "NIFTY"}, ctx)
    assert outcome["error_code"] == "HANDLER_ERROR"
    assert outcome["message"] == "ERROR: market.instrument.find failed: broker down"
    assert ctx.called_tools == []


async def test_handler_error_dict_becomes_handler_error(registry, broker):
    broker.overrides["market.instrument.find"] = {
        "status": "error", "message": "symbol not found", "error_code": "DH-905",
    }
    outcome = await registry.call("market.instrument.find", {"symbol": "XYZ"}, _analysis_ctx())
    assert outcome["error_code"] == "HANDLER_ERROR"
    assert outcome["handler_code"] == "DH-905"
    assert "symbol not found" in outcome["message"]


async def test_output_contract_violation(registry, broker):
    broker.overrides["market.instrument.find"] = {"security_id": "13"}
    ctx = _analysis_ctx()
    outcome = await registry.call("market.instrument.find", {"symbol": "NIFTY"}, ctx)
    assert outcome["error_code"] == "HANDLER_ERROR"
    assert outcome["handler_code"] == "INVALID_OUTPUT"
    assert not ctx.has("instrument")


# ==============================================================================
# Dry run
# ==============================================================================


async def _executable_ctx() -> ExecutionContext:
    ctx = ExecutionContext(phase=Phase.EXECUTION, run_id="run-test")
    ctx.set("executable_plan", {
        "security_id": "2885", "exchange_segment": "NSE_EQ",
        "transaction_type": "BUY", "quantity": 75,
        "entry_price": 95.25, "stop_loss": 70.0, "target_price": 140.0,
    })
    return ctx


async def test_dry_run_simulates_write_tool(registry, broker):
    ctx = await _executable_ctx()
    outcome = await registry.call("orders.super.place", {}, ctx)
    assert outcome["status"] == "success"
    assert outcome["result"]["status"] == "simulated"
    assert outcome["result"]["order_id"].startswith("DRYRUN-")
    assert outcome["args"]["price"] == 95.25
    assert ctx.get("order_id") == outcome["result"]["order_id"]
    assert broker.log == []


async def test_live_registry_reaches_write_handler(broker):
    registry = build_registry(broker.handlers(), dry_run=False)
    ctx = await _executable_ctx()
    outcome = await registry.call("orders.super.place", {}, ctx)
    assert outcome["result"]["order_id"] == "ORD-1001"
    assert broker.called() == ["orders.super.place"]


async def test_dry_run_still_checks_preconditions(registry):
    outcome = await registry.call(
        "orders.super.place", {}, ExecutionContext(phase=Phase.EXECUTION),
    )
    assert outcome["error_code"] == "PRECONDITION_FAILED"


async def test_dry_run_does_not_affect_read_tools(registry, broker):
    await _resolve_instrument(registry, _analysis_ctx())
    assert broker.called() == ["market.instrument.find"]


def test_registry_defaults_to_live():
    descriptor = ToolDescriptor(
        name="a.b.c", category=ToolCategory.ANALYSIS, description="x",
    )
    registry = ToolRegistry()
    registry.register(descriptor, lambda args: {})
    assert registry.dry_run is False
