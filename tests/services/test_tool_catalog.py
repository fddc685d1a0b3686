"""Tool catalogue tests — descriptor set integrity and registry construction.

Tests cover:
    - CATALOGUE names are unique and every plan step names a catalogue tool
    - Every derived input key is declared in its descriptor's input schema
    - Write tools are side-effecting, high risk, and EXECUTION-only
    - build_registry skips tools without a handler and ignores unknown handlers
    - load_handlers imports "module:factory" and rejects malformed targets
"""

import pytest

from tradepilot.core.domain_types import Phase, RiskLevel
from tradepilot.services.tool_catalog import CATALOGUE, build_registry, load_handlers
from tradepilot.services.workflow_plans import (
    ANALYSIS_PLANS, EXECUTION_PLAN, VALIDATION_PLAN,
)

CATALOGUE_NAMES = {d.name for d in CATALOGUE}


def test_catalogue_names_unique():
    assert len(CATALOGUE_NAMES) == len(CATALOGUE) == 14


@pytest.mark.parametrize("plan", [*ANALYSIS_PLANS.values(), VALIDATION_PLAN, EXECUTION_PLAN])
def test_plan_steps_name_catalogue_tools(plan):
    assert set(plan.tool_names) <= CATALOGUE_NAMES


@pytest.mark.parametrize("descriptor", CATALOGUE, ids=lambda d: d.name)
def test_derived_inputs_are_declared_inputs(descriptor):
    properties = descriptor.inputs.get("properties", {})
    assert set(descriptor.dependencies.derived_inputs) <= set(properties)


@pytest.mark.parametrize("descriptor", CATALOGUE, ids=lambda d: d.name)
def test_required_tools_exist(descriptor):
    assert set(descriptor.dependencies.required_tools) <= CATALOGUE_NAMES


def test_write_tools_locked_to_execution():
    writers = [d for d in CATALOGUE if d.side_effects]
    assert [d.name for d in writers] == ["orders.super.place"]
    order = writers[0]
    assert order.risk_level == RiskLevel.HIGH
    assert order.dependencies.max_calls_per_trade == 1
    assert Phase.EXECUTION not in order.dependencies.forbidden_states
    assert set(Phase) - order.dependencies.forbidden_states == {Phase.EXECUTION}


def test_build_registry_skips_missing_handlers():
    registry = build_registry({"market.instrument.find": lambda args: {}})
    assert registry.names() == ["market.instrument.find"]
    assert registry.dry_run is True


def test_build_registry_ignores_unknown_handlers():
    registry = build_registry({"not.a.tool": lambda args: {}}, dry_run=False)
    assert len(registry) == 0
    assert registry.dry_run is False


def test_load_handlers_from_factory():
    handlers = load_handlers("tests.services.fake_handlers:build_handlers")
    assert set(handlers) == CATALOGUE_NAMES


def test_load_handlers_none():
    assert load_handlers(None) == {}


def test_load_handlers_bad_format():
    with pytest.raises(ValueError, match="module:factory"):
        load_handlers("tests.services.fake_handlers")


def test_load_handlers_factory_must_return_mapping():
    with pytest.raises(TypeError):
        load_handlers("tests.services.fake_handlers:FakeBroker")
