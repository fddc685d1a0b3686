"""Tool Descriptor — immutable contract for one tool: schemas, dependencies, safety metadata.

Invariants:
    - Descriptors are frozen; collections are stored as tuples/frozensets/read-only
      maps, and input/output schemas are frozen at every nesting level
    - name is dotted (domain.category.action) and never contains "__" (reserved for API encoding)
    - derived_inputs keys name input fields; their values are Context paths
    - produces maps a Context key (optionally templated with resolved args) to a result path
    - validate_input/validate_output return a list of messages; empty list means valid

Design Decisions:
    - JSON Schema (Draft 7) for inputs/outputs: the same dict is sent to the model
      as input_schema and used for host-side validation
    - Model-facing name encodes "." as "__": Anthropic tool names allow [a-zA-Z0-9_-] only
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from jsonschema import Draft7Validator

from tradepilot.core.domain_types import Phase, RiskLevel, ToolCategory

API_NAME_SEPARATOR = "__"


def _freeze(value: Any) -> Any:
    """dict → MappingProxyType and list → tuple, recursively."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def _to_plain(value: Any) -> Any:
    """MappingProxyType → dict and tuple → list, recursively (for JSON and the SDK)."""
    if isinstance(value, Mapping):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


EMPTY_OBJECT_SCHEMA: Mapping[str, Any] = _freeze({"type": "object", "properties": {}})


def to_api_name(name: str) -> str:
    """market.instrument.find → market__instrument__find"""
    return name.replace(".", API_NAME_SEPARATOR)


def from_api_name(api_name: str) -> str:
    return api_name.replace(API_NAME_SEPARATOR, ".")


def validate_schema(schema: Mapping[str, Any], payload: Any) -> list[str]:
    """Validate payload against a JSON Schema. Returns path-prefixed messages."""
    validator = Draft7Validator(_to_plain(schema))
    errors = []
    for err in sorted(
        validator.iter_errors(payload), key=lambda e: [str(p) for p in e.path],
    ):
        path = ".".join(str(p) for p in err.path) if err.path else None
        errors.append(f"{path}: {err.message}" if path else err.message)
    return errors


@dataclass(frozen=True)
class ToolDependencies:
    """Preconditions checked by the registry before a handler runs."""
    required_tools: tuple[str, ...] = ()
    required_outputs: tuple[str, ...] = ()
    derived_inputs: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({}),
    )
    forbidden_states: frozenset[Phase] = frozenset()
    max_calls_per_trade: int | None = None

    def __post_init__(self):
        object.__setattr__(self, "required_tools", tuple(self.required_tools))
        object.__setattr__(self, "required_outputs", tuple(self.required_outputs))
        object.__setattr__(
            self, "derived_inputs", MappingProxyType(dict(self.derived_inputs)),
        )
        object.__setattr__(
            self, "forbidden_states", frozenset(self.forbidden_states),
        )


@dataclass(frozen=True)
class ToolDescriptor:
    """Static contract for a tool. Paired with a handler inside the registry."""
    name: str
    category: ToolCategory
    description: str
    when_to_use: str = ""
    when_not_to_use: str = ""
    inputs: Mapping[str, Any] = field(default_factory=lambda: EMPTY_OBJECT_SCHEMA)
    outputs: Mapping[str, Any] | None = None
    dependencies: ToolDependencies = field(default_factory=ToolDependencies)
    produces: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({}),
    )
    safety_rules: tuple[str, ...] = ()
    risk_level: RiskLevel = RiskLevel.NONE
    side_effects: bool = False

    def __post_init__(self):
        if not self.name or API_NAME_SEPARATOR in self.name:
            raise ValueError(
                f"Invalid tool name {self.name!r}: must be non-empty "
                f"and must not contain '{API_NAME_SEPARATOR}'",
            )
        object.__setattr__(self, "inputs", _freeze(self.inputs))
        if self.outputs is not None:
            object.__setattr__(self, "outputs", _freeze(self.outputs))
        object.__setattr__(self, "produces", MappingProxyType(dict(self.produces)))
        object.__setattr__(self, "safety_rules", tuple(self.safety_rules))

    @property
    def api_name(self) -> str:
        return to_api_name(self.name)

    @property
    def required_inputs(self) -> frozenset[str]:
        return frozenset(self.inputs.get("required", ()))

    def validate_input(self, args: Mapping[str, Any]) -> list[str]:
        return validate_schema(self.inputs, dict(args))

    def validate_output(self, result: Any) -> list[str]:
        if self.outputs is None:
            return []
        return validate_schema(self.outputs, result)

    def to_anthropic_tool(self) -> dict:
        """Tool definition in Anthropic Messages API format."""
        description = self.description
        if self.when_to_use:
            description += f"\nWhen to use: {self.when_to_use}"
        if self.when_not_to_use:
            description += f"\nWhen NOT to use: {self.when_not_to_use}"
        derived = sorted(self.dependencies.derived_inputs)
        if derived:
            description += (
                f"\nAuto-filled from context (do not guess): {', '.join(derived)}"
            )
        return {
            "name": self.api_name,
            "description": description,
            "input_schema": _to_plain(self.inputs),
        }

    def to_schema(self) -> dict:
        """Full JSON-serializable contract (diagnostics and the /tools route)."""
        deps = self.dependencies
        return {
            "name": self.name,
            "category": self.category.value,
            "description": self.description,
            "when_to_use": self.when_to_use,
            "when_not_to_use": self.when_not_to_use,
            "inputs": _to_plain(self.inputs),
            "outputs": _to_plain(self.outputs) if self.outputs else None,
            "dependencies": {
                "required_tools": list(deps.required_tools),
                "required_outputs": list(deps.required_outputs),
                "derived_inputs": dict(deps.derived_inputs),
                "forbidden_states": sorted(p.value for p in deps.forbidden_states),
                "max_calls_per_trade": deps.max_calls_per_trade,
            },
            "produces": dict(self.produces),
            "safety_rules": list(self.safety_rules),
            "risk_level": self.risk_level.value,
            "side_effects": self.side_effects,
        }
