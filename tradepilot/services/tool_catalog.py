"""Tool Catalog — the full descriptor list and registry construction from host handlers.

Invariants:
    - CATALOGUE holds each descriptor once (the instrument lookup is shared by both
      analysis modes)
    - build_registry() only registers descriptors that have a handler; missing
      handlers are logged, never silently bound to a placeholder
    - Handlers are supplied by the host (broker/indicator code is out of scope here)

Design Decisions:
    - Explicit imports from each define_*_tools.py: no auto-discovery
    - Handler binding via a "module:factory" import string keeps broker SDKs out of
      this package's dependency list
"""

import importlib
import logging
from typing import Any, Mapping

from tradepilot.core.tool_descriptor import ToolDescriptor
from tradepilot.services.define_account_tools import VALIDATION_TOOLS
from tradepilot.services.define_market_tools import OPTIONS_ANALYSIS_TOOLS
from tradepilot.services.define_order_tools import EXECUTION_TOOLS
from tradepilot.services.define_swing_tools import SWING_ANALYSIS_TOOLS
from tradepilot.services.tool_registry import Handler, ToolRegistry

logger = logging.getLogger(__name__)


def _unique(*groups: list[ToolDescriptor]) -> list[ToolDescriptor]:
    seen: dict[str, ToolDescriptor] = {}
    for group in groups:
        for descriptor in group:
            seen.setdefault(descriptor.name, descriptor)
    return list(seen.values())


CATALOGUE: list[ToolDescriptor] = _unique(
    OPTIONS_ANALYSIS_TOOLS,    # 7 tools
    SWING_ANALYSIS_TOOLS,      # 3 new + shared instrument lookup
    VALIDATION_TOOLS,          # 3 tools
    EXECUTION_TOOLS,           # 1 tool
)


def build_registry(
    handlers: Mapping[str, Handler], dry_run: bool = True,
) -> ToolRegistry:
    """Register every catalogue descriptor that has a handler."""
    registry = ToolRegistry(dry_run=dry_run)
    for descriptor in CATALOGUE:
        handler = handlers.get(descriptor.name)
        if handler is None:
            logger.warning(
                "No handler bound; tool not registered",
                extra={"tool_name": descriptor.name},
            )
            continue
        registry.register(descriptor, handler)
    unknown = set(handlers) - {d.name for d in CATALOGUE}
    if unknown:
        logger.warning(f"Handlers for unknown tools ignored: {sorted(unknown)}")
    return registry


def load_handlers(target: str | None) -> dict[str, Any]:
    """Import "package.module:factory" and return factory() → {tool_name: handler}."""
    if not target:
        return {}
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise ValueError(f"tool_handlers must be 'module:factory', got {target!r}")
    factory = getattr(importlib.import_module(module_name), attr)
    handlers = factory()
    if not isinstance(handlers, Mapping):
        raise TypeError(f"{target} must return a mapping of tool name to handler")
    return dict(handlers)
