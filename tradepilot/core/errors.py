"""Error Hierarchy — typed, categorized exceptions for every TradePilot failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - to_response() produces the REST envelope; to_tool_result() produces a registry outcome dict
    - Registry-level errors (unknown tool, precondition, invalid args, handler) never
      cross the registry boundary as exceptions: they are converted to outcome dicts
    - Guard and kill-switch errors always carry the failed rules for auditability

Design Decisions:
    - Single hierarchy with TradePilotError base: FastAPI global handler catches all
    - ErrorContext as dataclass: run_id/phase/tool_name travel with the error into logs
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"
    CONFLICT = "conflict"
    SAFETY = "safety"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: str | None = None
    tool_name: str | None = None
    phase: str | None = None
    step: int | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class TradePilotError(Exception):
    """Base exception for all TradePilot errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "run_id": self.context.run_id,
                    "tool_name": self.context.tool_name,
                    "phase": self.context.phase,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }

    def details(self) -> dict:
        """Extra fields merged into to_tool_result(). Subclasses override."""
        return {}

    def to_tool_result(self) -> dict:
        """Convert to the registry outcome shape consumed by the agent loop."""
        return {
            "status": "error",
            "tool": self.context.tool_name,
            "error_code": self.code,
            "message": f"ERROR: {self.message}",
            **self.details(),
        }


# ─── Registry Errors (400-level) ────────────────────────────────

class UnknownToolError(TradePilotError):
    """Tool name is not registered."""
    def __init__(self, tool_name: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.tool_name = tool_name
        super().__init__(
            f"Tool '{tool_name}' does not exist.",
            "UNKNOWN_TOOL", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.WARNING, ctx, 404,
        )
        self.tool_name = tool_name


class PreconditionFailedError(TradePilotError):
    """Dependency, derived input, forbidden state or call limit not satisfied."""
    def __init__(
        self, tool_name: str, unmet: list[str], context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.tool_name = tool_name
        super().__init__(
            f"Cannot call {tool_name}: {'; '.join(unmet)}",
            "PRECONDITION_FAILED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, ctx, 409,
        )
        self.tool_name = tool_name
        self.unmet = unmet

    def details(self) -> dict:
        return {"unmet": list(self.unmet)}


class ToolValidationError(TradePilotError):
    """Tool arguments violate the descriptor's input schema."""
    def __init__(
        self, tool_name: str, errors: list[str], context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.tool_name = tool_name
        super().__init__(
            f"Invalid arguments for {tool_name}: {'; '.join(errors)}",
            "INVALID_ARGUMENTS", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, ctx, 400,
        )
        self.tool_name = tool_name
        self.errors = errors

    def details(self) -> dict:
        return {"errors": list(self.errors)}


class HandlerError(TradePilotError):
    """Tool handler raised, returned an error, or broke its output contract."""
    def __init__(
        self,
        tool_name: str,
        message: str,
        handler_code: str | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.tool_name = tool_name
        super().__init__(
            f"{tool_name} failed: {message}",
            "HANDLER_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, ctx, 502,
        )
        self.tool_name = tool_name
        self.handler_message = message
        self.handler_code = handler_code

    def details(self) -> dict:
        return {"handler_code": self.handler_code} if self.handler_code else {}


class DuplicateToolError(TradePilotError):
    """A descriptor with the same name is already registered."""
    def __init__(self, tool_name: str, context: ErrorContext | None = None):
        super().__init__(
            f"Tool '{tool_name}' is already registered",
            "TOOL_ALREADY_REGISTERED", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )
        self.tool_name = tool_name


class ResourceNotFoundError(TradePilotError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )


# ─── Run Errors ─────────────────────────────────────────────────

class NonConvergenceError(TradePilotError):
    """Agent loop exhausted its step budget without a final answer."""
    def __init__(
        self, max_steps: int, next_tool: str | None = None,
        context: ErrorContext | None = None,
    ):
        pending = f" (next required tool: {next_tool})" if next_tool else ""
        super().__init__(
            f"Agent did not converge within {max_steps} steps{pending}",
            "NON_CONVERGENCE", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 500,
        )
        self.max_steps = max_steps
        self.next_tool = next_tool


class GuardRejectedError(TradePilotError):
    """A phase checklist failed. Carries the GuardResult."""
    def __init__(self, guard_result, context: ErrorContext | None = None):
        super().__init__(
            f"{guard_result.phase.value} checks failed: {guard_result.reason}",
            "GUARD_REJECTED", ErrorCategory.SAFETY,
            ErrorSeverity.ERROR, context, 422,
        )
        self.guard_result = guard_result

    def details(self) -> dict:
        return {
            "action": self.guard_result.action.value,
            "failed_rules": [f.rule_id for f in self.guard_result.failures],
        }


class KillSwitchTriggeredError(TradePilotError):
    """A hard system condition forced an immediate halt."""
    def __init__(
        self, reason: str, condition_id: str | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Kill switch triggered: {reason}",
            "KILL_SWITCH_TRIGGERED", ErrorCategory.SAFETY,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.reason = reason
        self.condition_id = condition_id

    def details(self) -> dict:
        return {"condition_id": self.condition_id}


class InvalidTransitionError(TradePilotError):
    """Phase transition that is backward, skips a phase, or leaves a terminal state."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_PHASE_TRANSITION", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.CRITICAL, context, 409,
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DatabaseError(TradePilotError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class AnthropicAPIError(TradePilotError):
    """Anthropic API call failed."""
    def __init__(
        self,
        message: str,
        api_error_type: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"Anthropic API error ({api_error_type}): {message}",
            "ANTHROPIC_API_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx, 503,
        )
        self.api_error_type = api_error_type
