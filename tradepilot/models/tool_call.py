"""ToolCall ORM — logging table for tool invocations within a run.

Invariants:
    - Every registry outcome seen by the loop (success or error) is logged
    - run_id links to the owning TradeRun; sequence preserves call order

Design Decisions:
    - Logging table, not enforcement: observability only, no business logic depends on it
    - JSON columns for input/output: flexible schema for varied tool signatures
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, Boolean, DateTime, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from tradepilot.db.base import Base


class ToolCall(Base):
    """ToolCall log entry — audit trail for agent tool usage."""
    __tablename__ = "tool_calls"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    run_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("trade_runs.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    phase: Mapped[str] = mapped_column(String(30), nullable=False)
    tool_name: Mapped[str] = mapped_column(String(100), nullable=False)
    tool_input: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    tool_output: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error_code: Mapped[str | None] = mapped_column(
        String(50), nullable=True,
    )
    auto_invoked: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    run: Mapped["TradeRun"] = relationship("TradeRun", back_populates="tool_calls")
