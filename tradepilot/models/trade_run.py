"""TradeRun ORM — journal entry for one finished workflow run.

Invariants:
    - Written once, after the run reaches a terminal state
    - final_status is one of FinalStatus values; terminal_state one of TerminalState values
    - phases/trace store the RunResult payload as-is

Design Decisions:
    - JSON columns for phases and trace: the run result shape is owned by services/phased_workflow.py
    - cascade delete for tool calls
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, Integer, Boolean, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from tradepilot.db.base import Base


class TradeRun(Base):
    """TradeRun aggregate root — owns the run's tool call log."""
    __tablename__ = "trade_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    task: Mapped[str] = mapped_column(Text, nullable=False)
    mode: Mapped[str] = mapped_column(String(30), nullable=False)
    final_status: Mapped[str] = mapped_column(String(30), nullable=False)
    terminal_state: Mapped[str] = mapped_column(String(20), nullable=False)
    final_output: Mapped[str] = mapped_column(Text, nullable=False, default="")
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    phases: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    trace: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    llm_calls: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    dry_run: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    tool_calls: Mapped[list["ToolCall"]] = relationship(
        "ToolCall", back_populates="run",
        cascade="all, delete-orphan", lazy="selectin",
        order_by="ToolCall.sequence",
    )
