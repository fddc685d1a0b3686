"""ORM Models — SQLAlchemy declarative models for the run journal.

Invariants:
    - All models inherit from Base (db/base.py)
    - TradeRun is the aggregate root; tool calls are scoped by run_id

Design Decisions:
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from tradepilot.models.trade_run import TradeRun  # noqa: F401
from tradepilot.models.tool_call import ToolCall  # noqa: F401
