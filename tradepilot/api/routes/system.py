"""System — kill-switch status, realized P&L intake and operator halt reset.

Invariants:
    - Realized P&L only flows through DailyLossTracker.record_pnl()
    - Clearing a halt is an explicit operator action; nothing clears it implicitly
"""

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from tradepilot.core.daily_loss import DailyLossTracker
from tradepilot.services.phased_workflow import PhasedWorkflow

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/system", tags=["system"])


class PnlEntry(BaseModel):
    pnl: float


def get_workflow(request: Request) -> PhasedWorkflow:
    return request.app.state.workflow


def get_loss_tracker(request: Request) -> DailyLossTracker:
    return request.app.state.loss_tracker


def _status(workflow: PhasedWorkflow, tracker: DailyLossTracker) -> dict:
    return {
        "halted": workflow.halted_reason is not None,
        "halted_reason": workflow.halted_reason,
        "trading_day": tracker.trading_day.isoformat(),
        "loss_today": tracker.loss_today,
        "max_daily_loss": tracker.max_daily_loss,
        "remaining": tracker.remaining,
    }


@router.get("/status")
async def system_status(
    workflow: PhasedWorkflow = Depends(get_workflow),
    tracker: DailyLossTracker = Depends(get_loss_tracker),
):
    return _status(workflow, tracker)


@router.post("/pnl")
async def record_pnl(
    body: PnlEntry,
    workflow: PhasedWorkflow = Depends(get_workflow),
    tracker: DailyLossTracker = Depends(get_loss_tracker),
):
    """Record a closed trade's realized P&L (negative = loss)."""
    tracker.record_pnl(body.pnl)
    if tracker.breached:
        logger.critical(
            f"Daily loss limit reached: {tracker.loss_today:.2f}",
        )
    return _status(workflow, tracker)


@router.post("/reset")
async def reset_halt(
    workflow: PhasedWorkflow = Depends(get_workflow),
    tracker: DailyLossTracker = Depends(get_loss_tracker),
):
    workflow.reset_halt()
    return _status(workflow, tracker)
