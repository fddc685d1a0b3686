"""Runs — start a phased workflow run and read back journaled runs.

Invariants:
    - Every finished run is journaled before the response is returned
    - Guard and kill-switch outcomes are results (200/201), not HTTP errors
    - Unknown run ids → 404 via ResourceNotFoundError
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from tradepilot.infrastructure.database import get_db
from tradepilot.schemas.run import RunCreate, RunResponse
from tradepilot.services.phased_workflow import PhasedWorkflow
from tradepilot.services.run_journal import get_run, run_to_dict, save_run

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/runs", tags=["runs"])


def get_workflow(request: Request) -> PhasedWorkflow:
    return request.app.state.workflow


@router.post(
    "", response_model=RunResponse, status_code=status.HTTP_201_CREATED,
)
async def create_run(
    body: RunCreate,
    db: AsyncSession = Depends(get_db),
    workflow: PhasedWorkflow = Depends(get_workflow),
):
    """Run the full workflow for one task and journal the outcome."""
    result = await workflow.run(body.task, body.context)
    await save_run(db, result)
    return RunResponse(**result.to_dict())


@router.get("/{run_id}")
async def read_run(run_id: UUID, db: AsyncSession = Depends(get_db)):
    run = await get_run(db, run_id)
    return run_to_dict(run)
