"""Campaign performance sync endpoints."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from autopilot.core.errors import PersistenceError
from autopilot.dependencies import PerformanceSync
from autopilot.models.automation_run import TriggerKind
from autopilot.schemas.run import RunResult

router = APIRouter()


class PerformanceSyncRequest(BaseModel):
    business_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    trigger_kind: TriggerKind = TriggerKind.MANUAL


@router.post("/performance/sync", response_model=RunResult)
async def sync_performance(body: PerformanceSyncRequest, engine: PerformanceSync) -> RunResult:
    """
    Sync every live campaign of a business.

    The per-campaign report is in the run output under "results".
    """
    try:
        return await engine.sync_business(
            business_id=body.business_id,
            user_id=body.user_id,
            trigger_kind=body.trigger_kind,
        )
    except PersistenceError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to record performance sync run",
        ) from e
