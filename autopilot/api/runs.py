"""Agent run API endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from autopilot.agents import get_agent, resolve_input
from autopilot.core.errors import InputValidationError, PersistenceError, PreconditionError
from autopilot.core.logging import get_logger
from autopilot.dependencies import DBSession, Executor, Store
from autopilot.models.automation_run import AgentKind, RunStatus, TriggerKind
from autopilot.models.business import Business
from autopilot.schemas.run import RunRequest, RunResponse, RunResult

logger = get_logger(__name__)

router = APIRouter()


class RunCreateRequest(BaseModel):
    """Request body for starting an agent run."""

    business_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    trigger_kind: TriggerKind = TriggerKind.MANUAL
    trigger_reason: str | None = None
    # Explicit agent input; missing values are filled from the business profile
    params: dict[str, Any] = Field(default_factory=dict)


@router.post("/agents/{agent_kind}/runs", response_model=RunResult)
async def create_run(
    agent_kind: str,
    body: RunCreateRequest,
    db: DBSession,
    executor: Executor,
) -> RunResult:
    """
    Run an agent synchronously and return the finalized run.

    Provider failures still return 200 with a failed run; only problems
    that prevent a run from being recorded are HTTP errors.
    """
    try:
        agent = get_agent(agent_kind)
        business = await db.get(Business, body.business_id)
        request = RunRequest(
            business_id=body.business_id,
            user_id=body.user_id,
            trigger_kind=body.trigger_kind,
            trigger_reason=body.trigger_reason,
            input=resolve_input(agent, business, body.params),
        )
        return await executor.execute(agent, request)
    except InputValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e
    except PreconditionError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message
        ) from e
    except PersistenceError as e:
        logger.bind(agent_kind=agent_kind, error=e.message).error("run_create_failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to record automation run",
        ) from e


@router.get("/runs", response_model=list[RunResponse])
async def list_runs(
    store: Store,
    business_id: str | None = Query(default=None, description="Filter by business"),
    agent_kind: AgentKind | None = Query(default=None, description="Filter by agent kind"),
    run_status: RunStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[RunResponse]:
    """List run history, newest first."""
    runs = await store.list_runs(
        business_id=business_id,
        agent_kind=agent_kind,
        status=run_status,
        limit=limit,
        offset=offset,
    )
    return [RunResponse.model_validate(run) for run in runs]


@router.get("/runs/{run_id}", response_model=RunResponse)
async def get_run(run_id: str, store: Store) -> RunResponse:
    run = await store.get(run_id)
    if run is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Run not found")
    return RunResponse.model_validate(run)
