"""Persistence adapter for automation runs.

Every write is a single-row commit. A run is created in the running state and
finalized exactly once; the store refuses to touch a run that already reached
a terminal state, which keeps the history append-only.
"""

from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from autopilot.core.datetime_utils import get_cutoff, utc_now
from autopilot.core.errors import PersistenceError, RunAlreadyFinalizedError, RunNotFoundError
from autopilot.core.logging import get_logger
from autopilot.core.retry import RetryConfig, retry_with_backoff
from autopilot.models.automation_run import AgentKind, AutomationRun, RunStatus, TriggerKind

logger = get_logger(__name__)

T = TypeVar("T")


class TransientPersistenceError(PersistenceError):
    """A write failed in a way that may succeed on a later attempt."""


class RunStore:
    """Create, finalize and query automation runs on one session."""

    def __init__(self, db: AsyncSession, finalize_retry: RetryConfig | None = None) -> None:
        self.db = db
        # Only transient write failures are worth another attempt
        self.finalize_retry = replace(
            finalize_retry or RetryConfig(),
            retryable_exceptions=(TransientPersistenceError,),
        )

    async def _commit(self, operation: str, write: Callable[[], Awaitable[T]]) -> T:
        try:
            result = await write()
            await self.db.commit()
            return result
        except PersistenceError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.bind(operation=operation, error=str(e)).error("run_store_write_failed")
            raise TransientPersistenceError(f"Failed to {operation}: {e.__class__.__name__}") from e

    async def create(
        self,
        business_id: str,
        user_id: str,
        agent_kind: AgentKind,
        trigger_kind: TriggerKind,
        trigger_reason: str,
        input: dict[str, Any],
    ) -> str:
        """Insert a running record and return its id.

        Raises:
            PersistenceError: The row could not be written; no work may start
        """

        async def _write() -> str:
            run = AutomationRun(
                business_id=business_id,
                user_id=user_id,
                agent_kind=agent_kind,
                trigger_kind=trigger_kind,
                trigger_reason=trigger_reason,
                input=input,
                status=RunStatus.RUNNING,
                started_at=utc_now(),
            )
            self.db.add(run)
            await self.db.flush()
            return run.id

        run_id = await self._commit("create automation run", _write)
        logger.bind(
            run_id=run_id,
            business_id=business_id,
            agent_kind=agent_kind.value,
            trigger_kind=trigger_kind.value,
        ).info("run_created")
        return run_id

    async def get(self, run_id: str) -> AutomationRun | None:
        try:
            return await self.db.get(AutomationRun, run_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load run: {e.__class__.__name__}") from e

    async def _load_running(self, run_id: str) -> AutomationRun:
        run = await self.db.get(AutomationRun, run_id, populate_existing=True)
        if run is None:
            raise RunNotFoundError(f"Automation run {run_id} not found")
        if run.status.is_terminal:
            raise RunAlreadyFinalizedError(
                f"Automation run {run_id} already finalized as {run.status.value}"
            )
        return run

    async def finalize_success(
        self,
        run_id: str,
        output: dict[str, Any],
        summary: str,
        narrative_summary: str,
        *,
        replay_reference: str | None = None,
        requires_approval: bool = False,
        duration_ms: int | None = None,
    ) -> AutomationRun:
        """Move a running run to completed, or needs_approval when flagged."""

        async def _write() -> AutomationRun:
            run = await self._load_running(run_id)
            run.status = RunStatus.NEEDS_APPROVAL if requires_approval else RunStatus.COMPLETED
            run.output = output
            run.summary = summary
            run.narrative_summary = narrative_summary
            run.replay_reference = replay_reference
            run.requires_approval = requires_approval
            run.duration_ms = max(0, duration_ms) if duration_ms is not None else None
            run.completed_at = utc_now()
            await self.db.flush()
            return run

        run = await retry_with_backoff(
            lambda: self._commit("complete automation run", _write),
            config=self.finalize_retry,
            operation_name=f"finalize_success:{run_id}",
        )
        logger.bind(run_id=run_id, status=run.status.value, duration_ms=run.duration_ms).info(
            "run_finalized"
        )
        return run

    async def finalize_failure(
        self,
        run_id: str,
        error_message: str,
        *,
        replay_reference: str | None = None,
        duration_ms: int | None = None,
    ) -> AutomationRun:
        """Move a running run to failed."""

        async def _write() -> AutomationRun:
            run = await self._load_running(run_id)
            run.status = RunStatus.FAILED
            run.error_message = error_message
            run.replay_reference = replay_reference
            run.duration_ms = max(0, duration_ms) if duration_ms is not None else None
            run.completed_at = utc_now()
            await self.db.flush()
            return run

        run = await retry_with_backoff(
            lambda: self._commit("fail automation run", _write),
            config=self.finalize_retry,
            operation_name=f"finalize_failure:{run_id}",
        )
        logger.bind(run_id=run_id, error=error_message).warning("run_failed")
        return run

    async def latest_completed(
        self,
        business_id: str,
        agent_kind: AgentKind,
    ) -> AutomationRun | None:
        """Most recent completed run for the pair; needs_approval and failed runs never count."""
        stmt = (
            select(AutomationRun)
            .where(
                AutomationRun.business_id == business_id,
                AutomationRun.agent_kind == agent_kind,
                AutomationRun.status == RunStatus.COMPLETED,
            )
            .order_by(AutomationRun.completed_at.desc())
            .limit(1)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to query prior run: {e.__class__.__name__}") from e
        return result.scalar_one_or_none()

    async def list_runs(
        self,
        business_id: str | None = None,
        agent_kind: AgentKind | None = None,
        status: RunStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AutomationRun]:
        query = select(AutomationRun).order_by(AutomationRun.started_at.desc())

        if business_id:
            query = query.where(AutomationRun.business_id == business_id)
        if agent_kind:
            query = query.where(AutomationRun.agent_kind == agent_kind)
        if status:
            query = query.where(AutomationRun.status == status)

        result = await self.db.execute(query.offset(offset).limit(limit))
        return list(result.scalars().all())

    async def find_stale_running(self, older_than_minutes: int) -> list[AutomationRun]:
        """Runs still running long after any deadline, for a reconciliation sweep."""
        cutoff = get_cutoff(minutes=older_than_minutes)
        result = await self.db.execute(
            select(AutomationRun)
            .where(AutomationRun.status == RunStatus.RUNNING, AutomationRun.started_at < cutoff)
            .order_by(AutomationRun.started_at)
        )
        return list(result.scalars().all())
