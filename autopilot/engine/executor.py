"""
Run executor: the one place a run's lifecycle is driven.

    validate -> create (running) -> history + context -> provider stream
             -> normalize -> diff -> output + summaries -> finalize (once)

Validation and credential checks happen before any row exists and raise to
the caller. Once a run row exists, every outcome ends in exactly one
finalize call: errors raised while doing the work are converted into a
failed run with a short, non-sensitive message, and a finalize write that
still fails after its retries is logged and reported as finalized=False.
"""

import asyncio
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any

import httpx

from autopilot.agents.base import AgentDefinition
from autopilot.core.datetime_utils import elapsed_ms, utc_now
from autopilot.core.errors import EngineError, PersistenceError, ProviderError, ProviderTimeoutError
from autopilot.core.logging import get_logger
from autopilot.engine.config import EngineConfig
from autopilot.engine.diff import diff_against_run
from autopilot.engine.normalizer import agent_result_keys, coerce_payload, normalize_result
from autopilot.engine.store import RunStore
from autopilot.engine.stream import decode_event_stream, deadline_in
from autopilot.models.automation_run import AutomationRun, RunStatus
from autopilot.schemas.run import (
    DecodeResult,
    DiffResult,
    ProviderTask,
    RunRequest,
    RunResult,
    RunSummaries,
)
from autopilot.services.automation_client import AutomationProvider
from autopilot.services.search_context import ContextSearch
from autopilot.services.summarizer import NarrativeSummarizer

logger = get_logger(__name__)


@dataclass
class _RunTrace:
    """Progress of one run, readable after a failure."""

    stage: str = "starting"
    replay_reference: str | None = None


@dataclass
class _Completed:
    output: dict[str, Any]
    summaries: RunSummaries
    requires_approval: bool


def result_from_run(run: AutomationRun) -> RunResult:
    return RunResult(
        run_id=run.id,
        agent_kind=run.agent_kind,
        status=run.status,
        output=run.output,
        summary=run.summary,
        narrative_summary=run.narrative_summary,
        error_message=run.error_message,
        replay_reference=run.replay_reference,
        requires_approval=run.requires_approval,
        duration_ms=run.duration_ms,
    )


class RunExecutor:
    """Executes agent runs against the automation provider."""

    def __init__(
        self,
        config: EngineConfig,
        store: RunStore,
        provider: AutomationProvider,
        summarizer: NarrativeSummarizer | None = None,
        context_search: ContextSearch | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.provider = provider
        self.summarizer = summarizer
        self.context_search = context_search

    async def execute(self, agent: AgentDefinition, request: RunRequest) -> RunResult:
        """
        Run one agent for one business.

        Args:
            agent: Agent definition to run
            request: Business, user, trigger and input for this run

        Returns:
            RunResult describing the finalized run

        Raises:
            InputValidationError: Required input missing (no run is created)
            PreconditionError: Provider key not configured (no run is created)
            PersistenceError: The run row could not be created
        """
        input = agent.validate(request.input)
        self.config.require_provider_key()
        trigger_reason = request.trigger_reason or agent.trigger_reason(input)

        started = utc_now()
        run_id = await self.store.create(
            business_id=request.business_id,
            user_id=request.user_id,
            agent_kind=agent.kind,
            trigger_kind=request.trigger_kind,
            trigger_reason=trigger_reason,
            input=input,
        )

        trace = _RunTrace()
        completed: _Completed | None = None
        error_message = ""
        try:
            completed = await self._perform(agent, request.business_id, input, trace)
        except EngineError as e:
            error_message = e.message
        except Exception as e:
            logger.bind(run_id=run_id, stage=trace.stage).exception("run_unexpected_error")
            error_message = f"Unexpected error while {trace.stage}: {e.__class__.__name__}"

        duration_ms = elapsed_ms(started, utc_now())
        if completed is not None:
            return await self._finalize_success(agent, run_id, completed, trace, duration_ms)
        return await self._finalize_failure(agent, run_id, error_message, trace, duration_ms)

    async def _perform(
        self,
        agent: AgentDefinition,
        business_id: str,
        input: dict[str, Any],
        trace: _RunTrace,
    ) -> _Completed:
        trace.stage = "loading history"
        context_task = asyncio.create_task(self._gather_context(agent, input))
        try:
            prior_run = await self.store.latest_completed(business_id, agent.kind)
        except BaseException:
            context_task.cancel()
            raise
        context = await context_task

        trace.stage = "calling automation provider"
        decoded = await self._run_provider(agent.build_task(input), trace)

        if decoded.timed_out:
            raise ProviderTimeoutError(
                f"Automation timed out after {self.config.deadline_seconds:g}s"
            )
        if decoded.terminal_status != self.config.success_status:
            detail = f" ({decoded.error_message})" if decoded.error_message else ""
            raise ProviderError(
                "Automation did not complete successfully. "
                f"Status: {decoded.terminal_status}{detail}"
            )

        trace.stage = "normalizing result"
        payload = agent.unwrap_payload(coerce_payload(decoded.result_payload))
        normalized = normalize_result(payload, self.result_keys(agent))
        items = agent.prepare_items(normalized.items)
        logger.bind(
            agent_kind=agent.kind.value,
            matched_rule=normalized.matched_rule,
            items=len(items),
        ).debug("run_result_normalized")

        trace.stage = "diffing against prior run"
        diff = diff_against_run(items, prior_run, agent.item_key, agent.items_field)

        trace.stage = "building output"
        output = agent.build_output(items, diff, payload, input)
        output[agent.items_field] = items

        trace.stage = "summarizing"
        summaries = await self._summarize(agent, input, items, diff, output, context)

        return _Completed(
            output=output,
            summaries=summaries,
            requires_approval=agent.requires_approval(items),
        )

    def result_keys(self, agent: AgentDefinition) -> tuple[str, ...]:
        return agent_result_keys(
            agent.result_keys, self.config.extra_result_keys.get(agent.kind.value, [])
        )

    async def _gather_context(self, agent: AgentDefinition, input: dict[str, Any]) -> str:
        if self.context_search is None:
            return ""
        query = agent.context_query(input)
        if not query:
            return ""
        return await self.context_search.search(query)

    async def _run_provider(self, task: ProviderTask, trace: _RunTrace) -> DecodeResult:
        """Open the provider stream and decode it, all under one absolute deadline."""
        deadline = deadline_in(self.config.deadline_seconds)

        try:
            async with AsyncExitStack() as stack:
                async with asyncio.timeout_at(deadline):
                    response = await stack.enter_async_context(self.provider.open_stream(task))

                if response.status_code == 401:
                    raise ProviderError("Automation provider rejected the API key (HTTP 401)")
                if not response.is_success:
                    raise ProviderError(
                        f"Automation provider returned HTTP {response.status_code}"
                    )

                decoded = await decode_event_stream(
                    response.aiter_bytes(),
                    aclose=response.aclose,
                    deadline=deadline,
                )
        except TimeoutError:
            raise ProviderTimeoutError(
                f"Automation provider did not respond within {self.config.deadline_seconds:g}s"
            ) from None
        except httpx.HTTPError as e:
            raise ProviderError(
                f"Automation provider request failed: {e.__class__.__name__}"
            ) from e

        trace.replay_reference = decoded.session_reference
        return decoded

    async def _summarize(
        self,
        agent: AgentDefinition,
        input: dict[str, Any],
        items: list[Any],
        diff: DiffResult,
        output: dict[str, Any],
        context: str,
    ) -> RunSummaries:
        fallback = agent.describe(input, items, diff, output)
        if self.summarizer is None:
            return fallback

        try:
            generated = await self.summarizer.summarize(agent.kind, items, diff, context)
        except Exception as e:
            logger.bind(agent_kind=agent.kind.value, error=str(e)).warning("run_summary_skipped")
            return fallback

        return generated or fallback

    async def _finalize_success(
        self,
        agent: AgentDefinition,
        run_id: str,
        completed: _Completed,
        trace: _RunTrace,
        duration_ms: int,
    ) -> RunResult:
        try:
            run = await self.store.finalize_success(
                run_id,
                completed.output,
                completed.summaries.summary,
                completed.summaries.narrative_summary,
                replay_reference=trace.replay_reference,
                requires_approval=completed.requires_approval,
                duration_ms=duration_ms,
            )
        except PersistenceError as e:
            logger.bind(run_id=run_id, error=e.message).error("run_finalize_failed")
            return RunResult(
                run_id=run_id,
                agent_kind=agent.kind,
                status=RunStatus.RUNNING,
                output=completed.output,
                summary=completed.summaries.summary,
                narrative_summary=completed.summaries.narrative_summary,
                replay_reference=trace.replay_reference,
                requires_approval=completed.requires_approval,
                duration_ms=duration_ms,
                finalized=False,
            )
        return result_from_run(run)

    async def _finalize_failure(
        self,
        agent: AgentDefinition,
        run_id: str,
        error_message: str,
        trace: _RunTrace,
        duration_ms: int,
    ) -> RunResult:
        try:
            run = await self.store.finalize_failure(
                run_id,
                error_message,
                replay_reference=trace.replay_reference,
                duration_ms=duration_ms,
            )
        except PersistenceError as e:
            logger.bind(run_id=run_id, error=e.message).error("run_finalize_failed")
            return RunResult(
                run_id=run_id,
                agent_kind=agent.kind,
                status=RunStatus.RUNNING,
                error_message=error_message,
                replay_reference=trace.replay_reference,
                duration_ms=duration_ms,
                finalized=False,
            )
        return result_from_run(run)
