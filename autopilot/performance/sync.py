"""
Performance sync: pull campaign metrics from the ads platform, classify
health, and persist the latest snapshot on each campaign.

Insights are fetched concurrently; writes are sequential, one commit per
campaign, so one campaign's failure never blocks or rolls back another's.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from autopilot.core.datetime_utils import elapsed_ms, utc_now
from autopilot.core.errors import EngineError, PersistenceError
from autopilot.core.logging import get_logger
from autopilot.engine.executor import result_from_run
from autopilot.engine.store import RunStore
from autopilot.models.automation_run import AgentKind, RunStatus, TriggerKind
from autopilot.models.business import Business
from autopilot.models.campaign import Campaign, PerformanceStatus
from autopilot.performance.classifier import DEFAULT_THRESHOLDS, HealthThresholds, build_snapshot
from autopilot.schemas.performance import CampaignMetrics, CampaignSyncResult, SyncReport
from autopilot.schemas.run import RunResult
from autopilot.services.ads_insights import AdsApiError, AdsInsightsClient, AdsTokenExpiredError

logger = get_logger(__name__)

# Administrative statuses never synced
EXCLUDED_CAMPAIGN_STATUSES = ("archived", "deleted")


@dataclass(frozen=True)
class _CampaignRef:
    """Plain values read from a campaign row before any commit or rollback."""

    id: str
    name: str
    business_id: str
    external_campaign_id: str | None
    status: str
    launched_at: datetime | None
    created_at: datetime | None

    @classmethod
    def of(cls, campaign: Campaign) -> "_CampaignRef":
        return cls(
            id=campaign.id,
            name=campaign.name,
            business_id=campaign.business_id,
            external_campaign_id=campaign.external_campaign_id,
            status=campaign.status,
            launched_at=campaign.launched_at,
            created_at=campaign.created_at,
        )

    def as_campaign(self) -> Campaign:
        """Detached stand-in carrying what classification reads."""
        return Campaign(
            id=self.id,
            name=self.name,
            business_id=self.business_id,
            status=self.status,
            launched_at=self.launched_at,
            created_at=self.created_at,
        )


class PerformanceSyncEngine:
    """Syncs campaign metrics and records performance-sync runs."""

    def __init__(
        self,
        db: AsyncSession,
        insights: AdsInsightsClient,
        thresholds: HealthThresholds = DEFAULT_THRESHOLDS,
        store: RunStore | None = None,
    ) -> None:
        self.db = db
        self.insights = insights
        self.thresholds = thresholds
        self.store = store or RunStore(db)

    async def load_campaigns(self, business_id: str) -> list[Campaign]:
        result = await self.db.execute(
            select(Campaign)
            .where(
                Campaign.business_id == business_id,
                Campaign.status.not_in(EXCLUDED_CAMPAIGN_STATUSES),
            )
            .order_by(Campaign.created_at)
        )
        return list(result.scalars().all())

    async def _load_tokens(self, business_ids: set[str]) -> dict[str, str | None]:
        if not business_ids:
            return {}
        result = await self.db.execute(
            select(Business.id, Business.ads_access_token).where(Business.id.in_(business_ids))
        )
        return {row.id: row.ads_access_token for row in result}

    async def _fetch(
        self,
        ref: _CampaignRef,
        tokens: dict[str, str | None],
    ) -> CampaignMetrics | CampaignSyncResult:
        """Metrics for one campaign, or the final result when it cannot be synced."""
        if not ref.external_campaign_id:
            return CampaignSyncResult(
                campaign_id=ref.id,
                campaign_name=ref.name,
                status="skipped",
                reason="No ads platform campaign id",
            )

        token = tokens.get(ref.business_id)
        if not token:
            return CampaignSyncResult(
                campaign_id=ref.id,
                campaign_name=ref.name,
                status="skipped",
                reason="No ads access token",
            )

        try:
            return await self.insights.fetch_campaign_metrics(ref.external_campaign_id, token)
        except AdsTokenExpiredError as e:
            reason = e.message
        except AdsApiError as e:
            reason = e.message
        except Exception as e:
            logger.bind(campaign_id=ref.id).exception("campaign_sync_unexpected_error")
            reason = f"Unexpected error: {e.__class__.__name__}"

        return CampaignSyncResult(
            campaign_id=ref.id,
            campaign_name=ref.name,
            status="error",
            reason=reason,
        )

    async def _persist(
        self, ref: _CampaignRef, metrics: CampaignMetrics, now: datetime
    ) -> CampaignSyncResult:
        snapshot = build_snapshot(ref.as_campaign(), metrics, now=now, thresholds=self.thresholds)

        try:
            await self.db.execute(
                update(Campaign)
                .where(Campaign.id == ref.id)
                .values(
                    impressions=snapshot.impressions,
                    clicks=snapshot.clicks,
                    spend_minor_units=snapshot.spend_minor_units,
                    leads_count=snapshot.leads_count,
                    cost_per_lead_minor_units=snapshot.cost_per_lead_minor_units,
                    performance_status=snapshot.performance_status,
                    last_synced_at=now,
                )
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.bind(campaign_id=ref.id, error=str(e)).error("campaign_sync_db_error")
            return CampaignSyncResult(
                campaign_id=ref.id,
                campaign_name=ref.name,
                status="error",
                reason="Failed to update database",
            )

        logger.bind(
            campaign_id=ref.id,
            impressions=snapshot.impressions,
            clicks=snapshot.clicks,
            spend_minor_units=snapshot.spend_minor_units,
            leads=snapshot.leads_count,
            performance_status=snapshot.performance_status.value,
        ).info("campaign_synced")
        return CampaignSyncResult(
            campaign_id=ref.id,
            campaign_name=ref.name,
            status="synced",
            snapshot=snapshot,
        )

    async def sync_campaigns(
        self, campaigns: list[Campaign], now: datetime | None = None
    ) -> SyncReport:
        """
        Sync a batch of campaigns independently.

        Re-running with the same upstream metrics and the same `now` stores the
        same snapshot.

        Args:
            campaigns: Campaign rows to sync
            now: Sync time used for campaign age and last_synced_at (default: now)

        Returns:
            SyncReport with one result per campaign, in input order
        """
        refs = [_CampaignRef.of(c) for c in campaigns]
        if not refs:
            return SyncReport()

        now = now or utc_now()
        tokens = await self._load_tokens({ref.business_id for ref in refs})
        fetched = await asyncio.gather(*(self._fetch(ref, tokens) for ref in refs))

        results = []
        for ref, outcome in zip(refs, fetched, strict=True):
            if isinstance(outcome, CampaignSyncResult):
                results.append(outcome)
            else:
                results.append(await self._persist(ref, outcome, now))

        report = SyncReport(results=results)
        logger.bind(
            total=len(results),
            synced=report.synced,
            skipped=report.skipped,
            errors=report.errors,
        ).info("performance_sync_complete")
        return report

    async def sync_business(
        self,
        business_id: str,
        user_id: str,
        trigger_kind: TriggerKind = TriggerKind.MANUAL,
        trigger_reason: str | None = None,
    ) -> RunResult:
        """
        Sync every live campaign of a business, recorded as a performance_sync run.

        Raises:
            PersistenceError: The run row could not be created
        """
        started = utc_now()
        run_id = await self.store.create(
            business_id=business_id,
            user_id=user_id,
            agent_kind=AgentKind.PERFORMANCE_SYNC,
            trigger_kind=trigger_kind,
            trigger_reason=trigger_reason or "Syncing campaign performance",
            input={"business_id": business_id},
        )

        report: SyncReport | None = None
        error_message = ""
        try:
            campaigns = await self.load_campaigns(business_id)
            report = await self.sync_campaigns(campaigns)
        except EngineError as e:
            error_message = e.message
        except Exception as e:
            logger.bind(run_id=run_id).exception("performance_sync_unexpected_error")
            error_message = f"Unexpected error while syncing campaigns: {e.__class__.__name__}"

        duration_ms = elapsed_ms(started, utc_now())
        try:
            if report is not None:
                run = await self.store.finalize_success(
                    run_id,
                    report.to_output(),
                    report.message,
                    describe_report(report),
                    duration_ms=duration_ms,
                )
            else:
                run = await self.store.finalize_failure(
                    run_id, error_message, duration_ms=duration_ms
                )
        except PersistenceError as e:
            logger.bind(run_id=run_id, error=e.message).error("run_finalize_failed")
            return RunResult(
                run_id=run_id,
                agent_kind=AgentKind.PERFORMANCE_SYNC,
                status=RunStatus.RUNNING,
                output=report.to_output() if report else None,
                error_message=error_message or None,
                duration_ms=duration_ms,
                finalized=False,
            )
        return result_from_run(run)


def describe_report(report: SyncReport) -> str:
    """First-person narrative for a sync run."""
    if not report.results:
        return "I checked your ad account but there are no campaigns to sync yet."

    statuses = [r.snapshot.performance_status for r in report.results if r.snapshot]
    healthy = statuses.count(PerformanceStatus.HEALTHY)
    weak = statuses.count(PerformanceStatus.UNDERPERFORMING)
    learning = statuses.count(PerformanceStatus.LEARNING)

    narrative = f"I checked {len(report.results)} campaign(s)."
    if statuses:
        narrative += f" {healthy} healthy, {weak} underperforming, {learning} still learning."
    if report.errors:
        narrative += f" {report.errors} couldn't be synced."
    return narrative
