"""
Campaign health classification.

Rules, first match wins:

1. paused           the campaign is administratively paused
2. learning         launched under 48h ago, or fewer than 500 impressions
3. underperforming  cost per lead >= 30.00, or spend > 50.00 with zero leads
4. healthy          cost per lead < 30.00 with at least one lead
5. learning         anything else

Money is in minor currency units throughout; thresholds come from the
performance section of config.yml.
"""

from dataclasses import dataclass
from datetime import datetime

from autopilot.config import PerformanceConfig
from autopilot.core.datetime_utils import hours_since, utc_now
from autopilot.models.campaign import Campaign, PerformanceStatus
from autopilot.schemas.performance import CampaignMetrics, PerformanceSnapshot

PAUSED_STATUS = "paused"


@dataclass(frozen=True)
class HealthThresholds:
    learning_window_hours: float = 48
    min_impressions: int = 500
    cpl_ceiling_minor_units: int = 3000
    zero_lead_spend_floor_minor_units: int = 5000

    @classmethod
    def from_config(cls, config: PerformanceConfig) -> "HealthThresholds":
        return cls(
            learning_window_hours=config.learning_window_hours,
            min_impressions=config.min_impressions,
            cpl_ceiling_minor_units=config.cpl_ceiling_minor_units,
            zero_lead_spend_floor_minor_units=config.zero_lead_spend_floor_minor_units,
        )


DEFAULT_THRESHOLDS = HealthThresholds()


def cost_per_lead(spend_minor_units: int, leads_count: int) -> int | None:
    """Rounded spend per lead, None when there are no leads."""
    if leads_count <= 0:
        return None
    return round(spend_minor_units / leads_count)


def classify_performance(
    *,
    admin_status: str,
    launched_at: datetime | None,
    impressions: int,
    spend_minor_units: int,
    leads_count: int,
    cost_per_lead_minor_units: int | None,
    now: datetime | None = None,
    thresholds: HealthThresholds = DEFAULT_THRESHOLDS,
) -> PerformanceStatus:
    if admin_status == PAUSED_STATUS:
        return PerformanceStatus.PAUSED

    in_window = (
        launched_at is not None
        and hours_since(launched_at, now) < thresholds.learning_window_hours
    )
    if in_window or impressions < thresholds.min_impressions:
        return PerformanceStatus.LEARNING

    cpl = cost_per_lead_minor_units
    if cpl is not None and cpl >= thresholds.cpl_ceiling_minor_units:
        return PerformanceStatus.UNDERPERFORMING
    if spend_minor_units > thresholds.zero_lead_spend_floor_minor_units and leads_count == 0:
        return PerformanceStatus.UNDERPERFORMING

    if cpl is not None and cpl < thresholds.cpl_ceiling_minor_units and leads_count >= 1:
        return PerformanceStatus.HEALTHY

    return PerformanceStatus.LEARNING


def build_snapshot(
    campaign: Campaign,
    metrics: CampaignMetrics,
    now: datetime | None = None,
    thresholds: HealthThresholds = DEFAULT_THRESHOLDS,
) -> PerformanceSnapshot:
    """Derive cost per lead and health for a campaign's fresh metrics."""
    now = now or utc_now()
    cpl = cost_per_lead(metrics.spend_minor_units, metrics.leads_count)
    status = classify_performance(
        admin_status=campaign.status,
        # Campaigns without a launch date age from creation
        launched_at=campaign.launched_at or campaign.created_at,
        impressions=metrics.impressions,
        spend_minor_units=metrics.spend_minor_units,
        leads_count=metrics.leads_count,
        cost_per_lead_minor_units=cpl,
        now=now,
        thresholds=thresholds,
    )
    return PerformanceSnapshot(
        impressions=metrics.impressions,
        clicks=metrics.clicks,
        spend_minor_units=metrics.spend_minor_units,
        leads_count=metrics.leads_count,
        cost_per_lead_minor_units=cpl,
        performance_status=status,
    )
