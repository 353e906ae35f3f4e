from typing import Literal

from pydantic import BaseModel, Field

from autopilot.models.campaign import PerformanceStatus


class CampaignMetrics(BaseModel):
    """Lifetime metrics for one campaign as reported by the ads platform."""

    impressions: int = 0
    clicks: int = 0
    spend_minor_units: int = 0
    leads_count: int = 0


class PerformanceSnapshot(BaseModel):
    """Metrics plus derived fields, as persisted on the campaign row."""

    impressions: int
    clicks: int
    spend_minor_units: int
    leads_count: int
    cost_per_lead_minor_units: int | None
    performance_status: PerformanceStatus


class CampaignSyncResult(BaseModel):
    """Outcome of syncing one campaign."""

    campaign_id: str
    campaign_name: str | None = None
    status: Literal["synced", "skipped", "error"] = "synced"
    reason: str | None = None
    snapshot: PerformanceSnapshot | None = None


class SyncReport(BaseModel):
    """Outcome of one sync invocation across a batch of campaigns."""

    results: list[CampaignSyncResult] = Field(default_factory=list)

    @property
    def synced(self) -> int:
        return sum(1 for r in self.results if r.status == "synced")

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == "skipped")

    @property
    def errors(self) -> int:
        return sum(1 for r in self.results if r.status == "error")

    @property
    def message(self) -> str:
        return (
            f"Synced {self.synced} campaign(s), skipped {self.skipped}, errors {self.errors}"
        )

    def to_output(self) -> dict:
        return {
            "total": len(self.results),
            "synced": self.synced,
            "skipped": self.skipped,
            "errors": self.errors,
            "message": self.message,
            "results": [r.model_dump(mode="json") for r in self.results],
        }
