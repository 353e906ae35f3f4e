"""Competitor research: active ads from the public ad library."""

from datetime import datetime
from typing import Any
from urllib.parse import urlencode

from autopilot.agents.base import AgentDefinition
from autopilot.core.datetime_utils import utc_now
from autopilot.engine.diff import field_key
from autopilot.models.automation_run import AgentKind
from autopilot.models.business import Business
from autopilot.schemas.run import DiffResult, ProviderTask, RunSummaries

AD_LIBRARY_URL = "https://www.facebook.com/ads/library/"
SUPPORTED_COUNTRIES = {"AU", "US"}
LONG_RUNNING_DAYS = 90

# Accepted formats for "started_running_date"
_DATE_FORMATS = ("%b %d, %Y", "%d %b %Y", "%Y-%m-%d")

_page_name = field_key("page_name")


def _parse_started(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip().removeprefix("Started running on ").strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def generate_insights(ads: list[dict[str, Any]], industry: str) -> dict[str, str]:
    """Heuristic observations about the competitor ad set."""
    if not ads:
        return {"summary": "No active competitor ads found."}

    avg_len = round(sum(len(ad.get("ad_body_text") or "") for ad in ads) / len(ads))
    multi = sum(1 for ad in ads if "," in str(ad.get("platforms") or ""))

    now = utc_now()
    long_run = 0
    for ad in ads:
        started = _parse_started(ad.get("started_running_date"))
        if started and (now - started).days > LONG_RUNNING_DAYS:
            long_run += 1

    return {
        "summary": f"Found {len(ads)} active competitor ads in {industry}.",
        "avg_copy_length": f"{avg_len} chars avg copy length",
        "multi_platform": f"{multi}/{len(ads)} ads on multiple platforms",
        "long_running": f"{long_run}/{len(ads)} running {LONG_RUNNING_DAYS}+ days",
        "opportunity": (
            "Competitors rely on evergreen ads. Fresh creative could stand out."
            if long_run > len(ads) / 2
            else "Active market. Strong differentiation needed."
        ),
    }


class CompetitorResearchAgent(AgentDefinition):
    """Scans the ad library for competitors advertising in an industry and area."""

    kind = AgentKind.COMPETITOR_RESEARCH
    items_field = "ads"
    result_keys = ("ads",)
    required_inputs = ("industry", "location")

    def default_input(self, business: Business) -> dict[str, Any]:
        return {
            "industry": business.industry,
            "location": business.location,
            "country": business.country,
        }

    @staticmethod
    def country_code(input: dict[str, Any]) -> str:
        country = str(input.get("country") or "US").upper()
        return country if country in SUPPORTED_COUNTRIES else "US"

    def build_task(self, input: dict[str, Any]) -> ProviderTask:
        country = self.country_code(input)
        query = urlencode(
            {
                "active_status": "active",
                "ad_type": "all",
                "country": country,
                "q": input["industry"],
            }
        )
        return ProviderTask(
            url=f"{AD_LIBRARY_URL}?{query}",
            goal=(
                "Extract the first 5 active ads. Return JSON: "
                '{"data": [{"page_name": str, "ad_body_text": str, '
                '"started_running_date": str, "platforms": str}]}. '
                "Dismiss any popups quickly."
            ),
            country_code=country,
        )

    def item_key(self, item: Any) -> Any:
        return _page_name(item)

    def trigger_reason(self, input: dict[str, Any]) -> str:
        return f"Scanning the ad library for {input['industry']} in {input['location']}"

    def context_query(self, input: dict[str, Any]) -> str | None:
        return f"{input['industry']} {input['location']} advertising"

    def prepare_items(self, items: list[Any]) -> list[Any]:
        return [item for item in items if isinstance(item, dict)]

    def build_output(
        self,
        items: list[Any],
        diff: DiffResult,
        payload: Any,
        input: dict[str, Any],
    ) -> dict[str, Any]:
        output = super().build_output(items, diff, payload, input)
        output["insights"] = generate_insights(items, input["industry"])
        output["ad_count"] = len(items)
        return output

    def describe(
        self,
        input: dict[str, Any],
        items: list[Any],
        diff: DiffResult,
        output: dict[str, Any],
    ) -> RunSummaries:
        industry, location = input["industry"], input["location"]
        opportunity = output.get("insights", {}).get("opportunity", "")

        summary = (
            f"Found {len(items)} active competitor ads for {industry} in {location}. "
            f"{diff.added_count} new, {diff.removed_count} stopped since last scan."
        )
        if diff.first_run:
            narrative = (
                f"I checked the ad library for {industry} businesses near {location}. "
                f"{len(items)} competitors are running ads right now. {opportunity}"
            )
        else:
            narrative = (
                f"I scanned your competitors' ads. Found {len(items)} active ads, "
                f"{diff.added_count} are new since last time. {opportunity}"
            )
        return RunSummaries(summary=summary, narrative_summary=narrative.strip())
