"""Creative generation: ad copy variations drafted from the business website."""

from typing import Any

from autopilot.agents.base import AgentDefinition
from autopilot.engine.diff import field_key
from autopilot.models.automation_run import AgentKind
from autopilot.models.business import Business
from autopilot.schemas.run import DiffResult, ProviderTask, RunSummaries

MAX_CREATIVES = 5

_headline = field_key("headline", "title")


def normalize_creative(raw: Any, variation: int) -> dict[str, Any] | None:
    if isinstance(raw, str):
        raw = {"headline": raw}
    if not isinstance(raw, dict):
        return None
    headline = str(raw.get("headline") or raw.get("title") or "").strip()
    if not headline:
        return None
    return {
        "variation": variation,
        "headline": headline,
        "body": str(raw.get("body") or raw.get("primary_text") or raw.get("description") or ""),
        "call_to_action": str(raw.get("call_to_action") or raw.get("cta") or "Learn More"),
    }


class CreativeGenerationAgent(AgentDefinition):
    """Drafts ad creatives from the business's own site. Output always needs approval."""

    kind = AgentKind.CREATIVE_GENERATION
    items_field = "creatives"
    result_keys = ("creatives", "ads", "headlines")
    required_inputs = ("business_name", "website")
    max_items = MAX_CREATIVES

    def default_input(self, business: Business) -> dict[str, Any]:
        return {
            "business_name": business.name,
            "website": business.website,
            "industry": business.industry,
        }

    def build_task(self, input: dict[str, Any]) -> ProviderTask:
        website = input["website"]
        if not website.startswith(("http://", "https://")):
            website = f"https://{website}"
        return ProviderTask(
            url=website,
            goal=(
                f"Read this website for {input['business_name']}. Identify the main offer, "
                "the audience and what makes the business different. Return JSON: "
                '{"creatives": [{"headline": str, "body": str, "call_to_action": str}]} '
                "with 3 distinct Facebook ad variations. Headlines under 40 characters. "
                "Dismiss any popups quickly."
            ),
        )

    def item_key(self, item: Any) -> Any:
        return _headline(item)

    def trigger_reason(self, input: dict[str, Any]) -> str:
        return f"Generating new ad creatives for {input['business_name']}"

    def context_query(self, input: dict[str, Any]) -> str | None:
        industry = input.get("industry")
        return f"{industry} ad ideas" if industry else None

    def prepare_items(self, items: list[Any]) -> list[Any]:
        creatives = []
        for raw in items:
            creative = normalize_creative(raw, variation=len(creatives) + 1)
            if creative is not None:
                creatives.append(creative)
        return super().prepare_items(creatives)

    def requires_approval(self, items: list[Any]) -> bool:
        return True

    def build_output(
        self,
        items: list[Any],
        diff: DiffResult,
        payload: Any,
        input: dict[str, Any],
    ) -> dict[str, Any]:
        output = super().build_output(items, diff, payload, input)
        output["creative_count"] = len(items)
        output["source_url"] = self.build_task(input).url
        return output

    def describe(
        self,
        input: dict[str, Any],
        items: list[Any],
        diff: DiffResult,
        output: dict[str, Any],
    ) -> RunSummaries:
        return RunSummaries(
            summary=(
                f"Generated {len(items)} ad creative variations for {input['business_name']}."
            ),
            narrative_summary=(
                f"I designed {len(items)} new ad variations for you based on your website. "
                "Take a look and approve your favorites."
            ),
        )
