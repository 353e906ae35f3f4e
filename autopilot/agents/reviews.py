"""Review scan: recent public reviews for the business, mined for ad angles."""

from typing import Any
from urllib.parse import quote

from autopilot.agents.base import AgentDefinition
from autopilot.models.automation_run import AgentKind
from autopilot.models.business import Business
from autopilot.schemas.run import DiffResult, ProviderTask, RunSummaries

MAPS_SEARCH_URL = "https://www.google.com/maps/search/"
MAX_REVIEWS = 5
MAX_KEYWORDS = 10
# Characters of review text that, with the author, identify a review
KEY_TEXT_PREFIX = 50

KEYWORD_PATTERNS = (
    "friendly", "professional", "fast", "quick", "clean", "affordable",
    "helpful", "knowledgeable", "reliable", "excellent", "amazing",
    "great service", "good food", "fresh", "delicious", "cozy",
    "comfortable", "spacious", "convenient", "efficient", "thorough",
    "courteous", "prompt", "quality", "value", "recommend",
    "atmosphere", "staff", "customer service", "experience", "location",
    "parking", "wait time", "delivery", "selection", "variety",
    "pricing", "appointment", "communication", "responsive", "trustworthy",
)  # fmt: skip


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_int(value: Any) -> int:
    try:
        return int(str(value).replace(",", ""))
    except (TypeError, ValueError):
        return 0


def normalize_review(raw: dict[str, Any]) -> dict[str, Any]:
    """Map the field spellings seen in provider output onto one shape."""
    return {
        "author": raw.get("author") or raw.get("reviewer") or raw.get("name") or "Anonymous",
        "rating": _to_float(raw.get("rating")),
        "text": raw.get("text") or raw.get("review_text") or raw.get("content") or "",
        "date": raw.get("date") or raw.get("review_date") or raw.get("time") or "",
    }


def extract_keywords(reviews: list[dict[str, Any]], category: str = "") -> list[str]:
    """Service keywords mentioned across review texts, category first."""
    text = " ".join(r.get("text", "") for r in reviews).lower()
    if not text.strip():
        return []

    found = [kw for kw in KEYWORD_PATTERNS if kw in text]
    category = category.strip().lower()
    if category and category not in found:
        found.insert(0, category)
    return found[:MAX_KEYWORDS]


def generate_ad_angles(reviews: list[dict[str, Any]], keywords: list[str]) -> list[str]:
    """Turn review evidence into ad copy suggestions."""
    angles = []

    if reviews:
        avg_rating = sum(r["rating"] for r in reviews) / len(reviews)
        if avg_rating >= 4.5:
            angles.append(
                f"Social proof: Lead with your {avg_rating:.1f}-star rating. "
                "Customers trust reviews more than ads."
            )
        elif avg_rating >= 4:
            angles.append(
                "Trust builder: Mention your strong rating and let a customer quote do the selling."
            )

    quotes = [r["text"] for r in reviews if r["rating"] >= 4 and len(r["text"]) > 30]
    if quotes:
        angles.append(f'Customer voice: Use a real quote in your ad, e.g. "{quotes[0][:120]}"')

    if len(keywords) >= 2:
        angles.append(
            f'Highlight strengths: Your customers keep mentioning "{keywords[0]}" and '
            f'"{keywords[1]}". Build your headline around these.'
        )

    if "recommend" in keywords or "amazing" in keywords:
        angles.append("Word of mouth: Customers actively recommend you. Lean into referrals.")

    return angles


class ReviewScanAgent(AgentDefinition):
    """Reads the business's top reviews from its public maps listing."""

    kind = AgentKind.REVIEW_SCAN
    items_field = "reviews"
    result_keys = ("reviews",)
    required_inputs = ("business_name", "location")
    max_items = MAX_REVIEWS

    def default_input(self, business: Business) -> dict[str, Any]:
        return {"business_name": business.name, "location": business.location}

    def build_task(self, input: dict[str, Any]) -> ProviderTask:
        query = quote(f"{input['business_name']} {input['location']}")
        return ProviderTask(
            url=f"{MAPS_SEARCH_URL}{query}",
            goal=(
                "Find this business on Google Maps. Click on it. Go to the reviews section. "
                'Extract: {"business_name": str, "rating": number, "total_reviews": number, '
                '"category": str, "reviews": [{"author": str, "rating": number, "text": str, '
                '"date": str}]}. Get the top 5 most helpful/recent reviews. '
                "Dismiss any popups quickly."
            ),
        )

    def item_key(self, item: Any) -> Any:
        if not isinstance(item, dict):
            return None
        author = str(item.get("author") or "").strip()
        text = str(item.get("text") or "").strip()[:KEY_TEXT_PREFIX]
        if not text:
            return None
        return f"{author}|{text}"

    def trigger_reason(self, input: dict[str, Any]) -> str:
        return f"Scanning reviews for {input['business_name']} in {input['location']}"

    def unwrap_payload(self, payload: Any) -> Any:
        if isinstance(payload, dict):
            for key in ("result", "data"):
                if isinstance(payload.get(key), dict):
                    return payload[key]
        return payload

    def prepare_items(self, items: list[Any]) -> list[Any]:
        reviews = [normalize_review(item) for item in items if isinstance(item, dict)]
        return super().prepare_items(reviews)

    def build_output(
        self,
        items: list[Any],
        diff: DiffResult,
        payload: Any,
        input: dict[str, Any],
    ) -> dict[str, Any]:
        output = super().build_output(items, diff, payload, input)
        details = payload if isinstance(payload, dict) else {}
        category = str(details.get("category") or details.get("business_category") or "")
        keywords = extract_keywords(items, category)

        output.update(
            {
                "business_name": details.get("business_name")
                or details.get("name")
                or input["business_name"],
                "rating": _to_float(details.get("rating")),
                "total_reviews": _to_int(
                    details.get("total_reviews") or details.get("review_count")
                ),
                "category": category,
                "keywords": keywords,
                "ad_angles": generate_ad_angles(items, keywords),
                "new_reviews_since_last_scan": 0 if diff.first_run else diff.added_count,
            }
        )
        return output

    def describe(
        self,
        input: dict[str, Any],
        items: list[Any],
        diff: DiffResult,
        output: dict[str, Any],
    ) -> RunSummaries:
        name = output.get("business_name") or input["business_name"]
        rating = output.get("rating", 0.0)
        total = output.get("total_reviews", 0)
        angles = output.get("ad_angles", [])
        keywords = output.get("keywords", [])

        summary = (
            f"{name}: {rating} stars from {total} reviews. "
            f"{len(angles)} ad angle suggestions generated."
        )
        if not items:
            narrative = f"I checked your reviews but couldn't find any for {name} yet."
        else:
            top_keyword = keywords[0] if keywords else "quality"
            narrative = (
                f"I checked your reviews. {rating} stars from {total} reviews. "
                f"Your customers love your {top_keyword}, that's great ad material."
            )
            if diff.added_count and not diff.first_run:
                narrative += f" {diff.added_count} new since my last scan."
        return RunSummaries(summary=summary, narrative_summary=narrative)
