"""Tests for agent definitions."""

from urllib.parse import parse_qs, urlparse

import pytest

from autopilot.agents import (
    AGENTS,
    CompetitorResearchAgent,
    CreativeGenerationAgent,
    ReviewScanAgent,
    get_agent,
    resolve_input,
)
from autopilot.agents.competitor import generate_insights
from autopilot.agents.reviews import extract_keywords, generate_ad_angles, normalize_review
from autopilot.core.errors import InputValidationError
from autopilot.models.automation_run import AgentKind
from autopilot.models.business import Business
from autopilot.schemas.run import DiffResult


def _business(**overrides) -> Business:
    values = {
        "id": "biz-1",
        "user_id": "user-1",
        "name": "Bondi Plumbing",
        "industry": "plumber",
        "location": "Sydney",
        "country": "AU",
        "website": "https://bondiplumbing.example",
    }
    values.update(overrides)
    return Business(**values)


class TestRegistry:
    """Tests for agent lookup."""

    def test_all_provider_agents_registered(self):
        assert set(AGENTS) == {
            AgentKind.COMPETITOR_RESEARCH,
            AgentKind.REVIEW_SCAN,
            AgentKind.CREATIVE_GENERATION,
        }

    def test_lookup_by_value(self):
        assert isinstance(get_agent("review_scan"), ReviewScanAgent)

    def test_unknown_kind(self):
        with pytest.raises(InputValidationError, match="Unknown agent kind"):
            get_agent("tiktok_scan")

    def test_performance_sync_not_an_automation_agent(self):
        with pytest.raises(InputValidationError, match="cannot be run"):
            get_agent(AgentKind.PERFORMANCE_SYNC)


class TestValidation:
    """Tests for required input checks."""

    def test_strips_strings(self):
        cleaned = CompetitorResearchAgent().validate(
            {"industry": " plumber ", "location": "Sydney"}
        )

        assert cleaned["industry"] == "plumber"

    def test_lists_every_missing_field(self):
        with pytest.raises(InputValidationError) as exc_info:
            ReviewScanAgent().validate({"business_name": "  "})

        assert exc_info.value.message == "Missing required input: business_name, location"

    def test_original_input_untouched(self):
        raw = {"industry": " plumber ", "location": "Sydney"}

        CompetitorResearchAgent().validate(raw)

        assert raw["industry"] == " plumber "


class TestResolveInput:
    """Tests for merging business defaults with explicit params."""

    def test_business_defaults(self):
        resolved = resolve_input(CompetitorResearchAgent(), _business(), {})

        assert resolved == {"industry": "plumber", "location": "Sydney", "country": "AU"}

    def test_explicit_params_win(self):
        resolved = resolve_input(
            CompetitorResearchAgent(), _business(), {"location": "Melbourne", "industry": " "}
        )

        assert resolved["location"] == "Melbourne"
        assert resolved["industry"] == "plumber"

    def test_missing_business_values_dropped(self):
        resolved = resolve_input(ReviewScanAgent(), _business(location=None), {})

        assert resolved == {"business_name": "Bondi Plumbing"}

    def test_no_business(self):
        assert resolve_input(ReviewScanAgent(), None, {"business_name": "X"}) == {
            "business_name": "X"
        }


class TestCompetitorResearchAgent:
    """Tests for the competitor research agent."""

    agent = CompetitorResearchAgent()

    def test_task_targets_ad_library(self):
        task = self.agent.build_task(
            {"industry": "hot water", "location": "Sydney", "country": "au"}
        )

        url = urlparse(task.url)
        query = parse_qs(url.query)
        assert url.netloc == "www.facebook.com"
        assert query["q"] == ["hot water"]
        assert query["country"] == ["AU"]
        assert query["active_status"] == ["active"]
        assert task.country_code == "AU"
        assert "page_name" in task.goal

    def test_unsupported_country_falls_back(self):
        task = self.agent.build_task({"industry": "plumber", "location": "Paris", "country": "FR"})

        assert task.country_code == "US"

    def test_item_key_is_page_name(self):
        assert self.agent.item_key({"page_name": "Acme"}) == "Acme"
        assert self.agent.item_key({"ad_body_text": "x"}) is None

    def test_non_dict_items_dropped(self):
        assert self.agent.prepare_items([{"page_name": "A"}, "junk", 3]) == [{"page_name": "A"}]

    def test_first_and_later_narratives_differ(self):
        input = {"industry": "plumber", "location": "Sydney"}
        items = [{"page_name": "A"}]
        first = DiffResult(added=items, first_run=True)
        later = DiffResult(added=items, unchanged_count=0)

        first_text = self.agent.describe(input, items, first, {}).narrative_summary
        later_text = self.agent.describe(input, items, later, {}).narrative_summary

        assert "checked the ad library" in first_text
        assert "1 are new since last time" in later_text

    def test_insights(self):
        ads = [
            {
                "page_name": "A",
                "ad_body_text": "x" * 10,
                "platforms": "Facebook, Instagram",
                "started_running_date": "Started running on Jan 5, 2020",
            },
            {"page_name": "B", "ad_body_text": "y" * 20, "platforms": "Facebook"},
        ]

        insights = generate_insights(ads, "plumber")

        assert insights["avg_copy_length"] == "15 chars avg copy length"
        assert insights["multi_platform"] == "1/2 ads on multiple platforms"
        assert insights["long_running"] == "1/2 running 90+ days"

    def test_insights_without_ads(self):
        assert generate_insights([], "plumber") == {"summary": "No active competitor ads found."}


class TestReviewScanAgent:
    """Tests for the review scan agent."""

    agent = ReviewScanAgent()

    def test_task_targets_maps_search(self):
        task = self.agent.build_task({"business_name": "Bondi Plumbing", "location": "Sydney"})

        assert task.url == "https://www.google.com/maps/search/Bondi%20Plumbing%20Sydney"

    def test_normalize_review_field_spellings(self):
        review = normalize_review({"name": "Jo", "rating": "4", "content": "Great", "time": "1w"})

        assert review == {"author": "Jo", "rating": 4.0, "text": "Great", "date": "1w"}

    def test_item_key_uses_author_and_text_prefix(self):
        long_text = "a" * 80
        key = self.agent.item_key({"author": "Jo", "text": long_text})

        assert key == f"Jo|{'a' * 50}"
        assert self.agent.item_key({"author": "Jo", "text": ""}) is None

    def test_items_capped(self):
        raw = [{"author": f"R{i}", "text": "ok", "rating": 5} for i in range(8)]

        assert len(self.agent.prepare_items(raw)) == 5

    def test_build_output_with_details(self):
        input = {"business_name": "Bondi Plumbing", "location": "Sydney"}
        payload = {"name": "Bondi Plumbing Co", "rating": "4.9", "review_count": "87"}
        items = self.agent.prepare_items(
            [{"author": "Sam", "rating": 5, "text": "Fast, friendly and professional service"}]
        )

        output = self.agent.build_output(items, DiffResult(first_run=True), payload, input)

        assert output["business_name"] == "Bondi Plumbing Co"
        assert output["rating"] == 4.9
        assert output["total_reviews"] == 87
        assert output["keywords"][:3] == ["friendly", "professional", "fast"]
        assert output["new_reviews_since_last_scan"] == 0
        assert output["reviews"] == items

    def test_empty_narrative(self):
        input = {"business_name": "Bondi Plumbing", "location": "Sydney"}

        summaries = self.agent.describe(input, [], DiffResult(first_run=True), {})

        assert "couldn't find any" in summaries.narrative_summary

    def test_keywords_and_angles(self):
        reviews = [
            {"author": "A", "rating": 5.0, "text": "Amazing, would recommend", "date": ""},
            {"author": "B", "rating": 4.0, "text": "Clean work", "date": ""},
        ]

        keywords = extract_keywords(reviews, "Plumber")
        angles = generate_ad_angles(reviews, keywords)

        assert keywords[0] == "plumber"
        assert "amazing" in keywords
        assert any(a.startswith("Social proof") for a in angles)
        assert any(a.startswith("Word of mouth") for a in angles)

    def test_no_text_no_keywords(self):
        assert extract_keywords([{"text": ""}], "Plumber") == []


class TestCreativeGenerationAgent:
    """Tests for the creative generation agent."""

    agent = CreativeGenerationAgent()

    def test_website_gets_scheme(self):
        task = self.agent.build_task({"business_name": "Bondi", "website": "bondi.example"})

        assert task.url == "https://bondi.example"

    def test_prepare_items_normalizes_and_numbers(self):
        items = self.agent.prepare_items(
            ["Plain headline", {"title": "Titled", "cta": "Call Now"}, {"body": "no headline"}, 7]
        )

        assert [i["headline"] for i in items] == ["Plain headline", "Titled"]
        assert [i["variation"] for i in items] == [1, 2]
        assert items[1]["call_to_action"] == "Call Now"

    def test_always_requires_approval(self):
        assert self.agent.requires_approval([]) is True

    def test_default_input_from_business(self):
        assert self.agent.default_input(_business())["website"] == "https://bondiplumbing.example"
