"""Tests for the identity-keyed diff engine."""

from autopilot.engine.diff import diff_against_run, diff_items, field_key, normalize_key
from autopilot.models.automation_run import AutomationRun

by_name = field_key("page_name")


def _ads(*names: str) -> list[dict]:
    return [{"page_name": name, "ad_body_text": f"Ad by {name}"} for name in names]


class TestNormalizeKey:
    """Tests for key normalization."""

    def test_trims_and_lowercases(self):
        assert normalize_key("  Acme Plumbing ") == "acme plumbing"

    def test_numbers_become_strings(self):
        assert normalize_key(42) == "42"

    def test_unusable_values(self):
        assert normalize_key(None) is None
        assert normalize_key("   ") is None
        assert normalize_key(True) is None
        assert normalize_key({"a": 1}) is None


class TestDiffItems:
    """Tests for diff_items."""

    def test_no_prior_run_marks_everything_added(self):
        """With no history every keyed item is new."""
        current = _ads("A", "B", "C", "D", "E")

        diff = diff_items(current, None, by_name)

        assert diff.first_run is True
        assert diff.added == current
        assert diff.removed == []
        assert diff.unchanged_count == 0

    def test_added_removed_unchanged(self):
        """Set semantics across runs."""
        prior = _ads("A", "B", "C", "D", "E")
        current = _ads("A", "B", "C", "D", "F", "G")

        diff = diff_items(current, prior, by_name)

        assert [a["page_name"] for a in diff.added] == ["F", "G"]
        assert [r["page_name"] for r in diff.removed] == ["E"]
        assert diff.unchanged_count == 4
        assert diff.first_run is False

    def test_identical_runs(self):
        """Same items twice means nothing added or removed."""
        diff = diff_items(_ads("A", "B"), _ads("B", "A"), by_name)

        assert diff.added == []
        assert diff.removed == []
        assert diff.unchanged_count == 2

    def test_keys_compared_case_and_whitespace_insensitively(self):
        """'Acme ' and 'acme' are the same competitor."""
        diff = diff_items(_ads("Acme "), _ads("acme"), by_name)

        assert diff.added == []
        assert diff.unchanged_count == 1

    def test_keyless_items_excluded(self):
        """Items without a usable key are neither added nor removed."""
        current = [{"page_name": ""}, {"ad_body_text": "no name"}, {"page_name": "A"}]
        prior = [{"page_name": None}]

        diff = diff_items(current, prior, by_name)

        assert diff.added == [{"page_name": "A"}]
        assert diff.removed == []

    def test_duplicate_keys_counted_once(self):
        """The first occurrence of a repeated key represents it."""
        current = [{"page_name": "A", "n": 1}, {"page_name": "a", "n": 2}]

        diff = diff_items(current, [], by_name)

        assert diff.added == [{"page_name": "A", "n": 1}]

    def test_empty_prior_list_is_not_first_run(self):
        """An earlier run that found nothing is still history."""
        diff = diff_items(_ads("A"), [], by_name)

        assert diff.first_run is False
        assert diff.added_count == 1

    def test_failing_key_function_treated_as_keyless(self):
        """Errors inside the key extractor exclude the item."""
        diff = diff_items([{"x": 1}], None, lambda item: item["page_name"])

        assert diff.added == []

    def test_plain_strings_are_their_own_key(self):
        """field_key falls back to the item itself for non-dicts."""
        diff = diff_items(["a", "b"], ["b", "c"], field_key("name"))

        assert diff.added == ["a"]
        assert diff.removed == ["c"]


class TestFieldKey:
    """Tests for field_key."""

    def test_first_non_empty_field(self):
        key = field_key("headline", "title")

        assert key({"headline": "", "title": "Fallback"}) == "Fallback"
        assert key({"headline": "Main", "title": "Other"}) == "Main"
        assert key({"body": "x"}) is None


class TestDiffAgainstRun:
    """Tests for diffing against a stored run."""

    def test_reads_items_from_run_output(self):
        prior = AutomationRun(output={"ads": _ads("A", "B")})

        diff = diff_against_run(_ads("B", "C"), prior, by_name, "ads")

        assert [a["page_name"] for a in diff.added] == ["C"]
        assert [r["page_name"] for r in diff.removed] == ["A"]

    def test_missing_field_treated_as_empty(self):
        prior = AutomationRun(output={"something_else": 1})

        diff = diff_against_run(_ads("A"), prior, by_name, "ads")

        assert diff.first_run is False
        assert diff.added_count == 1

    def test_no_prior_run(self):
        diff = diff_against_run(_ads("A"), None, by_name, "ads")

        assert diff.first_run is True

    def test_to_output(self):
        diff = diff_against_run(_ads("A"), None, by_name, "ads")

        assert diff.to_output() == {
            "added": _ads("A"),
            "removed": [],
            "unchanged_count": 0,
            "first_run": True,
        }
