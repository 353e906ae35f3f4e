"""Base class for agents that run on the automation engine."""

from abc import ABC, abstractmethod
from typing import Any

from autopilot.core.datetime_utils import utc_now
from autopilot.core.errors import InputValidationError
from autopilot.models.automation_run import AgentKind
from autopilot.models.business import Business
from autopilot.schemas.run import DiffResult, ProviderTask, RunSummaries


class AgentDefinition(ABC):
    """
    Describes one agent flavor to the run executor.

    Subclasses say what to ask the automation provider, where the item list
    lives in the result, how items are identified across runs, and how the
    final output and summaries look. The executor owns everything else.
    """

    kind: AgentKind
    # Key the item list is stored under in the run output
    items_field: str = "items"
    # Extra normalizer keys, checked after the defaults
    result_keys: tuple[str, ...] = ()
    required_inputs: tuple[str, ...] = ()
    max_items: int | None = None

    def validate(self, input: dict[str, Any]) -> dict[str, Any]:
        """
        Check required inputs and return a cleaned copy.

        Raises:
            InputValidationError: A required field is missing or blank
        """
        cleaned = {k: v.strip() if isinstance(v, str) else v for k, v in input.items()}
        missing = [
            name
            for name in self.required_inputs
            if cleaned.get(name) is None or cleaned.get(name) == ""
        ]
        if missing:
            raise InputValidationError(f"Missing required input: {', '.join(missing)}")
        return cleaned

    def default_input(self, business: Business) -> dict[str, Any]:
        """Input values derived from the business profile."""
        return {}

    @abstractmethod
    def build_task(self, input: dict[str, Any]) -> ProviderTask:
        """Target URL and goal for the automation provider."""

    @abstractmethod
    def item_key(self, item: Any) -> Any:
        """Identity of an item across runs (normalized by the diff engine)."""

    def trigger_reason(self, input: dict[str, Any]) -> str:
        return f"Running {self.kind.value.replace('_', ' ')}"

    def context_query(self, input: dict[str, Any]) -> str | None:
        """Web search query for market context, None to skip the search."""
        return None

    def unwrap_payload(self, payload: Any) -> Any:
        """Hook for agents whose provider nests the interesting object."""
        return payload

    def prepare_items(self, items: list[Any]) -> list[Any]:
        if self.max_items is not None:
            return items[: self.max_items]
        return items

    def requires_approval(self, items: list[Any]) -> bool:
        return False

    def build_output(
        self,
        items: list[Any],
        diff: DiffResult,
        payload: Any,
        input: dict[str, Any],
    ) -> dict[str, Any]:
        """Output stored on the run. Must keep the item list under items_field."""
        return {
            self.items_field: items,
            "diff": diff.to_output(),
            "scanned_at": utc_now().isoformat(),
        }

    @abstractmethod
    def describe(
        self,
        input: dict[str, Any],
        items: list[Any],
        diff: DiffResult,
        output: dict[str, Any],
    ) -> RunSummaries:
        """Deterministic summaries, used when no narrative is generated."""


def resolve_input(
    agent: AgentDefinition,
    business: Business | None,
    params: dict[str, Any],
) -> dict[str, Any]:
    """Merge business-derived defaults with explicit params (explicit wins, blanks ignored)."""
    resolved = agent.default_input(business) if business is not None else {}
    for key, value in params.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        resolved[key] = value
    return {k: v for k, v in resolved.items() if v is not None}
