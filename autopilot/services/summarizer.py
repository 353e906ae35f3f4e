"""
Narrative summaries for finalized runs.

The language model only rewrites facts the engine already computed (counts,
diff, a sample of items) into a short operator summary and a first-person
narrative. It is never required: any failure returns None and the executor
falls back to the agent's deterministic wording.
"""

import json
from typing import Any

import backoff
from httpx import HTTPStatusError
from openai import AsyncOpenAI, RateLimitError

from autopilot.config import get_settings
from autopilot.core.logging import get_logger
from autopilot.models.automation_run import AgentKind
from autopilot.schemas.run import DiffResult, RunSummaries

logger = get_logger(__name__)

SYSTEM_PROMPT = """You write status updates for a marketing assistant that runs
background research jobs for small businesses.

Rules:
- "summary" is one factual sentence for an operator dashboard (max 200 characters)
- "narrative_summary" is written in the first person, as the assistant, addressed to the
  business owner (max 2 sentences)
- Only use the facts provided; never invent numbers, names or competitors
- If nothing changed since the last run, say so plainly

Output format is strictly JSON matching the schema provided."""

# Items beyond this are not sent to the model
MAX_SAMPLE_ITEMS = 5


def format_summary_prompt(
    agent_kind: AgentKind,
    items: list[Any],
    diff: DiffResult,
    context: str = "",
) -> str:
    """Build the user prompt from computed run facts."""
    prompt = f"""Summarize this {agent_kind.value.replace("_", " ")} run.

Items found: {len(items)}
First run for this business: {"yes" if diff.first_run else "no"}
New since last run: {diff.added_count}
Gone since last run: {diff.removed_count}
Unchanged: {diff.unchanged_count}
"""

    if items:
        sample = json.dumps(items[:MAX_SAMPLE_ITEMS], default=str)[:2000]
        prompt += f"\nSample items:\n{sample}\n"

    if context:
        prompt += f"\nMarket context:\n{context[:1000]}\n"

    prompt += "\nProduce a JSON object following the schema."
    return prompt


class NarrativeSummarizer:
    """OpenAI-backed summary writer."""

    def __init__(self, client: AsyncOpenAI | None = None, model: str | None = None) -> None:
        settings = get_settings()
        self.client = client
        self.model = model or settings.llm_model
        if self.client is None and settings.openai_api_key:
            self.client = AsyncOpenAI(api_key=settings.openai_api_key)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    @backoff.on_exception(
        backoff.expo,
        (RateLimitError, HTTPStatusError),
        max_tries=3,
        max_time=30,
    )
    async def _complete(self, prompt: str) -> RunSummaries | None:
        response = await self.client.beta.chat.completions.parse(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            response_format=RunSummaries,
            temperature=0.3,
        )
        return response.choices[0].message.parsed

    async def summarize(
        self,
        agent_kind: AgentKind,
        items: list[Any],
        diff: DiffResult,
        context: str = "",
    ) -> RunSummaries | None:
        """
        Write summaries for a run about to be finalized.

        Returns:
            RunSummaries, or None if disabled or generation fails
        """
        if not self.enabled:
            return None

        prompt = format_summary_prompt(agent_kind, items, diff, context)

        try:
            result = await self._complete(prompt)
        except Exception as e:
            logger.bind(agent_kind=agent_kind.value, error=str(e)).warning("run_summary_error")
            return None

        if result is None or not result.summary.strip():
            logger.bind(agent_kind=agent_kind.value).warning("run_summary_no_result")
            return None

        return result
