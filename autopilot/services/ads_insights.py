"""
Ads platform insights client (Meta Graph API).

Fetches lifetime delivery metrics for one campaign:

    GET /{campaign_id}/insights?fields=impressions,clicks,spend,actions&date_preset=lifetime

The platform returns numbers as strings and an empty data list when the
campaign has not delivered yet.
"""

from collections.abc import Sequence
from typing import Any

import httpx

from autopilot.config import PerformanceConfig, get_config
from autopilot.core.errors import ProviderError
from autopilot.core.logging import get_logger
from autopilot.schemas.performance import CampaignMetrics

logger = get_logger(__name__)

INSIGHTS_FIELDS = "impressions,clicks,spend,actions"
# Graph API error code for an invalid or expired OAuth token
TOKEN_EXPIRED_CODE = 190


class AdsApiError(ProviderError):
    """The ads platform rejected or failed an insights request."""


class AdsTokenExpiredError(AdsApiError):
    """The stored access token is no longer valid."""


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_insights(
    body: dict[str, Any],
    lead_action_types: Sequence[str] = ("lead",),
) -> CampaignMetrics:
    """
    Convert an insights response body into metrics.

    Spend is reported in major currency units and stored in minor units.
    Leads are the value of the first action whose type is a lead type.
    """
    rows = body.get("data") or []
    insights = rows[0] if rows and isinstance(rows[0], dict) else {}

    leads = 0
    for action in insights.get("actions") or []:
        if isinstance(action, dict) and action.get("action_type") in lead_action_types:
            leads = _as_int(action.get("value"))
            break

    return CampaignMetrics(
        impressions=_as_int(insights.get("impressions")),
        clicks=_as_int(insights.get("clicks")),
        spend_minor_units=round(_as_float(insights.get("spend")) * 100),
        leads_count=leads,
    )


class AdsInsightsClient:
    """Thin async client for campaign insights."""

    def __init__(
        self,
        base_url: str | None = None,
        performance: PerformanceConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        config = get_config()
        performance = performance or config.performance
        self.base_url = (base_url or config.settings.ads_graph_base_url).rstrip("/")
        self.date_preset = performance.date_preset
        self.lead_action_types = tuple(performance.lead_action_types)
        self.timeout = performance.request_timeout_seconds
        self._client = client

    async def fetch_campaign_metrics(
        self,
        external_campaign_id: str,
        access_token: str,
    ) -> CampaignMetrics:
        """
        Fetch lifetime metrics for one campaign.

        Raises:
            AdsTokenExpiredError: HTTP 401 or Graph error code 190
            AdsApiError: Any other platform or transport failure
        """
        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.get(
                f"{self.base_url}/{external_campaign_id}/insights",
                params={
                    "fields": INSIGHTS_FIELDS,
                    "date_preset": self.date_preset,
                    "access_token": access_token,
                },
            )
        except httpx.HTTPError as e:
            raise AdsApiError(f"Ads API request failed: {e.__class__.__name__}") from e
        finally:
            if self._client is None:
                await client.aclose()

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        error = body.get("error") if isinstance(body.get("error"), dict) else None
        if not response.is_success or error:
            if response.status_code == 401 or (error and error.get("code") == TOKEN_EXPIRED_CODE):
                raise AdsTokenExpiredError("Access token expired, reconnect the ad account")
            message = (error or {}).get("message") or f"HTTP {response.status_code}"
            logger.bind(
                campaign=external_campaign_id,
                status=response.status_code,
                error=message,
            ).warning("ads_insights_error")
            raise AdsApiError(f"Ads API error: {message}")

        return parse_insights(body, self.lead_action_types)
