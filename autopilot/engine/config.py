"""Explicit configuration handed to the run executor."""

from dataclasses import dataclass, field

from autopilot.config import AppConfig, get_config
from autopilot.core.errors import PreconditionError
from autopilot.core.retry import RetryConfig


@dataclass(frozen=True)
class EngineConfig:
    """Everything the executor needs to know, resolved once at construction."""

    provider_base_url: str
    provider_api_key: str = ""
    deadline_seconds: float = 55.0
    success_status: str = "COMPLETED"
    browser_profile: str = "stealth"
    proxy_enabled: bool = True
    finalize_retry: RetryConfig = field(default_factory=RetryConfig)
    # agent kind value -> extra normalizer keys
    extra_result_keys: dict[str, list[str]] = field(default_factory=dict)

    def require_provider_key(self) -> str:
        if not self.provider_api_key:
            raise PreconditionError("Automation provider API key not configured")
        return self.provider_api_key


def build_engine_config(config: AppConfig | None = None) -> EngineConfig:
    """Build an EngineConfig from .env settings and the config.yml engine section."""
    config = config or get_config()
    settings = config.settings
    engine = config.engine

    return EngineConfig(
        provider_base_url=settings.automation_base_url.rstrip("/"),
        provider_api_key=settings.automation_api_key,
        deadline_seconds=float(engine.deadline_seconds),
        success_status=engine.success_status,
        browser_profile=engine.browser_profile,
        proxy_enabled=engine.proxy_enabled,
        finalize_retry=RetryConfig(
            max_attempts=engine.finalize_max_attempts,
            backoff_base=engine.finalize_backoff_base,
            backoff_max=engine.finalize_backoff_max,
        ),
        extra_result_keys=config.agents.result_keys,
    )
