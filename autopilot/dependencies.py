from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from autopilot.config import AppConfig, Settings, get_config, get_settings
from autopilot.core.database import get_db
from autopilot.engine.config import EngineConfig, build_engine_config
from autopilot.engine.executor import RunExecutor
from autopilot.engine.store import RunStore
from autopilot.performance.classifier import HealthThresholds
from autopilot.performance.sync import PerformanceSyncEngine
from autopilot.services.ads_insights import AdsInsightsClient
from autopilot.services.automation_client import AutomationProvider, BrowserAutomationClient
from autopilot.services.search_context import ContextSearch
from autopilot.services.summarizer import NarrativeSummarizer

# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Config = Annotated[AppConfig, Depends(get_config)]


def get_engine_config(config: Config) -> EngineConfig:
    return build_engine_config(config)


EngineSettings = Annotated[EngineConfig, Depends(get_engine_config)]


def get_automation_provider(engine_config: EngineSettings) -> AutomationProvider:
    return BrowserAutomationClient.from_engine_config(engine_config)


def get_summarizer() -> NarrativeSummarizer | None:
    """Summarizer when an LLM key is configured, None otherwise."""
    summarizer = NarrativeSummarizer()
    return summarizer if summarizer.enabled else None


def get_context_search() -> ContextSearch | None:
    search = ContextSearch()
    return search if search.enabled else None


def get_run_store(db: DBSession, engine_config: EngineSettings) -> RunStore:
    return RunStore(db, finalize_retry=engine_config.finalize_retry)


async def get_run_executor(
    engine_config: EngineSettings,
    store: Annotated[RunStore, Depends(get_run_store)],
    provider: Annotated[AutomationProvider, Depends(get_automation_provider)],
    summarizer: Annotated[NarrativeSummarizer | None, Depends(get_summarizer)],
    context_search: Annotated[ContextSearch | None, Depends(get_context_search)],
) -> RunExecutor:
    return RunExecutor(
        config=engine_config,
        store=store,
        provider=provider,
        summarizer=summarizer,
        context_search=context_search,
    )


async def get_performance_sync(
    db: DBSession,
    config: Config,
    store: Annotated[RunStore, Depends(get_run_store)],
) -> PerformanceSyncEngine:
    return PerformanceSyncEngine(
        db,
        AdsInsightsClient(performance=config.performance),
        thresholds=HealthThresholds.from_config(config.performance),
        store=store,
    )


# Type aliases for engine endpoints
Store = Annotated[RunStore, Depends(get_run_store)]
Executor = Annotated[RunExecutor, Depends(get_run_executor)]
PerformanceSync = Annotated[PerformanceSyncEngine, Depends(get_performance_sync)]
