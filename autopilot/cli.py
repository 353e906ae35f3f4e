"""
Autopilot CLI - Command line interface for running agents.

Usage:
    autopilot --help                                   Show all commands
    autopilot run competitor_research --business-id B --user-id U
    autopilot run review_scan -b B -u U -p location=Sydney
    autopilot sync-performance --business-id B --user-id U
    autopilot runs --business-id B                     Show recent runs
    autopilot reconcile                                Fail runs stuck in running
"""

import asyncio
import json

import typer

app = typer.Typer(
    name="autopilot",
    help="Autopilot CLI - Agent runner for the automation engine",
    no_args_is_help=True,
)


# --- Output helpers ---


def _print_success(message: str) -> None:
    """Print a success message."""
    typer.echo(f"  ✅ {message}")


def _print_warning(message: str) -> None:
    """Print a warning message."""
    typer.echo(f"  ⚠️ {message}")


def _print_error(message: str) -> None:
    """Print an error message to stderr."""
    typer.echo(f"❌ {message}", err=True)


def parse_params(params: list[str]) -> dict[str, str]:
    """Turn repeated key=value options into a dict."""
    parsed = {}
    for param in params:
        key, sep, value = param.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected key=value, got {param!r}")
        parsed[key.strip()] = value.strip()
    return parsed


def _print_result(result) -> None:
    typer.echo(f"\nRun {result.run_id} [{result.agent_kind.value}] -> {result.status.value}")
    if result.duration_ms is not None:
        typer.echo(f"  Duration: {result.duration_ms} ms")
    if result.replay_reference:
        typer.echo(f"  Replay: {result.replay_reference}")

    if result.error_message:
        _print_error(result.error_message)
    elif result.summary:
        _print_success(result.summary)
        if result.narrative_summary:
            typer.echo(f"  {result.narrative_summary}")

    if result.requires_approval:
        _print_warning("Output needs approval before it is used")
    if not result.finalized:
        _print_warning("Run could not be finalized; it will be picked up by reconcile")


async def _run_agent(
    agent_kind: str,
    business_id: str,
    user_id: str,
    params: dict[str, str],
    trigger_reason: str | None,
):
    from autopilot.agents import get_agent, resolve_input
    from autopilot.core.database import AsyncSessionLocal
    from autopilot.engine.config import build_engine_config
    from autopilot.engine.executor import RunExecutor
    from autopilot.engine.store import RunStore
    from autopilot.models.business import Business
    from autopilot.schemas.run import RunRequest
    from autopilot.services.automation_client import BrowserAutomationClient
    from autopilot.services.search_context import ContextSearch
    from autopilot.services.summarizer import NarrativeSummarizer

    engine_config = build_engine_config()
    agent = get_agent(agent_kind)
    summarizer = NarrativeSummarizer()
    search = ContextSearch()

    async with AsyncSessionLocal() as db:
        business = await db.get(Business, business_id)
        executor = RunExecutor(
            config=engine_config,
            store=RunStore(db, finalize_retry=engine_config.finalize_retry),
            provider=BrowserAutomationClient.from_engine_config(engine_config),
            summarizer=summarizer if summarizer.enabled else None,
            context_search=search if search.enabled else None,
        )
        return await executor.execute(
            agent,
            RunRequest(
                business_id=business_id,
                user_id=user_id,
                trigger_reason=trigger_reason,
                input=resolve_input(agent, business, params),
            ),
        )


@app.command()
def run(
    agent_kind: str = typer.Argument(
        ..., help="Agent kind: competitor_research, review_scan, creative_generation"
    ),
    business_id: str = typer.Option(..., "--business-id", "-b", help="Business to run for"),
    user_id: str = typer.Option(..., "--user-id", "-u", help="User the run belongs to"),
    param: list[str] = typer.Option(
        [], "--param", "-p", help="Agent input as key=value (repeatable)"
    ),
    reason: str | None = typer.Option(None, "--reason", help="Trigger reason to record"),
):
    """Run one agent now and print the finalized run."""
    from autopilot.core.errors import EngineError
    from autopilot.core.logging import setup_logging

    setup_logging()
    params = parse_params(param)

    try:
        result = asyncio.run(_run_agent(agent_kind, business_id, user_id, params, reason))
    except EngineError as e:
        _print_error(e.message)
        raise typer.Exit(1) from e

    _print_result(result)
    if result.error_message:
        raise typer.Exit(1)


async def _sync_performance(business_id: str, user_id: str):
    from autopilot.config import get_config
    from autopilot.core.database import AsyncSessionLocal
    from autopilot.engine.config import build_engine_config
    from autopilot.engine.store import RunStore
    from autopilot.performance.classifier import HealthThresholds
    from autopilot.performance.sync import PerformanceSyncEngine
    from autopilot.services.ads_insights import AdsInsightsClient

    config = get_config()
    engine_config = build_engine_config(config)

    async with AsyncSessionLocal() as db:
        engine = PerformanceSyncEngine(
            db,
            AdsInsightsClient(performance=config.performance),
            thresholds=HealthThresholds.from_config(config.performance),
            store=RunStore(db, finalize_retry=engine_config.finalize_retry),
        )
        return await engine.sync_business(business_id, user_id)


@app.command("sync-performance")
def sync_performance(
    business_id: str = typer.Option(..., "--business-id", "-b", help="Business to sync"),
    user_id: str = typer.Option(..., "--user-id", "-u", help="User the run belongs to"),
):
    """Sync campaign metrics from the ads platform and classify health."""
    from autopilot.core.errors import EngineError
    from autopilot.core.logging import setup_logging

    setup_logging()

    try:
        result = asyncio.run(_sync_performance(business_id, user_id))
    except EngineError as e:
        _print_error(e.message)
        raise typer.Exit(1) from e

    _print_result(result)
    for entry in (result.output or {}).get("results", []):
        detail = entry.get("reason") or (entry.get("snapshot") or {}).get("performance_status")
        name = entry.get("campaign_name") or entry["campaign_id"]
        typer.echo(f"  - {name}: {entry['status']} ({detail})")


async def _list_runs(business_id: str | None, agent_kind: str | None, limit: int):
    from autopilot.core.database import AsyncSessionLocal
    from autopilot.engine.store import RunStore
    from autopilot.models.automation_run import AgentKind

    async with AsyncSessionLocal() as db:
        return await RunStore(db).list_runs(
            business_id=business_id,
            agent_kind=AgentKind(agent_kind) if agent_kind else None,
            limit=limit,
        )


@app.command()
def runs(
    business_id: str | None = typer.Option(None, "--business-id", "-b", help="Filter by business"),
    agent_kind: str | None = typer.Option(None, "--agent", "-a", help="Filter by agent kind"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of runs to show"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
):
    """Show recent runs."""
    from autopilot.schemas.run import RunResponse

    try:
        rows = asyncio.run(_list_runs(business_id, agent_kind, limit))
    except ValueError as e:
        _print_error(str(e))
        raise typer.Exit(1) from e

    if as_json:
        payload = [RunResponse.model_validate(r).model_dump(mode="json") for r in rows]
        typer.echo(json.dumps(payload, indent=2))
        return

    if not rows:
        typer.echo("No runs found")
        return

    for r in rows:
        duration = f"{r.duration_ms}ms" if r.duration_ms is not None else "-"
        typer.echo(
            f"{r.started_at:%Y-%m-%d %H:%M} {r.id[:8]} {r.agent_kind.value:<20} "
            f"{r.status.value:<15} {duration:>8}  {r.summary or r.error_message or ''}"
        )


async def _reconcile(older_than_minutes: int, dry_run: bool) -> list[str]:
    from autopilot.core.database import AsyncSessionLocal
    from autopilot.engine.store import RunStore

    async with AsyncSessionLocal() as db:
        store = RunStore(db)
        stale = await store.find_stale_running(older_than_minutes)
        stale_ids = [run.id for run in stale]
        if not dry_run:
            for run_id in stale_ids:
                await store.finalize_failure(
                    run_id, f"Run did not finish within {older_than_minutes} minutes"
                )
        return stale_ids


@app.command()
def reconcile(
    older_than: int | None = typer.Option(
        None, "--older-than", help="Minutes a run may stay running (default from config.yml)"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="List stale runs without failing them"
    ),
):
    """Fail runs left in the running state, e.g. after a finalize write failed."""
    from autopilot.config import get_config
    from autopilot.core.logging import setup_logging

    setup_logging()
    minutes = older_than or get_config().engine.stale_run_minutes
    stale_ids = asyncio.run(_reconcile(minutes, dry_run))

    if not stale_ids:
        _print_success("No stale runs")
        return
    verb = "Found" if dry_run else "Failed"
    _print_warning(f"{verb} {len(stale_ids)} stale run(s)")
    for run_id in stale_ids:
        typer.echo(f"  - {run_id}")


if __name__ == "__main__":
    app()
