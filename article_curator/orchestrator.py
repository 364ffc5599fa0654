"""
Collection orchestrator and command-line entry point.

One run moves through ``IDLE -> COLLECTING -> MERGING -> DEDUPLICATING ->
SCORING -> FILTERING -> DONE``. Adapters are invoked concurrently, each
wrapped by the retry executor; an adapter failure becomes a CollectionError
and never aborts the run. Only a failure of the orchestration logic itself
(for example malformed filter criteria) raises FatalError.
"""

import asyncio
import sys
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import click
import structlog
from pydantic import ValidationError

from .config import (
    CuratorConfig,
    FilterCriteria,
    RetryConfig,
    Settings,
    get_settings,
    load_config,
    validate_config,
)
from .errors import AdapterError, CuratorError, FatalError
from .ingest.sources import SourceAdapter, build_adapters
from .logging import PerformanceLogger, get_logger, log_error, log_processing_stage, setup_logging
from .models import (
    CollectionError,
    CollectionResult,
    Item,
    SourceFailed,
    SourceOutcome,
    SourceSucceeded,
)
from .notify.discord import DiscordNotifier
from .processing.dedupe import Deduplicator
from .processing.filtering import FilterRankStage
from .processing.scoring import RelevanceScorer
from .retry import RetryExecutor, http_retry_condition
from .ui import CuratorUI

ORCHESTRATOR_SOURCE = "orchestrator"


class PipelineState(Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    MERGING = "merging"
    DEDUPLICATING = "deduplicating"
    SCORING = "scoring"
    FILTERING = "filtering"
    DONE = "done"


@dataclass(frozen=True)
class RunSummary:
    """Outcome of a full collect-and-notify run."""
    result: CollectionResult
    notified: bool | None   # None when no notifier was used
    duration: float
    source_breakdown: dict[str, int]


class CollectionOrchestrator:
    """Runs the collect, merge, deduplicate, score and filter pipeline."""

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout_ms: float | None = None,
        deduplicator: Deduplicator | None = None,
        scorer: RelevanceScorer | None = None,
        filter_stage: FilterRankStage | None = None,
        retry_executor: RetryExecutor | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ):
        self.logger = logger or get_logger(__name__)
        self.retry_config = retry_config or RetryConfig()
        self.timeout_ms = timeout_ms
        self.deduplicator = deduplicator or Deduplicator(logger=self.logger)
        self.scorer = scorer or RelevanceScorer(logger=self.logger)
        self.filter_stage = filter_stage or FilterRankStage(logger=self.logger)
        self.retry_executor = retry_executor or RetryExecutor(self.retry_config, logger=self.logger)
        self.state = PipelineState.IDLE
        self.state_history: list[PipelineState] = [PipelineState.IDLE]

    def _transition(self, state: PipelineState) -> None:
        self.logger.debug("Pipeline state change", previous=self.state.value, state=state.value)
        self.state = state
        self.state_history.append(state)

    async def run_collection(
        self,
        criteria: FilterCriteria | Mapping[str, Any],
        adapters: list[SourceAdapter],
        since: datetime | None = None,
    ) -> CollectionResult:
        """Collect from every enabled adapter and select the ranked result.

        Args:
            criteria: Keywords, exclusions, threshold and cap
            adapters: Source adapters; disabled ones are ignored
            since: Only items published at or after this instant

        Returns:
            Ranked items and one CollectionError per failed source

        Raises:
            FatalError: If the orchestration logic itself fails
        """
        self.state = PipelineState.IDLE
        self.state_history = [PipelineState.IDLE]

        try:
            criteria = self._validate_criteria(criteria)
            with PerformanceLogger("collection_run", self.logger):
                result = await self._run(criteria, adapters, since)
        except FatalError:
            raise
        except Exception as e:
            self.logger.error(**log_error(e, context="orchestration", state=self.state.value))
            raise FatalError(
                f"Collection pipeline failed while {self.state.value}: {e}",
                {"state": self.state.value},
            ) from e

        self._transition(PipelineState.DONE)
        return result

    @staticmethod
    def _validate_criteria(criteria: FilterCriteria | Mapping[str, Any]) -> FilterCriteria:
        if isinstance(criteria, FilterCriteria):
            return criteria
        try:
            return FilterCriteria.model_validate(criteria)
        except ValidationError as e:
            raise FatalError(f"Malformed filter criteria: {e.error_count()} validation error(s)") from e

    async def _run(
        self,
        criteria: FilterCriteria,
        adapters: list[SourceAdapter],
        since: datetime | None,
    ) -> CollectionResult:
        enabled = [adapter for adapter in adapters if adapter.enabled]

        self._transition(PipelineState.COLLECTING)
        self.logger.info("Collecting from sources", enabled=[a.name for a in enabled])
        outcomes = await asyncio.gather(*(self._collect_outcome(a, since) for a in enabled))

        self._transition(PipelineState.MERGING)
        items, errors = self._merge(outcomes)
        if not enabled:
            self.logger.warning("No enabled source adapters")
            errors.append(CollectionError(ORCHESTRATOR_SOURCE, "No enabled source adapters"))

        self._transition(PipelineState.DEDUPLICATING)
        unique, _ = self.deduplicator.deduplicate(items)

        self._transition(PipelineState.SCORING)
        self.scorer.score_items(unique, criteria.keywords)

        self._transition(PipelineState.FILTERING)
        selected = self.filter_stage.apply(unique, criteria)

        self.logger.info(**log_processing_stage(
            stage="collection_run",
            input_count=len(items),
            output_count=len(selected),
            sources=len(enabled),
            failed_sources=len(errors),
        ))
        return CollectionResult(items=tuple(selected), errors=tuple(errors))

    async def _collect_outcome(self, adapter: SourceAdapter, since: datetime | None) -> SourceOutcome:
        # adapter boundary: every failure becomes a SourceFailed outcome
        try:
            items = await self._invoke(adapter, since)
        except Exception as e:
            return SourceFailed(adapter.name, e)

        fresh = [item for item in items if not item.is_scored]
        if len(fresh) < len(items):
            self.logger.warning(
                "Dropped items that were already scored",
                source=adapter.name,
                dropped=[item.id for item in items if item.is_scored],
            )
        return SourceSucceeded(adapter.name, fresh)

    async def _invoke(self, adapter: SourceAdapter, since: datetime | None) -> list[Item]:
        async def operation() -> list[Item]:
            return await adapter.collect(adapter.search_terms, since)

        name = f"Collect from {adapter.name}"
        if self.timeout_ms:
            return await self.retry_executor.with_timeout_and_retry(
                operation,
                self.timeout_ms,
                self.retry_config,
                operation_name=name,
                should_retry=http_retry_condition(),
            )
        return await self.retry_executor.with_retry_condition(
            operation, http_retry_condition(), self.retry_config, operation_name=name
        )

    def _merge(self, outcomes: list[SourceOutcome]) -> tuple[list[Item], list[CollectionError]]:
        items: list[Item] = []
        errors: list[CollectionError] = []

        for outcome in outcomes:
            if isinstance(outcome, SourceSucceeded):
                items.extend(outcome.items)
                self.logger.debug("Source succeeded", source=outcome.source, items=len(outcome.items))
            else:
                errors.append(CollectionError(outcome.source, str(outcome.error)))
                self.logger.warning(**log_error(outcome.error, context="source_collection", source=outcome.source))

        self.logger.info(
            "Parallel collection finished",
            succeeded=len(outcomes) - len(errors),
            failed=len(errors),
            items=len(items),
        )
        return items, errors

    async def collect_from_source(
        self,
        source_name: str,
        adapters: list[SourceAdapter],
        since: datetime | None = None,
    ) -> list[Item]:
        """Collect raw items from one named source, with retry and timeout."""
        adapter = next((a for a in adapters if a.name.lower() == source_name.lower()), None)
        if adapter is None:
            raise AdapterError(f"Source '{source_name}' not found", source=source_name)
        if not adapter.enabled:
            raise AdapterError(f"Source '{source_name}' is disabled", source=source_name)

        self.logger.info("Single source collection started", source=adapter.name)
        items = await self._invoke(adapter, since)
        self.logger.info("Single source collection finished", source=adapter.name, items=len(items))
        return items

    def collection_stats(self, adapters: list[SourceAdapter]) -> dict[str, Any]:
        return {
            "total_sources": len(adapters),
            "enabled_sources": [a.name for a in adapters if a.enabled],
            "cache_stats": self.deduplicator.cache_stats(),
        }

    def clear_cache(self) -> None:
        self.deduplicator.clear()
        self.logger.info("Orchestrator cache cleared")


async def run_collection(
    criteria: FilterCriteria | Mapping[str, Any],
    adapters: list[SourceAdapter],
    since: datetime | None = None,
    orchestrator: CollectionOrchestrator | None = None,
) -> CollectionResult:
    """Run one collection with a default orchestrator."""
    orchestrator = orchestrator or CollectionOrchestrator()
    return await orchestrator.run_collection(criteria, adapters, since)


def lookback_start(settings: Settings, now: datetime | None = None) -> datetime:
    """Start of the collection window."""
    now = now or datetime.now(timezone.utc)
    return now - timedelta(hours=settings.lookback_hours)


def create_orchestrator(
    config: CuratorConfig,
    deduplicator: Deduplicator | None = None,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> CollectionOrchestrator:
    return CollectionOrchestrator(
        retry_config=config.retry_config(),
        timeout_ms=config.performance.timeout_ms,
        deduplicator=deduplicator,
        logger=logger,
    )


async def run_pipeline(
    config: CuratorConfig,
    settings: Settings | None = None,
    adapters: list[SourceAdapter] | None = None,
    notifier: DiscordNotifier | None = None,
    deduplicator: Deduplicator | None = None,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> RunSummary:
    """Collect, notify and persist deduplication state.

    A notification failure is reported in the summary and never raised.
    """
    settings = settings or get_settings()
    logger = logger or get_logger(__name__)
    start = time.monotonic()

    deduplicator = deduplicator or Deduplicator(logger=logger)
    if settings.dedupe_state_path:
        deduplicator.load_state(settings.dedupe_state_path)

    if adapters is None:
        adapters = build_adapters(config, settings, logger)

    orchestrator = create_orchestrator(config, deduplicator, logger)
    result = await orchestrator.run_collection(
        config.filter_criteria(), adapters, since=lookback_start(settings)
    )

    notified = None
    if notifier is not None:
        notified = await notifier.send(list(result.items))
        if not notified:
            logger.warning("Notification failed; collection result is still valid")

    if settings.dedupe_state_path:
        deduplicator.save_state(settings.dedupe_state_path)

    duration = time.monotonic() - start
    logger.info(
        "Pipeline finished",
        items=len(result.items),
        errors=len(result.errors),
        notified=notified,
        duration=round(duration, 3),
    )
    return RunSummary(
        result=result,
        notified=notified,
        duration=duration,
        source_breakdown=result.source_breakdown(),
    )


async def _collect_single_source(config: CuratorConfig, settings: Settings, source: str) -> list[Item]:
    adapters = build_adapters(config, settings)
    orchestrator = create_orchestrator(config)
    return await orchestrator.collect_from_source(source, adapters, since=lookback_start(settings))


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    help="YAML configuration file (default: CONFIG_PATH or config/keywords.yaml)",
)
@click.option("--source", help="Collect from a single source and print its items")
@click.option("--test", "test_message", is_flag=True, help="Send a Discord test message and exit")
@click.option("--dry-run", is_flag=True, help="Collect and rank without sending a notification")
@click.option(
    "--validate-config",
    "validate_config_flag",
    is_flag=True,
    help="Validate configuration and exit",
)
@click.option("--log-level", help="Log level (overrides LOG_LEVEL)")
@click.option("--verbose", is_flag=True, help="Show debug logs and progress details")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON")
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), help="Also write logs to this file")
def cli(config_path, source, test_message, dry_run, validate_config_flag, log_level, verbose, json_logs, log_file):
    """AI Article Curator - collect, rank and deliver AI articles."""
    settings = get_settings()
    actual_log_level = "DEBUG" if verbose else (log_level or settings.log_level)
    setup_logging(
        log_level=actual_log_level,
        json_logging=json_logs or settings.json_logging,
        log_file=log_file,
    )
    logger = get_logger(__name__)

    ui = CuratorUI(verbose=verbose)
    full_run = not (validate_config_flag or test_message or source or dry_run)
    config: CuratorConfig | None = None

    try:
        config = load_config(config_path, settings)
        ui.verbose_log(f"Configuration loaded from {config_path or settings.config_path}")
        ui.verbose_log(f"Enabled sources: {', '.join(config.sources.enabled_sources()) or 'none'}")

        if validate_config_flag:
            problems = validate_config(config, settings)
            if problems:
                ui.show_problems(problems)
                sys.exit(1)
            ui.success("Configuration is valid")
            sys.exit(0)

        if test_message:
            notifier = DiscordNotifier.from_config(config.discord)
            if asyncio.run(notifier.send_test_message()):
                ui.success("Test message sent")
                sys.exit(0)
            ui.error("Test message failed")
            sys.exit(1)

        if source:
            items = asyncio.run(_collect_single_source(config, settings, source))
            ui.show_items(items, title=f"Items from {source}")
            return

        problems = validate_config(config, settings, require_webhook=not dry_run)
        if problems:
            ui.show_problems(problems)
            sys.exit(1)

        ui.show_banner()
        notifier = None
        if not dry_run:
            notifier = DiscordNotifier.from_config(config.discord)
        else:
            ui.verbose_log("Dry run: the Discord notification is skipped")
        ui.verbose_log(f"Lookback window: {settings.lookback_hours:g} hours")
        if settings.dedupe_state_path:
            ui.verbose_log(f"Deduplication state: {settings.dedupe_state_path}")

        summary = asyncio.run(run_pipeline(config, settings, notifier=notifier))
        for name, count in sorted(summary.source_breakdown.items()):
            ui.verbose_log(f"{name}: {count} item(s) selected")
        ui.show_source_results(summary.source_breakdown, summary.result.errors)
        ui.show_items(list(summary.result.items))
        ui.show_run_summary(summary)

    except CuratorError as e:
        logger.error(**log_error(e, context="cli"))
        ui.error(str(e))
        if full_run:
            webhook_url = config.discord.webhook_url if config is not None else settings.discord_webhook_url
            if webhook_url and asyncio.run(DiscordNotifier(webhook_url).send_error_notification(e)):
                ui.verbose_log("Error notification sent to Discord")
        sys.exit(1)


if __name__ == "__main__":
    cli()
