"""
Exploration pipeline for suggest-miner.

Sequences round 1, secondary keyword extraction and round 2 for one root
keyword, then merges both corpora into the final output. Round 2 only ever
calls the round runner, never the pipeline, so it cannot trigger a round 3.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from .candidates import ModifierStrategy, generate, get_strategy
from .config import MinerConfig
from .extractor import extract_secondary_keywords
from .fetchers import SuggestionFetcher, get_engine
from .models import (
    Checkpoint,
    CheckpointKey,
    CheckpointStore,
    CorruptCheckpointError,
    ExplorationRun,
    FetcherInitializationError,
    RunStatus,
)
from .rounds import RoundRunner

logger = logging.getLogger(__name__)


@dataclass
class StageResult:
    """Result from a pipeline stage."""

    success: bool
    message: str | None = None
    data: dict[str, Any] | None = None


class PipelineStage(ABC):
    """Base class for pipeline stages."""

    name: str = "base"

    def __init__(self, config: MinerConfig, store: CheckpointStore, runner: RoundRunner):
        self.config = config
        self.store = store
        self.runner = runner

    @abstractmethod
    async def process(self, run: ExplorationRun) -> StageResult:
        """Advance the run through this stage."""
        pass

    def is_enabled(self) -> bool:
        """Check if this stage is enabled in config."""
        return True

    def load_checkpoint(self, run: ExplorationRun, key: CheckpointKey) -> Checkpoint:
        """Load a checkpoint, restarting the root from scratch if it is unreadable."""
        try:
            return self.store.load(key)
        except CorruptCheckpointError as e:
            logger.warning(f"{e}; restarting {key.describe()} from scratch")
            run.checkpoint_errors.append(e)
            self.store.quarantine(key)
            return Checkpoint(key=key)


class PrimaryRoundStage(PipelineStage):
    """Round 1: probe the root keyword with the primary modifier strategy."""

    name = "round1"

    def __init__(
        self,
        config: MinerConfig,
        store: CheckpointStore,
        runner: RoundRunner,
        strategy: ModifierStrategy,
    ):
        super().__init__(config, store, runner)
        self.strategy = strategy

    async def process(self, run: ExplorationRun) -> StageResult:
        key = CheckpointKey(engine=run.engine, keyword=run.keyword, round=1, root=run.keyword)
        checkpoint = self.load_checkpoint(run, key)
        run.round1 = checkpoint

        candidates = generate(run.keyword, self.strategy)
        logger.info(f"Round 1 for {run.keyword!r}: {len(candidates)} candidate queries")

        await self.runner.run(candidates, checkpoint, round_number=1)
        stats = self.runner.last_stats
        run.discoveries.extend(stats.records)

        return StageResult(
            success=True,
            message=f"Round 1 complete: {len(checkpoint.suggestions)} suggestions",
            data={
                "candidates": len(candidates),
                "fetched": stats.fetched,
                "failed": stats.failed,
                "suggestions": len(checkpoint.suggestions),
            },
        )


class SecondaryRoundStage(PipelineStage):
    """Round 2: treat phrases mined from round 1 as new roots, one level deep."""

    name = "round2"

    def __init__(
        self,
        config: MinerConfig,
        store: CheckpointStore,
        runner: RoundRunner,
        strategy: ModifierStrategy,
        supported: bool = True,
    ):
        super().__init__(config, store, runner)
        self.strategy = strategy
        self.supported = supported

    def is_enabled(self) -> bool:
        return self.supported and self.config.exploration.enable_second_round

    async def process(self, run: ExplorationRun) -> StageResult:
        if run.round1 is None or not run.round1.suggestions:
            logger.info("No round 1 suggestions, skipping round 2")
            return StageResult(
                success=True,
                message="Skipped: no round 1 suggestions",
                data={"skipped": True, "reason": "no_round1_suggestions"},
            )

        secondary = extract_secondary_keywords(
            run.round1.suggestions,
            run.keyword,
            max_results=self.config.exploration.max_secondary_keywords,
            min_phrase_length=self.config.exploration.min_phrase_length,
        )
        run.secondary_keywords = secondary

        if not secondary:
            logger.info("No suitable secondary keywords found, skipping round 2")
            return StageResult(
                success=True,
                message="Skipped: no secondary keywords",
                data={"skipped": True, "reason": "no_secondary_keywords"},
            )

        logger.info(f"Round 2 with {len(secondary)} secondary keyword(s): {', '.join(secondary)}")

        # Aggregate view over every secondary root; never persisted itself
        aggregate = Checkpoint(
            key=CheckpointKey(engine=run.engine, keyword=run.keyword, round=2, root="*")
        )
        run.round2 = aggregate

        failed = 0
        for root in secondary:
            key = CheckpointKey(engine=run.engine, keyword=run.keyword, round=2, root=root)
            checkpoint = self.load_checkpoint(run, key)
            run.secondary_checkpoints[root] = checkpoint

            candidates = generate(root, self.strategy)
            await self.runner.run(candidates, checkpoint, round_number=2)
            failed += self.runner.last_stats.failed
            run.discoveries.extend(self.runner.last_stats.records)

            for query in checkpoint.processed_queries:
                aggregate.mark_processed(query)
            aggregate.add_suggestions(checkpoint.suggestions)

        return StageResult(
            success=True,
            message=f"Round 2 complete: {len(aggregate.suggestions)} suggestions",
            data={
                "secondary_keywords": secondary,
                "failed": failed,
                "suggestions": len(aggregate.suggestions),
            },
        )


def merge_suggestions(round1: list[str], round2: list[str]) -> list[str]:
    """Round-1 suggestions first, then round-2 suggestions not already present."""
    merged = dict.fromkeys(round1)
    for suggestion in round2:
        merged.setdefault(suggestion, None)
    return list(merged)


class ExplorationPipeline:
    """
    The exploration state machine for one root keyword.

    Round1 -> (Round2) -> Terminal. The run object is owned here; stages
    only fill in their own round.
    """

    def __init__(
        self,
        config: MinerConfig,
        fetcher: SuggestionFetcher,
        store: CheckpointStore | None = None,
        runner: RoundRunner | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Miner configuration
            fetcher: Suggestion source (started and closed by the pipeline)
            store: Checkpoint storage (defaults to config.output_dir)
            runner: Optional pre-built RoundRunner (for testing)
        """
        self.config = config
        self.fetcher = fetcher
        self.store = store or CheckpointStore(config.output_dir)
        self.runner = runner or RoundRunner(fetcher, self.store, config.pacing)

        engine = get_engine(config.engine)
        self.engine_name = engine.name
        primary = get_strategy(config.strategy or engine.default_strategy)
        secondary = get_strategy(config.exploration.secondary_strategy)

        self.stages: list[PipelineStage] = [
            PrimaryRoundStage(config, self.store, self.runner, primary),
            SecondaryRoundStage(
                config, self.store, self.runner, secondary, supported=engine.supports_second_round
            ),
        ]
        if not engine.supports_second_round and config.exploration.enable_second_round:
            logger.warning(f"{engine.name} does not support a second round, skipping it")

    async def run(self, keyword: str) -> ExplorationRun:
        """
        Explore one keyword to completion.

        Raises FetcherInitializationError if the fetcher cannot start; any
        checkpoints already on disk stay valid for a later resume.
        """
        keyword = keyword.strip()
        if not keyword:
            raise ValueError("keyword must not be empty")

        run = ExplorationRun(keyword=keyword, engine=self.engine_name)
        logger.info(f"Starting exploration of {keyword!r} on {self.engine_name}")

        try:
            await self.fetcher.start()
        except FetcherInitializationError as e:
            self._fail(run, e)
            raise
        except Exception as e:
            self._fail(run, e)
            raise FetcherInitializationError(f"Could not start fetcher: {e}") from e

        try:
            for stage in self.stages:
                if not stage.is_enabled():
                    logger.debug(f"Skipping disabled stage: {stage.name}")
                    continue

                logger.info(f"Running stage: {stage.name}")
                result = await stage.process(run)
                logger.info(f"Stage {stage.name}: {result.message}")

            self._finish(run)
            return run

        except BaseException as e:
            self._fail(run, e)
            raise

        finally:
            await self.fetcher.close()

    def _finish(self, run: ExplorationRun) -> None:
        round1 = run.round1.suggestions if run.round1 else []
        round2 = run.round2.suggestions if run.round2 else []
        run.merged_suggestions = merge_suggestions(round1, round2)
        run.finished_ts = datetime.now(UTC).isoformat()
        run.status = RunStatus.COMPLETED
        run.output_path = self.store.write_output(run)

        logger.info(
            f"Exploration of {run.keyword!r} completed: "
            f"{len(run.merged_suggestions)} unique suggestions saved to {run.output_path}"
        )
        if run.checkpoint_errors:
            logger.warning(
                f"{len(run.checkpoint_errors)} checkpoint(s) were unreadable and restarted"
            )

    def _fail(self, run: ExplorationRun, error: BaseException) -> None:
        run.finished_ts = datetime.now(UTC).isoformat()
        if isinstance(error, Exception):
            run.status = RunStatus.FAILED
            run.error_message = str(error)
            logger.error(f"Exploration of {run.keyword!r} failed: {error}")
        else:
            run.status = RunStatus.CANCELLED
            logger.info(f"Exploration of {run.keyword!r} cancelled")


async def run_exploration(
    keyword: str,
    fetcher: SuggestionFetcher,
    config: MinerConfig | None = None,
    store: CheckpointStore | None = None,
) -> ExplorationRun:
    """Explore one keyword with a fresh pipeline."""
    pipeline = ExplorationPipeline(config or MinerConfig(), fetcher, store=store)
    return await pipeline.run(keyword)
