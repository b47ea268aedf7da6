"""
Exploration round runner for suggest-miner.

Drives one pass over a candidate list: fetch, merge, checkpoint, pace.
Candidates are processed strictly one at a time since the fetcher holds a
single session.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from .candidates import CandidateQuery
from .config import PacingConfig
from .fetchers import FetchResult, SuggestionFetcher
from .models import Checkpoint, CheckpointStore, SuggestionRecord

logger = logging.getLogger(__name__)


@dataclass
class RoundStats:
    """Counters for one invocation of the round runner."""

    fetched: int = 0
    skipped: int = 0
    failed: int = 0
    new_suggestions: int = 0
    failed_queries: list[str] = field(default_factory=list)
    records: list[SuggestionRecord] = field(default_factory=list)


class RoundRunner:
    """
    Sequential, checkpointed execution of candidate queries.

    The runner only ever touches the checkpoint it is handed.
    """

    def __init__(
        self,
        fetcher: SuggestionFetcher,
        store: CheckpointStore,
        pacing: PacingConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        """
        Initialize the runner.

        Args:
            fetcher: Suggestion source, already started
            store: Where progress is persisted after every candidate
            pacing: Delay range between fetches
            sleep: Awaitable sleep in seconds (injected for testing)
            rng: Random source for delays (injected for testing)
        """
        self.fetcher = fetcher
        self.store = store
        self.pacing = pacing or PacingConfig()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.last_stats = RoundStats()

    def next_delay(self) -> float:
        """Pacing delay in seconds."""
        delay_ms = self._rng.uniform(self.pacing.min_delay_ms, self.pacing.max_delay_ms)
        return delay_ms / 1000.0

    async def _fetch(self, query: str) -> FetchResult:
        """Call the fetcher; an exception from it is just another failed result."""
        try:
            return await self.fetcher.fetch(query)
        except Exception as e:
            return FetchResult.failure(f"{type(e).__name__}: {e}")

    async def run(
        self,
        candidates: list[CandidateQuery],
        checkpoint: Checkpoint,
        round_number: int = 1,
    ) -> Checkpoint:
        """
        Process every candidate not yet in the checkpoint.

        Failed fetches are logged, counted and marked processed; they are not
        retried here. Cancellation can only land on the fetch or the pacing
        sleep, and the checkpoint write in between has no await, so a fetched
        result is always recorded in full.
        """
        stats = RoundStats()
        self.last_stats = stats

        pending = []
        for candidate in candidates:
            if checkpoint.is_processed(candidate.rendered_text):
                logger.debug(f"Skipping processed query: {candidate.rendered_text}")
                stats.skipped += 1
            else:
                pending.append(candidate)

        if stats.skipped:
            logger.info(
                f"{checkpoint.key.describe()}: {stats.skipped} of {len(candidates)} "
                f"queries already processed"
            )

        for index, candidate in enumerate(pending, start=1):
            query = candidate.rendered_text
            logger.info(f"[{index}/{len(pending)}] Querying: {query!r}")

            result = await self._fetch(query)

            if result.ok:
                added = checkpoint.add_suggestions(result.suggestions)
                stats.fetched += 1
                logger.info(
                    f"Added {len(added)} new suggestion(s), "
                    f"{len(result.suggestions) - len(added)} duplicate(s) filtered"
                )
            else:
                added = []
                stats.failed += 1
                stats.failed_queries.append(query)
                logger.warning(f"Fetch failed for {query!r}: {result.error}")

            checkpoint.mark_processed(query)
            self.store.record(checkpoint, added)

            stats.new_suggestions += len(added)
            stats.records.extend(
                SuggestionRecord(text=text, round=round_number, query=query) for text in added
            )

            if index < len(pending):
                delay = self.next_delay()
                logger.debug(f"Waiting {delay:.1f}s...")
                await self._sleep(delay)

        logger.info(
            f"{checkpoint.key.describe()} finished: {stats.fetched} fetched, "
            f"{stats.failed} failed, {stats.new_suggestions} new, "
            f"{len(checkpoint.suggestions)} total suggestions"
        )
        return checkpoint
