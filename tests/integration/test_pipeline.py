"""End-to-end tests for the exploration pipeline."""

import asyncio
import json

import pytest

from suggest_miner.candidates import generate, letters_strategy
from suggest_miner.models import (
    CheckpointKey,
    CheckpointStore,
    ExplorationRun,
    FetcherInitializationError,
    RunStatus,
)
from suggest_miner.pipeline import ExplorationPipeline, merge_suggestions, run_exploration
from suggest_miner.rounds import RoundRunner

ROUND1_RESPONSES = {
    "ai tool a": ["ai tool for writing essays", "ai tool free"],
}

ROUND2_RESPONSES = {
    "for writing": ["for writing essays online", "ai tool free"],
    "writing essays": ["for writing essays online", "writing essays tips"],
}


def build_pipeline(config, fetcher, store, sleep):
    runner = RoundRunner(fetcher, store, config.pacing, sleep=sleep)
    return ExplorationPipeline(config, fetcher, store=store, runner=runner)


class TestFirstRoundOnly:
    """Test runs with the second round disabled or skipped."""

    @pytest.mark.asyncio
    async def test_round_one_only(self, config, store, make_fetcher, recorded_sleep):
        config.exploration.enable_second_round = False
        fetcher = make_fetcher(responses=ROUND1_RESPONSES)

        run = await build_pipeline(config, fetcher, store, recorded_sleep).run("ai tool")

        assert run.status == RunStatus.COMPLETED
        assert run.round2 is None
        assert len(fetcher.calls) == 26
        assert run.merged_suggestions == ["ai tool for writing essays", "ai tool free"]

    @pytest.mark.asyncio
    async def test_no_round_one_suggestions_skips_round_two(
        self, config, store, make_fetcher, recorded_sleep
    ):
        fetcher = make_fetcher()

        run = await build_pipeline(config, fetcher, store, recorded_sleep).run("zzqx")

        assert run.status == RunStatus.COMPLETED
        assert run.round2 is None
        assert run.merged_suggestions == []
        assert len(fetcher.calls) == 26

    @pytest.mark.asyncio
    async def test_no_secondary_keywords_skips_round_two(
        self, config, store, make_fetcher, recorded_sleep
    ):
        """Suggestions of two words or fewer give nothing to extract."""
        fetcher = make_fetcher(responses={"ai tool a": ["ai tool"], "ai tool b": ["tool"]})

        run = await build_pipeline(config, fetcher, store, recorded_sleep).run("ai tool")

        assert run.secondary_keywords == []
        assert run.round2 is None
        assert run.merged_suggestions == ["ai tool", "tool"]


class TestSecondRound:
    """Test the bounded second round."""

    @pytest.mark.asyncio
    async def test_merge(self, config, store, make_fetcher, recorded_sleep):
        fetcher = make_fetcher(responses={**ROUND1_RESPONSES, **ROUND2_RESPONSES})

        run = await build_pipeline(config, fetcher, store, recorded_sleep).run("ai tool")

        assert run.secondary_keywords == [
            "tool for",
            "tool for writing",
            "for writing",
            "for writing essays",
            "writing essays",
            "tool free",
        ]
        assert run.round2.suggestions == [
            "for writing essays online",
            "ai tool free",
            "writing essays tips",
        ]
        assert run.merged_suggestions == [
            "ai tool for writing essays",
            "ai tool free",
            "for writing essays online",
            "writing essays tips",
        ]

    @pytest.mark.asyncio
    async def test_no_third_round(self, config, store, make_fetcher, recorded_sleep):
        """Every query is a round-1 candidate or a secondary keyword, nothing deeper."""
        fetcher = make_fetcher(responses={**ROUND1_RESPONSES, **ROUND2_RESPONSES})

        run = await build_pipeline(config, fetcher, store, recorded_sleep).run("ai tool")

        round1_queries = [c.rendered_text for c in generate("ai tool", letters_strategy)]
        assert fetcher.calls == round1_queries + run.secondary_keywords
        assert "for writing essays online" not in fetcher.calls

    @pytest.mark.asyncio
    async def test_secondary_checkpoints_are_separate(
        self, config, store, make_fetcher, recorded_sleep
    ):
        fetcher = make_fetcher(responses={**ROUND1_RESPONSES, **ROUND2_RESPONSES})

        run = await build_pipeline(config, fetcher, store, recorded_sleep).run("ai tool")

        key = CheckpointKey(engine="google", keyword="ai tool", round=2, root="writing essays")
        saved = store.load(key)
        assert saved.processed_queries == ["writing essays"]
        assert saved.suggestions == ["for writing essays online", "writing essays tips"]
        assert set(run.secondary_checkpoints) == set(run.secondary_keywords)

    @pytest.mark.asyncio
    async def test_round_two_failure_is_isolated(self, config, store, make_fetcher, recorded_sleep):
        fetcher = make_fetcher(
            responses={**ROUND1_RESPONSES, **ROUND2_RESPONSES},
            raise_on={"for writing": RuntimeError("connection reset")},
        )

        run = await build_pipeline(config, fetcher, store, recorded_sleep).run("ai tool")

        assert run.status == RunStatus.COMPLETED
        assert "writing essays tips" in run.merged_suggestions
        assert run.secondary_checkpoints["for writing"].is_processed("for writing")

    @pytest.mark.asyncio
    async def test_discoveries_tag_round_and_query(
        self, config, store, make_fetcher, recorded_sleep
    ):
        fetcher = make_fetcher(responses={**ROUND1_RESPONSES, **ROUND2_RESPONSES})

        run = await build_pipeline(config, fetcher, store, recorded_sleep).run("ai tool")

        tagged = [(r.text, r.round, r.query) for r in run.discoveries]
        assert ("ai tool free", 1, "ai tool a") in tagged
        assert ("writing essays tips", 2, "writing essays") in tagged
        assert ("ai tool free", 2, "for writing") in tagged


class TestOutput:
    @pytest.mark.asyncio
    async def test_final_document(self, config, store, make_fetcher, recorded_sleep):
        config.exploration.enable_second_round = False
        fetcher = make_fetcher(responses=ROUND1_RESPONSES)

        run = await build_pipeline(config, fetcher, store, recorded_sleep).run("ai tool")

        data = json.loads(run.output_path.read_text(encoding="utf-8"))
        assert data["keyword"] == "ai tool"
        assert data["engine"] == "google"
        assert data["suggestionsCount"] == 2
        assert data["suggestions"] == run.merged_suggestions
        assert data["timestamp"] == run.finished_ts

    def test_merge_suggestions(self):
        assert merge_suggestions(["a", "b"], ["b", "c", "a", "d"]) == ["a", "b", "c", "d"]


class TestNamespaceIsolation:
    """Keywords that fold to the same safe name keep separate state."""

    @pytest.mark.asyncio
    async def test_case_variants_do_not_share_suggestions(
        self, config, store, make_fetcher, recorded_sleep
    ):
        config.exploration.enable_second_round = False

        upper = await build_pipeline(
            config, make_fetcher(responses={"Shoes a": ["Shoes Adidas"]}), store, recorded_sleep
        ).run("Shoes")
        fetcher = make_fetcher(responses={"shoes b": ["shoes boots"]})
        lower = await build_pipeline(config, fetcher, store, recorded_sleep).run("shoes")

        assert len(fetcher.calls) == 26
        assert lower.merged_suggestions == ["shoes boots"]
        assert upper.output_path != lower.output_path
        upper_doc = json.loads(upper.output_path.read_text(encoding="utf-8"))
        assert upper_doc["suggestions"] == ["Shoes Adidas"]


class TestLifecycle:
    """Test fetcher lifecycle and failure handling."""

    @pytest.mark.asyncio
    async def test_fetcher_started_and_closed(self, config, store, make_fetcher, recorded_sleep):
        fetcher = make_fetcher()

        await build_pipeline(config, fetcher, store, recorded_sleep).run("ai tool")

        assert fetcher.started
        assert fetcher.closed

    @pytest.mark.asyncio
    async def test_init_failure(self, config, store, make_fetcher, recorded_sleep):
        fetcher = make_fetcher(start_error=RuntimeError("browser missing"))
        pipeline = build_pipeline(config, fetcher, store, recorded_sleep)

        with pytest.raises(FetcherInitializationError, match="browser missing"):
            await pipeline.run("ai tool")

        assert fetcher.calls == []
        assert not store.output_path("google", "ai tool").exists()

    @pytest.mark.asyncio
    async def test_empty_keyword(self, config, store, make_fetcher, recorded_sleep):
        with pytest.raises(ValueError):
            await build_pipeline(config, make_fetcher(), store, recorded_sleep).run("   ")

    @pytest.mark.asyncio
    async def test_run_exploration_helper(self, config, make_fetcher):
        config.exploration.enable_second_round = False
        fetcher = make_fetcher(responses=ROUND1_RESPONSES)

        run = await run_exploration("ai tool", fetcher, config=config)

        assert isinstance(run, ExplorationRun)
        assert run.output_path.parent == CheckpointStore(config.output_dir).keyword_dir(
            "google", "ai tool"
        )


class TestResume:
    """Test interrupted and repeated runs."""

    @pytest.mark.asyncio
    async def test_resume_after_interruption(self, config, store, make_fetcher, recorded_sleep):
        responses = {**ROUND1_RESPONSES, **ROUND2_RESPONSES}
        first = make_fetcher(responses=responses, raise_on={"ai tool m": asyncio.CancelledError()})

        with pytest.raises(asyncio.CancelledError):
            await build_pipeline(config, first, store, recorded_sleep).run("ai tool")

        assert first.closed
        assert not store.output_path("google", "ai tool").exists()

        second = make_fetcher(responses=responses)
        run = await build_pipeline(config, second, store, recorded_sleep).run("ai tool")

        assert second.calls[0] == "ai tool m"
        assert "ai tool a" not in second.calls
        assert run.merged_suggestions == [
            "ai tool for writing essays",
            "ai tool free",
            "for writing essays online",
            "writing essays tips",
        ]

    @pytest.mark.asyncio
    async def test_rerun_makes_no_calls(self, config, store, make_fetcher, recorded_sleep):
        responses = {**ROUND1_RESPONSES, **ROUND2_RESPONSES}
        first_run = await build_pipeline(
            config, make_fetcher(responses=responses), store, recorded_sleep
        ).run("ai tool")

        fetcher = make_fetcher(responses=responses)
        second_run = await build_pipeline(config, fetcher, store, recorded_sleep).run("ai tool")

        assert fetcher.calls == []
        assert second_run.merged_suggestions == first_run.merged_suggestions
        assert second_run.discoveries == []

    @pytest.mark.asyncio
    async def test_corrupt_checkpoint_restarts_root(
        self, config, store, make_fetcher, recorded_sleep
    ):
        config.exploration.enable_second_round = False
        key = CheckpointKey(engine="google", keyword="ai tool", round=1, root="ai tool")
        progress = store.progress_path(key)
        progress.parent.mkdir(parents=True)
        progress.write_text('["ai tool a", "ai tool b"', encoding="utf-8")

        fetcher = make_fetcher(responses=ROUND1_RESPONSES)
        run = await build_pipeline(config, fetcher, store, recorded_sleep).run("ai tool")

        assert run.status == RunStatus.COMPLETED
        assert len(run.checkpoint_errors) == 1
        assert run.checkpoint_errors[0].key == key
        assert len(fetcher.calls) == 26
        assert progress.with_name(progress.name + ".corrupt").exists()
        assert json.loads(progress.read_text(encoding="utf-8"))[0] == "ai tool a"
