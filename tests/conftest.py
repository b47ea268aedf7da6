"""Shared pytest fixtures for suggest-miner tests."""

import pytest

from suggest_miner.config import MinerConfig, PacingConfig
from suggest_miner.fetchers import FetchResult
from suggest_miner.models import CheckpointStore


class FakeFetcher:
    """In-memory suggestion source that records every query it is asked."""

    name = "fake"

    def __init__(
        self,
        responses: dict[str, list[str]] | None = None,
        fail_on: tuple[str, ...] = (),
        raise_on: dict[str, BaseException] | None = None,
        start_error: Exception | None = None,
    ):
        self.responses = responses or {}
        self.fail_on = fail_on
        self.raise_on = raise_on or {}
        self.start_error = start_error
        self.calls: list[str] = []
        self.started = False
        self.closed = False

    async def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    async def fetch(self, query: str) -> FetchResult:
        self.calls.append(query)
        if query in self.raise_on:
            raise self.raise_on[query]
        if query in self.fail_on:
            return FetchResult.failure("timeout")
        return FetchResult(suggestions=list(self.responses.get(query, [])))

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def recorded_sleep():
    """Stand-in for asyncio.sleep that returns immediately and keeps the delays."""
    calls: list[float] = []

    async def sleep(seconds: float) -> None:
        calls.append(seconds)

    sleep.calls = calls
    return sleep


@pytest.fixture
def store(tmp_path):
    """Checkpoint store rooted in a temporary directory."""
    return CheckpointStore(tmp_path / "output")


@pytest.fixture
def config(tmp_path):
    """Config with no pacing delay, writing under the temporary directory."""
    return MinerConfig(
        output_dir=tmp_path / "output",
        pacing=PacingConfig(min_delay_ms=0, max_delay_ms=0),
    )


@pytest.fixture
def make_fetcher():
    """Factory for FakeFetcher instances."""
    return FakeFetcher
