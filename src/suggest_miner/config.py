"""
Configuration for suggest-miner.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class PacingConfig:
    """Delay between consecutive fetches, drawn uniformly from the range."""

    min_delay_ms: int = 2000
    max_delay_ms: int = 5000

    def __post_init__(self) -> None:
        if self.min_delay_ms < 0 or self.max_delay_ms < self.min_delay_ms:
            raise ValueError(
                f"Invalid pacing range: [{self.min_delay_ms}, {self.max_delay_ms}] ms"
            )


@dataclass
class ExplorationConfig:
    """Controls the second exploration round."""

    enable_second_round: bool = True
    max_secondary_keywords: int = 10
    min_phrase_length: int = 5
    secondary_strategy: str = "identity"  # one query per extracted phrase


@dataclass
class FetcherConfig:
    """HTTP suggestion fetcher configuration."""

    timeout_seconds: float = 10.0
    language: str = "en"
    proxy: str | None = None
    proxy_env: str | None = None
    base_url: str | None = None  # Override the engine endpoint (e.g. fake_suggest.py)
    max_retries: int = 0
    user_agent: str = (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
    )

    def get_proxy(self) -> str | None:
        """Get proxy URL from config or environment."""
        if self.proxy:
            return self.proxy
        if self.proxy_env:
            return os.environ.get(self.proxy_env)
        return None


@dataclass
class BatchConfig:
    """Settings for running several keywords side by side."""

    max_concurrency: int = 2


@dataclass
class MinerConfig:
    """Complete suggest-miner configuration."""

    output_dir: Path = field(default_factory=lambda: Path("output"))
    engine: str = "google"
    strategy: str | None = None  # None -> the engine's default strategy

    pacing: PacingConfig = field(default_factory=PacingConfig)
    exploration: ExplorationConfig = field(default_factory=ExplorationConfig)
    fetcher: FetcherConfig = field(default_factory=FetcherConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MinerConfig":
        """Create config from a dictionary (e.g., from YAML)."""
        config = cls()

        if "output_dir" in data:
            config.output_dir = Path(data["output_dir"])
        if "engine" in data:
            config.engine = data["engine"]
        if "strategy" in data:
            config.strategy = data["strategy"]

        if "pacing" in data:
            pacing = data["pacing"]
            config.pacing = PacingConfig(
                min_delay_ms=pacing.get("min_delay_ms", 2000),
                max_delay_ms=pacing.get("max_delay_ms", 5000),
            )

        if "exploration" in data:
            ex = data["exploration"]
            config.exploration = ExplorationConfig(
                enable_second_round=ex.get("enable_second_round", True),
                max_secondary_keywords=ex.get("max_secondary_keywords", 10),
                min_phrase_length=ex.get("min_phrase_length", 5),
                secondary_strategy=ex.get("secondary_strategy", "identity"),
            )

        if "fetcher" in data:
            fetcher = data["fetcher"]
            config.fetcher = FetcherConfig(
                timeout_seconds=fetcher.get("timeout_seconds", 10.0),
                language=fetcher.get("language", "en"),
                proxy=fetcher.get("proxy"),
                proxy_env=fetcher.get("proxy_env"),
                base_url=fetcher.get("base_url"),
                max_retries=fetcher.get("max_retries", 0),
                user_agent=fetcher.get("user_agent", config.fetcher.user_agent),
            )

        if "batch" in data:
            config.batch = BatchConfig(
                max_concurrency=data["batch"].get("max_concurrency", 2),
            )

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "MinerConfig":
        """Load config from a YAML file."""
        if not path.exists():
            return cls()

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for JSON serialization."""
        return {
            "output_dir": str(self.output_dir),
            "engine": self.engine,
            "strategy": self.strategy,
            "pacing": {
                "min_delay_ms": self.pacing.min_delay_ms,
                "max_delay_ms": self.pacing.max_delay_ms,
            },
            "exploration": {
                "enable_second_round": self.exploration.enable_second_round,
                "max_secondary_keywords": self.exploration.max_secondary_keywords,
                "min_phrase_length": self.exploration.min_phrase_length,
                "secondary_strategy": self.exploration.secondary_strategy,
            },
            "fetcher": {
                "timeout_seconds": self.fetcher.timeout_seconds,
                "language": self.fetcher.language,
                "base_url": self.fetcher.base_url,
                "max_retries": self.fetcher.max_retries,
            },
            "batch": {
                "max_concurrency": self.batch.max_concurrency,
            },
        }
