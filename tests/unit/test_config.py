"""Tests for suggest-miner configuration."""

from pathlib import Path

import pytest

from suggest_miner.config import FetcherConfig, MinerConfig, PacingConfig


class TestMinerConfig:
    """Test configuration loading and parsing."""

    def test_default_config(self):
        """Default config should have sensible values."""
        config = MinerConfig()

        assert config.engine == "google"
        assert config.strategy is None
        assert config.output_dir == Path("output")
        assert config.pacing.min_delay_ms == 2000
        assert config.pacing.max_delay_ms == 5000
        assert config.exploration.enable_second_round is True
        assert config.exploration.max_secondary_keywords == 10
        assert config.exploration.min_phrase_length == 5
        assert config.exploration.secondary_strategy == "identity"
        assert config.fetcher.max_retries == 0

    def test_from_dict(self):
        """Should parse config from dictionary."""
        data = {
            "engine": "baidu",
            "output_dir": "results",
            "pacing": {"min_delay_ms": 100, "max_delay_ms": 200},
            "exploration": {
                "enable_second_round": False,
                "max_secondary_keywords": 3,
            },
            "fetcher": {"language": "zh-CN", "max_retries": 2},
            "batch": {"max_concurrency": 4},
        }

        config = MinerConfig.from_dict(data)

        assert config.engine == "baidu"
        assert config.output_dir == Path("results")
        assert config.pacing.min_delay_ms == 100
        assert config.pacing.max_delay_ms == 200
        assert config.exploration.enable_second_round is False
        assert config.exploration.max_secondary_keywords == 3
        assert config.exploration.min_phrase_length == 5  # default kept
        assert config.fetcher.language == "zh-CN"
        assert config.fetcher.max_retries == 2
        assert config.batch.max_concurrency == 4

    def test_from_yaml(self, tmp_path):
        """Should load config from YAML file."""
        yaml_path = tmp_path / "suggest_miner.yaml"
        yaml_path.write_text(
            """
engine: google
strategy: deep
pacing:
  min_delay_ms: 500
  max_delay_ms: 1500
exploration:
  secondary_strategy: letters
fetcher:
  base_url: "http://127.0.0.1:9010/complete/search"
""",
            encoding="utf-8",
        )

        config = MinerConfig.from_yaml(yaml_path)

        assert config.strategy == "deep"
        assert config.pacing.min_delay_ms == 500
        assert config.exploration.secondary_strategy == "letters"
        assert config.fetcher.base_url == "http://127.0.0.1:9010/complete/search"

    def test_from_yaml_missing_file(self):
        """Should return defaults for missing file."""
        config = MinerConfig.from_yaml(Path("/nonexistent/suggest_miner.yaml"))

        assert config.engine == "google"
        assert config.exploration.enable_second_round is True

    def test_from_yaml_empty_file(self, tmp_path):
        """An empty YAML file should give defaults."""
        yaml_path = tmp_path / "empty.yaml"
        yaml_path.write_text("", encoding="utf-8")

        config = MinerConfig.from_yaml(yaml_path)

        assert config.engine == "google"

    def test_to_dict(self):
        """Should serialize config to dictionary."""
        config = MinerConfig()
        config.exploration.max_secondary_keywords = 7

        data = config.to_dict()

        assert data["exploration"]["max_secondary_keywords"] == 7
        assert data["output_dir"] == "output"
        assert "pacing" in data
        assert "fetcher" in data


class TestPacingConfig:
    """Test pacing validation."""

    def test_equal_bounds_allowed(self):
        pacing = PacingConfig(min_delay_ms=0, max_delay_ms=0)
        assert pacing.max_delay_ms == 0

    def test_inverted_range_rejected(self):
        with pytest.raises(ValueError):
            PacingConfig(min_delay_ms=3000, max_delay_ms=1000)

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError):
            PacingConfig(min_delay_ms=-1, max_delay_ms=10)


class TestFetcherConfig:
    """Test proxy resolution."""

    def test_get_proxy_from_config(self):
        config = FetcherConfig(proxy="http://127.0.0.1:7890")
        assert config.get_proxy() == "http://127.0.0.1:7890"

    def test_get_proxy_from_env(self, monkeypatch):
        monkeypatch.setenv("MINER_PROXY", "http://proxy.example:8080")
        config = FetcherConfig(proxy_env="MINER_PROXY")
        assert config.get_proxy() == "http://proxy.example:8080"

    def test_get_proxy_prefers_direct(self, monkeypatch):
        monkeypatch.setenv("MINER_PROXY", "http://from-env:8080")
        config = FetcherConfig(proxy="http://direct:8080", proxy_env="MINER_PROXY")
        assert config.get_proxy() == "http://direct:8080"

    def test_get_proxy_none(self):
        assert FetcherConfig().get_proxy() is None
