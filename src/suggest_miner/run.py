"""
CLI runner for suggest-miner.

Usage:
    python -m suggest_miner.run KEYWORD [OPTIONS]

    # Explore a keyword on Google (round 1 + round 2)
    python -m suggest_miner.run "ai tool"

    # Baidu, first round only
    python -m suggest_miner.run "机器学习" --engine baidu --no-second-round

    # Several keywords, two at a time
    python -m suggest_miner.run --batch-file keywords.txt --concurrency 2
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Callable
from pathlib import Path

from .candidates import generate, get_strategy
from .config import MinerConfig, PacingConfig
from .fetchers import HttpSuggestionFetcher, SuggestionFetcher, get_engine
from .models import (
    CheckpointStore,
    ExplorationRun,
    FetcherInitializationError,
    namespace_name,
    safe_name,
)
from .pipeline import ExplorationPipeline

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("suggest-miner")

FetcherFactory = Callable[[MinerConfig], SuggestionFetcher]


def default_fetcher_factory(config: MinerConfig) -> SuggestionFetcher:
    """Build the HTTP fetcher for the configured engine."""
    return HttpSuggestionFetcher(get_engine(config.engine), config.fetcher)


async def explore_keyword(
    config: MinerConfig,
    keyword: str,
    fetcher_factory: FetcherFactory = default_fetcher_factory,
) -> ExplorationRun:
    """Run one keyword with its own fetcher session."""
    pipeline = ExplorationPipeline(config, fetcher_factory(config))
    run = await pipeline.run(keyword)

    for error in run.checkpoint_errors:
        logger.warning(f"Resumed with data loss for keyword {keyword!r}: {error}")
    return run


async def run_batch(
    config: MinerConfig,
    keywords: list[str],
    fetcher_factory: FetcherFactory = default_fetcher_factory,
) -> dict[str, ExplorationRun | BaseException]:
    """
    Explore several unrelated keywords concurrently.

    Each keyword gets its own fetcher and its own checkpoint namespace;
    at most `config.batch.max_concurrency` run at once.
    """
    semaphore = asyncio.Semaphore(max(1, config.batch.max_concurrency))

    async def bounded(keyword: str) -> ExplorationRun:
        async with semaphore:
            return await explore_keyword(config, keyword, fetcher_factory)

    # One run per checkpoint namespace; two runs must never share files
    by_namespace: dict[str, str] = {}
    for keyword in keywords:
        if keyword.strip():
            by_namespace.setdefault(namespace_name(keyword), keyword.strip())
    unique = list(by_namespace.values())
    logger.info(
        f"Batch of {len(unique)} keyword(s), concurrency {config.batch.max_concurrency}"
    )
    results = await asyncio.gather(*(bounded(k) for k in unique), return_exceptions=True)

    outcome: dict[str, ExplorationRun | BaseException] = {}
    for keyword, result in zip(unique, results):
        outcome[keyword] = result
        if isinstance(result, FetcherInitializationError):
            logger.error(f"Could not start fetcher for {keyword!r}: {result}")
        elif isinstance(result, BaseException):
            logger.error(f"Keyword {keyword!r} failed: {result}")
        else:
            logger.info(f"Keyword {keyword!r}: {len(result.merged_suggestions)} suggestions")
    return outcome


async def fetch_single(
    config: MinerConfig,
    query: str,
    fetcher_factory: FetcherFactory = default_fetcher_factory,
) -> Path:
    """Fetch one query and save its suggestions as plain text."""
    fetcher = fetcher_factory(config)
    await fetcher.start()
    try:
        result = await fetcher.fetch(query)
    finally:
        await fetcher.close()

    if not result.ok:
        raise RuntimeError(f"Fetch failed for {query!r}: {result.error}")

    config.output_dir.mkdir(parents=True, exist_ok=True)
    path = config.output_dir / f"{safe_name(config.engine)}_{safe_name(query)}_suggestions.txt"
    path.write_text("\n".join(result.suggestions) + "\n", encoding="utf-8")
    logger.info(f"Saved {len(result.suggestions)} suggestion(s) for {query!r} to {path}")
    return path


def read_keywords(path: Path) -> list[str]:
    """One keyword per line; blank lines and `#` comments are ignored."""
    lines = path.read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="suggest-miner: Resumable search-suggestion discovery",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Explore a keyword on Google
    python -m suggest_miner.run "iphone"

    # Use Baidu
    python -m suggest_miner.run "机器学习" --engine baidu

    # Through a proxy, first round only
    python -m suggest_miner.run "best laptops" --proxy http://127.0.0.1:7890 --no-second-round

    # Show the candidate queries without fetching
    python -m suggest_miner.run "android" --dry-run
        """,
    )

    parser.add_argument("keyword", nargs="?", help="Root keyword to explore")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("suggest_miner.yaml"),
        help="Path to config file (default: suggest_miner.yaml)",
    )
    parser.add_argument("--output-dir", type=Path, help="Override output directory from config")
    parser.add_argument("--engine", "-e", type=str, help="Search engine (google, baidu)")
    parser.add_argument("--strategy", "-s", type=str, help="Modifier strategy for round 1")
    parser.add_argument("--proxy", "-p", type=str, help="Proxy server URL")
    parser.add_argument(
        "--no-second-round",
        action="store_true",
        help="Disable the second exploration round",
    )
    parser.add_argument("--min-delay-ms", type=int, help="Minimum delay between queries")
    parser.add_argument("--max-delay-ms", type=int, help="Maximum delay between queries")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Discard existing checkpoints for the keyword before running",
    )
    parser.add_argument(
        "--single",
        action="store_true",
        help="Fetch suggestions for the keyword itself only and save them",
    )
    parser.add_argument(
        "--batch-file",
        type=Path,
        help="File with one keyword per line to explore",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        help="Maximum keywords explored at once in batch mode",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the candidate queries without fetching anything",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


def apply_overrides(config: MinerConfig, args: argparse.Namespace) -> MinerConfig:
    """Fold command-line options into the loaded config."""
    if args.output_dir:
        config.output_dir = args.output_dir
    if args.engine:
        config.engine = args.engine
    if args.strategy:
        config.strategy = args.strategy
    if args.proxy:
        config.fetcher.proxy = args.proxy
    if args.no_second_round:
        config.exploration.enable_second_round = False
    if args.min_delay_ms is not None or args.max_delay_ms is not None:
        config.pacing = PacingConfig(
            min_delay_ms=(
                args.min_delay_ms if args.min_delay_ms is not None else config.pacing.min_delay_ms
            ),
            max_delay_ms=(
                args.max_delay_ms if args.max_delay_ms is not None else config.pacing.max_delay_ms
            ),
        )
    if args.concurrency:
        config.batch.max_concurrency = args.concurrency
    return config


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.keyword and not args.batch_file:
        parser.print_help()
        return 1

    try:
        config = apply_overrides(MinerConfig.from_yaml(args.config), args)
        engine = get_engine(config.engine)
        strategy = get_strategy(config.strategy or engine.default_strategy)
        get_strategy(config.exploration.secondary_strategy)
    except ValueError as e:
        logger.error(str(e))
        return 1

    logger.info(f"Config loaded from {args.config}")
    logger.info(f"Engine: {engine.name}, {engine.description} ({engine.suggest_url})")
    logger.info(f"Output: {config.output_dir}")
    logger.info(
        f"Second round: {'enabled' if config.exploration.enable_second_round else 'disabled'}"
    )

    keywords = read_keywords(args.batch_file) if args.batch_file else [args.keyword]

    # Dry run mode
    if args.dry_run:
        for keyword in keywords:
            candidates = generate(keyword, strategy)
            logger.info(f"Dry run: {len(candidates)} candidate(s) for {keyword!r}")
            for candidate in candidates:
                logger.info(f"  - {candidate.rendered_text}")
        return 0

    if args.fresh:
        store = CheckpointStore(config.output_dir)
        for keyword in keywords:
            store.clear(engine.name, keyword)

    try:
        if args.single:
            for keyword in keywords:
                asyncio.run(fetch_single(config, keyword))
            return 0

        if args.batch_file:
            outcome = asyncio.run(run_batch(config, keywords))
            failed = [k for k, r in outcome.items() if isinstance(r, BaseException)]
            return 1 if failed else 0

        asyncio.run(explore_keyword(config, args.keyword))
        return 0

    except FetcherInitializationError as e:
        logger.error(f"Could not start: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Stopped by user; progress is saved and will resume next time")
        return 1
    except Exception:
        logger.exception("Run failed with error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
