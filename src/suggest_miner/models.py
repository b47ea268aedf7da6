"""
Data models and checkpoint storage for suggest-miner.
"""

import hashlib
import json
import logging
import os
import re
import shutil
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class MinerError(Exception):
    """Base class for errors surfaced to the caller of an exploration run."""


class FetcherInitializationError(MinerError):
    """The suggestion fetcher (its session) could not be started."""


class CorruptCheckpointError(MinerError):
    """A checkpoint on disk could not be read back."""

    def __init__(self, key: "CheckpointKey", reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Corrupt checkpoint for {key.describe()}: {reason}")


class RunStatus(str, Enum):
    """Status of an exploration run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def safe_name(text: str) -> str:
    """Turn a keyword into a filesystem-friendly name (non-ASCII letters kept)."""
    name = re.sub(r"\s+", "_", text.strip().lower())
    name = re.sub(r"[^\w\-]", "_", name)
    return name or "_"


def namespace_name(text: str) -> str:
    """
    Directory name for a keyword's checkpoints.

    `safe_name` folds case and punctuation, so a short digest of the exact
    keyword is appended to keep distinct keywords in distinct directories.
    """
    text = text.strip()
    digest = hashlib.sha1(text.encode("utf-8")).hexdigest()[:8]
    return f"{safe_name(text)}_{digest}"


def clean_suggestion(text: str) -> str:
    """Trim a suggestion and fold embedded line breaks into spaces."""
    return re.sub(r"[\r\n]+", " ", text).strip()


@dataclass(frozen=True)
class CheckpointKey:
    """Namespace of one checkpoint: engine, run keyword, round and root."""

    engine: str
    keyword: str
    round: int
    root: str

    def describe(self) -> str:
        if self.round == 1:
            return f"{self.engine} '{self.keyword}' round 1"
        return f"{self.engine} '{self.keyword}' round {self.round} root '{self.root}'"


@dataclass
class SuggestionRecord:
    """A discovered suggestion with the round and query that produced it."""

    text: str
    round: int
    query: str


@dataclass
class Checkpoint:
    """
    Per-round, per-root progress.

    `processed_queries` only grows. `suggestions` keeps first-discovery order;
    the two private sets are the authoritative dedup state for new writes.
    """

    key: CheckpointKey
    processed_queries: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    _processed_set: set[str] = field(default_factory=set, init=False, repr=False, compare=False)
    _suggestion_set: set[str] = field(default_factory=set, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        processed, self.processed_queries = self.processed_queries, []
        suggestions, self.suggestions = self.suggestions, []
        for query in processed:
            self.mark_processed(query)
        self.add_suggestions(suggestions)

    def is_processed(self, query: str) -> bool:
        return query in self._processed_set

    def mark_processed(self, query: str) -> bool:
        """Record a query as processed. Returns False if it already was."""
        if query in self._processed_set:
            return False
        self._processed_set.add(query)
        self.processed_queries.append(query)
        return True

    def has_suggestion(self, text: str) -> bool:
        return clean_suggestion(text) in self._suggestion_set

    def add_suggestions(self, texts: list[str]) -> list[str]:
        """
        Append suggestions not seen before.

        Returns only the newly added, cleaned strings in the order given.
        """
        added: list[str] = []
        for text in texts:
            suggestion = clean_suggestion(text)
            if not suggestion or suggestion in self._suggestion_set:
                continue
            self._suggestion_set.add(suggestion)
            self.suggestions.append(suggestion)
            added.append(suggestion)
        return added


@dataclass
class ExplorationRun:
    """A single exploration of one root keyword."""

    keyword: str
    engine: str
    started_ts: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    status: RunStatus = RunStatus.RUNNING
    round1: Checkpoint | None = None
    round2: Checkpoint | None = None
    secondary_keywords: list[str] = field(default_factory=list)
    secondary_checkpoints: dict[str, Checkpoint] = field(default_factory=dict)
    merged_suggestions: list[str] = field(default_factory=list)
    discoveries: list[SuggestionRecord] = field(default_factory=list)  # found during this session
    finished_ts: str | None = None
    checkpoint_errors: list[CorruptCheckpointError] = field(default_factory=list)
    output_path: Path | None = None
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status != RunStatus.RUNNING

    def to_output(self) -> dict[str, Any]:
        """Final merged output document."""
        return {
            "keyword": self.keyword,
            "engine": self.engine,
            "timestamp": self.finished_ts or datetime.now(UTC).isoformat(),
            "suggestionsCount": len(self.merged_suggestions),
            "suggestions": list(self.merged_suggestions),
        }


class CheckpointStore:
    """
    File-based checkpoint storage.

    Layout under `base_dir/<engine>/<keyword namespace>/`, where a namespace is
    the safe name plus a digest of the exact text (see `namespace_name`):
        round1_progress.json       JSON array of processed queries
        round1_suggestions.txt     one suggestion per line, append-only
        round2/<root namespace>_progress.json
        round2/<root namespace>_suggestions.txt
        <engine>_<keyword>_suggestions.json   final merged output
    """

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def keyword_dir(self, engine: str, keyword: str) -> Path:
        return self.base_dir / safe_name(engine) / namespace_name(keyword)

    def _stem(self, key: CheckpointKey) -> Path:
        kw_dir = self.keyword_dir(key.engine, key.keyword)
        if key.round == 1:
            return kw_dir / "round1"
        return kw_dir / f"round{key.round}" / namespace_name(key.root)

    def progress_path(self, key: CheckpointKey) -> Path:
        stem = self._stem(key)
        return stem.with_name(f"{stem.name}_progress.json")

    def suggestions_path(self, key: CheckpointKey) -> Path:
        stem = self._stem(key)
        return stem.with_name(f"{stem.name}_suggestions.txt")

    def output_path(self, engine: str, keyword: str) -> Path:
        name = f"{safe_name(engine)}_{safe_name(keyword)}_suggestions.json"
        return self.keyword_dir(engine, keyword) / name

    # -------------------------------------------------------------------------
    # Checkpoints
    # -------------------------------------------------------------------------

    def load(self, key: CheckpointKey) -> Checkpoint:
        """
        Load a checkpoint, or an empty one if nothing is on disk.

        Raises CorruptCheckpointError if either file exists but cannot be
        read back. An unterminated last suggestion line is a write cut short
        before its query was marked processed; it is truncated away, never
        merged.
        """
        progress_path = self.progress_path(key)
        suggestions_path = self.suggestions_path(key)

        processed: list[str] = []
        if progress_path.exists():
            try:
                data = json.loads(progress_path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
                raise CorruptCheckpointError(key, f"{progress_path.name}: {e}") from e
            if not isinstance(data, list) or not all(isinstance(q, str) for q in data):
                raise CorruptCheckpointError(
                    key, f"{progress_path.name}: expected a JSON array of strings"
                )
            processed = data

        suggestions: list[str] = []
        if suggestions_path.exists():
            try:
                raw = suggestions_path.read_bytes()
                if raw and not raw.endswith(b"\n"):
                    raw = self._drop_partial_line(suggestions_path, raw)
                content = raw.decode("utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise CorruptCheckpointError(key, f"{suggestions_path.name}: {e}") from e
            suggestions = [line for line in content.split("\n") if line.strip()]

        checkpoint = Checkpoint(key=key, processed_queries=processed, suggestions=suggestions)
        if processed or suggestions:
            logger.info(
                f"Resuming {key.describe()}: {len(checkpoint.processed_queries)} processed "
                f"queries, {len(checkpoint.suggestions)} suggestions"
            )
        return checkpoint

    def _drop_partial_line(self, path: Path, raw: bytes) -> bytes:
        """
        Cut an unterminated last line off a suggestions file.

        It can only come from a write interrupted before the progress file
        was replaced, so its query is still unprocessed and will be fetched
        again.
        """
        keep = raw.rfind(b"\n") + 1
        with open(path, "r+b") as f:
            f.truncate(keep)
            f.flush()
            os.fsync(f.fileno())
        logger.warning(f"Dropped a partially written line from {path}")
        return raw[:keep]

    def record(self, checkpoint: Checkpoint, new_suggestions: list[str]) -> None:
        """
        Persist progress for one processed candidate.

        New suggestion lines are appended before the progress file is
        replaced, so a query is never marked processed while its suggestions
        are still unwritten.
        """
        progress_path = self.progress_path(checkpoint.key)
        progress_path.parent.mkdir(parents=True, exist_ok=True)

        if new_suggestions:
            with open(self.suggestions_path(checkpoint.key), "a", encoding="utf-8") as f:
                f.write("\n".join(clean_suggestion(s) for s in new_suggestions) + "\n")
                f.flush()
                os.fsync(f.fileno())

        tmp_path = progress_path.with_suffix(".json.tmp")
        tmp_path.write_text(
            json.dumps(checkpoint.processed_queries, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        os.replace(tmp_path, progress_path)

    def quarantine(self, key: CheckpointKey) -> None:
        """Move a checkpoint's files aside so the root restarts from scratch."""
        for path in (self.progress_path(key), self.suggestions_path(key)):
            if path.exists():
                target = path.with_name(path.name + ".corrupt")
                os.replace(path, target)
                logger.warning(f"Moved unreadable checkpoint file to {target}")

    def clear(self, engine: str, keyword: str) -> bool:
        """Delete every checkpoint and output for a keyword."""
        kw_dir = self.keyword_dir(engine, keyword)
        if not kw_dir.exists():
            return False
        shutil.rmtree(kw_dir)
        logger.info(f"Cleared checkpoints in {kw_dir}")
        return True

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def write_output(self, run: ExplorationRun) -> Path:
        """Write the final merged suggestion document for a run."""
        path = self.output_path(run.engine, run.keyword)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(run.to_output(), f, ensure_ascii=False, indent=2)
        return path
