"""
Suggestion fetchers for suggest-miner.

A fetcher turns one query string into the ordered list of suggestions a
search engine offers for it. The exploration engine only relies on the
`SuggestionFetcher` protocol; `HttpSuggestionFetcher` is the bundled
implementation that talks to the engines' public suggest endpoints.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from .config import FetcherConfig
from .models import FetcherInitializationError, clean_suggestion

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Outcome of one fetch: the suggestions, or the reason there are none."""

    suggestions: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: str) -> "FetchResult":
        return cls(suggestions=[], error=error)


class SuggestionFetcher(Protocol):
    """What the exploration engine needs from a suggestion source."""

    name: str

    async def start(self) -> None:
        """Open the session. Raises FetcherInitializationError on failure."""
        ...

    async def fetch(self, query: str) -> FetchResult:
        """Fetch suggestions for one query."""
        ...

    async def close(self) -> None:
        """Release the session."""
        ...


# =============================================================================
# Engine profiles
# =============================================================================


def _google_params(query: str, language: str) -> dict[str, str]:
    return {"client": "firefox", "q": query, "hl": language}


def _parse_google(payload: Any) -> list[str]:
    """Parse `[query, [suggestion, ...], ...]`."""
    if not isinstance(payload, list) or len(payload) < 2:
        raise ValueError("unexpected Google suggest payload")
    suggestions = payload[1] or []
    if not isinstance(suggestions, list):
        raise ValueError("unexpected Google suggest payload")
    return [s for s in suggestions if isinstance(s, str)]


def _baidu_params(query: str, language: str) -> dict[str, str]:
    return {"prod": "pc", "wd": query}


def _parse_baidu(payload: Any) -> list[str]:
    """Parse `{"g": [{"q": suggestion}, ...]}`; a missing `g` means no suggestions."""
    if not isinstance(payload, dict):
        raise ValueError("unexpected Baidu suggest payload")
    items = payload.get("g") or []
    return [item["q"] for item in items if isinstance(item, dict) and isinstance(item.get("q"), str)]


@dataclass(frozen=True)
class EngineProfile:
    """Everything engine-specific: endpoint, request shape, response shape."""

    name: str
    suggest_url: str
    default_strategy: str
    build_params: Callable[[str, str], dict[str, str]]
    parse: Callable[[Any], list[str]]
    supports_second_round: bool = True
    description: str = ""


ENGINES: dict[str, EngineProfile] = {
    "google": EngineProfile(
        name="google",
        suggest_url="https://suggestqueries.google.com/complete/search",
        default_strategy="google",
        build_params=_google_params,
        parse=_parse_google,
        description="Google autocomplete",
    ),
    "baidu": EngineProfile(
        name="baidu",
        suggest_url="https://www.baidu.com/sugrec",
        default_strategy="baidu",
        build_params=_baidu_params,
        parse=_parse_baidu,
        description="Baidu autocomplete, tuned for Chinese queries",
    ),
}


def get_engine(name: str) -> EngineProfile:
    """Look up an engine profile by name."""
    try:
        return ENGINES[name.lower()]
    except KeyError:
        available = ", ".join(sorted(ENGINES))
        raise ValueError(f"Unknown engine: {name!r} (available: {available})") from None


# =============================================================================
# HTTP fetcher
# =============================================================================


class HttpSuggestionFetcher:
    """
    Fetch suggestions over HTTP with a single shared httpx session.

    `fetch()` never raises for transport, HTTP or parse problems; they come
    back as a failed FetchResult so the caller can keep going.
    """

    def __init__(self, engine: EngineProfile, config: FetcherConfig | None = None):
        """
        Initialize the fetcher.

        Args:
            engine: Engine profile to query
            config: Timeout, language, proxy and retry settings
        """
        self.engine = engine
        self.config = config or FetcherConfig()
        self.name = engine.name
        self._client: httpx.AsyncClient | None = None

    @property
    def url(self) -> str:
        return self.config.base_url or self.engine.suggest_url

    async def start(self) -> None:
        if self._client is not None:
            return

        proxy = self.config.get_proxy()
        if proxy:
            logger.info(f"Using proxy server: {proxy}")

        try:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                proxy=proxy,
                headers={
                    "User-Agent": self.config.user_agent,
                    "Accept-Language": f"{self.config.language},en;q=0.8",
                },
                follow_redirects=True,
            )
        except Exception as e:
            raise FetcherInitializationError(
                f"Could not start {self.engine.name} session: {e}"
            ) from e

    async def fetch(self, query: str) -> FetchResult:
        if self._client is None:
            return FetchResult.failure("fetcher not started")

        params = self.engine.build_params(query, self.config.language)
        attempts = self.config.max_retries + 1
        last_error = "no attempt made"

        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.get(self.url, params=params)
                response.raise_for_status()
                suggestions = self.engine.parse(response.json())
            except httpx.HTTPStatusError as e:
                last_error = f"HTTP {e.response.status_code}"
            except httpx.HTTPError as e:
                last_error = f"{type(e).__name__}: {e}"
            except ValueError as e:
                last_error = f"parse error: {e}"
            else:
                cleaned = [c for c in map(clean_suggestion, suggestions) if c]
                logger.debug(f"{self.engine.name} returned {len(cleaned)} suggestion(s) for {query!r}")
                return FetchResult(suggestions=cleaned)

            if attempt < attempts:
                logger.debug(f"Retrying {query!r} after {last_error} (attempt {attempt}/{attempts})")

        return FetchResult.failure(last_error)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpSuggestionFetcher":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
