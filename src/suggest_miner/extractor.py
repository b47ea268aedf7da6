"""
Secondary keyword extraction for suggest-miner.

Mines short phrases out of the round-1 suggestion corpus to use as round-2
roots. Phrases are accepted in corpus-scan order; there is no frequency
ranking.
"""

from collections.abc import Iterable, Iterator

DEFAULT_MAX_RESULTS = 10
DEFAULT_MIN_PHRASE_LENGTH = 5


def ngrams(text: str) -> Iterator[str]:
    """
    Yield the 2- and 3-word windows of a suggestion, lowercased.

    Suggestions shorter than three words yield nothing. At each start
    position the 2-gram comes before the 3-gram.
    """
    tokens = text.split()
    if len(tokens) < 3:
        return
    for i in range(len(tokens) - 1):
        yield " ".join(tokens[i : i + 2]).lower()
        if i + 2 < len(tokens):
            yield " ".join(tokens[i : i + 3]).lower()


def is_acceptable(phrase: str, root: str, min_phrase_length: int = DEFAULT_MIN_PHRASE_LENGTH) -> bool:
    """A phrase qualifies if it neither contains nor is contained in the root."""
    root_lower = root.lower()
    return (
        root_lower not in phrase
        and phrase not in root_lower
        and len(phrase) > min_phrase_length
    )


def extract_secondary_keywords(
    corpus: Iterable[str],
    root: str,
    max_results: int = DEFAULT_MAX_RESULTS,
    min_phrase_length: int = DEFAULT_MIN_PHRASE_LENGTH,
) -> list[str]:
    """
    Collect up to `max_results` unique phrases from the corpus.

    Args:
        corpus: Suggestions in discovery order
        root: The keyword the corpus was discovered for
        max_results: Stop once this many phrases are collected
        min_phrase_length: Phrases must be strictly longer than this

    Returns:
        Accepted phrases in first-seen order
    """
    if max_results <= 0:
        return []

    keywords: dict[str, None] = {}
    for suggestion in corpus:
        for phrase in ngrams(suggestion):
            if phrase in keywords or not is_acceptable(phrase, root, min_phrase_length):
                continue
            keywords[phrase] = None
            if len(keywords) >= max_results:
                return list(keywords)

    return list(keywords)
