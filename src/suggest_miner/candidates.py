"""
Candidate query generation for suggest-miner.

A modifier strategy maps a root keyword to an ordered list of suffixes. Each
suffix is appended verbatim to the root, so a strategy decides for itself
whether a modifier is separated by a space (" a") or glued on ("怎么", "0").

Generation is pure and deterministic: resuming from a checkpoint relies on the
same root producing the same candidates in the same order.
"""

import string
from collections.abc import Callable
from dataclasses import dataclass, field

ModifierStrategy = Callable[[str], list[str]]

LETTERS = string.ascii_lowercase
DIGITS = string.digits

# Common Chinese question/connector words, appended without a space
CHINESE_CONNECTORS = ["是", "怎么", "如何", "有什么", "什么", "为什么", "哪些", "可以", "需要"]


@dataclass(frozen=True)
class CandidateQuery:
    """A root keyword combined with one modifier.

    Identity is the rendered text: two candidates that send the same string
    to the suggestion source are the same candidate.
    """

    root: str = field(compare=False)
    modifier: str = field(compare=False)
    rendered_text: str


def letters_strategy(root: str) -> list[str]:
    """`root a` ... `root z`."""
    return [f" {letter}" for letter in LETTERS]


def digits_strategy(root: str) -> list[str]:
    """`root0` ... `root9`."""
    return list(DIGITS)


def connectors_strategy(root: str) -> list[str]:
    """Chinese connector words glued to the root."""
    return list(CHINESE_CONNECTORS)


def identity_strategy(root: str) -> list[str]:
    """The root on its own."""
    return [""]


def deep_strategy(root: str) -> list[str]:
    """
    Exhaustive two-character expansion.

    For each letter: the letter alone, then every second letter both compact
    (`root ab`) and spaced (`root a b`), then every digit both compact
    (`root a1`) and spaced (`root a 1`). 1,898 candidates per root.
    """
    suffixes: list[str] = []
    for first in LETTERS:
        suffixes.append(f" {first}")
        for second in LETTERS:
            suffixes.append(f" {first}{second}")
            suffixes.append(f" {first} {second}")
        for digit in DIGITS:
            suffixes.append(f" {first}{digit}")
            suffixes.append(f" {first} {digit}")
    return suffixes


def combine_strategies(*strategies: ModifierStrategy) -> ModifierStrategy:
    """Chain strategies; modifiers keep the order the strategies are given in."""

    def combined(root: str) -> list[str]:
        suffixes: list[str] = []
        for strategy in strategies:
            suffixes.extend(strategy(root))
        return suffixes

    return combined


STRATEGIES: dict[str, ModifierStrategy] = {
    "letters": letters_strategy,
    "digits": digits_strategy,
    "connectors": connectors_strategy,
    "identity": identity_strategy,
    "deep": deep_strategy,
    "google": letters_strategy,
    "baidu": combine_strategies(connectors_strategy, letters_strategy, digits_strategy),
}


def get_strategy(name: str) -> ModifierStrategy:
    """Look up a built-in strategy by name."""
    try:
        return STRATEGIES[name]
    except KeyError:
        available = ", ".join(sorted(STRATEGIES))
        raise ValueError(f"Unknown modifier strategy: {name!r} (available: {available})") from None


def generate(root: str, strategy: ModifierStrategy) -> list[CandidateQuery]:
    """
    Build the ordered candidate list for a root keyword.

    Later candidates whose rendered text repeats an earlier one are dropped.
    """
    root = root.strip()
    candidates: list[CandidateQuery] = []
    seen: set[str] = set()

    for suffix in strategy(root):
        rendered = f"{root}{suffix}"
        if rendered in seen:
            continue
        seen.add(rendered)
        candidates.append(
            CandidateQuery(root=root, modifier=suffix.strip(), rendered_text=rendered)
        )

    return candidates
