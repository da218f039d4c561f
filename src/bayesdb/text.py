"""Document sanitising and tokenisation."""

from __future__ import annotations

from collections.abc import Callable, Iterable

CharFilter = Callable[[str], bool]

MIN_TOKEN_LENGTH = 3


def only_words_and_numbers(char: str) -> bool:
    """Default filter: remove anything that is not alphanumeric or whitespace."""

    return not (char.isalnum() or char.isspace())


def sanitize(text: str, remove: CharFilter = only_words_and_numbers) -> str:
    """Drop every character for which ``remove`` returns True."""

    return "".join(char for char in text if not remove(char))


def tokenize(text: str, remove: CharFilter = only_words_and_numbers) -> list[str]:
    """Sanitise, lower-case and split a document into tokens."""

    return sanitize(text, remove).lower().split()


def learnable_tokens(tokens: Iterable[str]) -> list[str]:
    """Keep only tokens long enough to be stored as words."""

    return [token for token in tokens if len(token) >= MIN_TOKEN_LENGTH]


__all__ = [
    "CharFilter",
    "MIN_TOKEN_LENGTH",
    "learnable_tokens",
    "only_words_and_numbers",
    "sanitize",
    "tokenize",
]
