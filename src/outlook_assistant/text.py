"""Tokenization and normalization helpers.

Objective:
    Give the folder matcher and the signature parser one shared notion of
    what a "token" is, so filenames, subjects and folder names compare on
    equal terms.

Rules:
    - Matching is case-insensitive: everything is lowercased first.
    - A token is a maximal run of letters/digits; any other character
      (spaces, underscores, dots, brackets, dashes) separates tokens.
    - Empty tokens are dropped.

High-level call tree:
    - :func:`tokenize`
        - :func:`normalize`
    - :func:`contiguous_phrases` (longest-substring scoring)
    - :func:`normalize_path` (folder path comparison)
    - :func:`strip_extension` (attachment names)
"""

import re
from typing import Iterable

_SEPARATOR_RE = re.compile(r"[\W_]+")


def normalize(text: str) -> str:
    """Lowercase a string for comparison.

    Args:
        text: Raw text (None is treated as empty).

    Returns:
        str: Lowercased text.
    """
    return (text or "").lower()


def tokenize(text: str) -> list[str]:
    """Split text into lowercase alphanumeric tokens.

    Example:
        ``tokenize("Invoice_2024(Final).pdf")`` returns
        ``["invoice", "2024", "final", "pdf"]``.

    Args:
        text: Raw text.

    Returns:
        list[str]: Tokens in their original order.
    """
    return [token for token in _SEPARATOR_RE.split(normalize(text)) if token]


def strip_extension(filename: str) -> str:
    """Drop the final ``.ext`` suffix from a filename.

    Dotfiles, names ending in a dot and names without a dot are returned
    unchanged.
    """
    name = filename or ""
    head, dot, tail = name.rpartition(".")
    if not dot or not head or not tail:
        return name
    return head


def contiguous_phrases(tokens: list[str]) -> list[str]:
    """Build every contiguous run of tokens joined by single spaces.

    The result is de-duplicated and sorted longest first, so a caller
    looking for the longest contained phrase can stop at the first hit.

    Args:
        tokens: Tokens as returned by :func:`tokenize`.

    Returns:
        list[str]: Phrases, longest first.
    """
    phrases: set[str] = set()
    for start in range(len(tokens)):
        for end in range(start + 1, len(tokens) + 1):
            phrases.add(" ".join(tokens[start:end]))
    return sorted(phrases, key=lambda phrase: (-len(phrase), phrase))


def normalize_path(names: Iterable[str]) -> str:
    """Render a folder path as space-separated tokens.

    ``["Clients", "Acme-Corp"]`` becomes ``"clients acme corp"``. This lets
    a phrase built from a filename match a folder path regardless of the
    separators used on either side.
    """
    tokens: list[str] = []
    for name in names:
        tokens.extend(tokenize(name))
    return " ".join(tokens)
