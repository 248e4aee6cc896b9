"""Text normalization shared by deduplication and full-text search."""

import re

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def normalize_name(name: str) -> str:
    """Case- and whitespace-insensitive key for entity names."""
    return " ".join(name.split()).casefold()


def normalize_fact(fact: str) -> str:
    """Key for exact fact comparison: casefolded, whitespace collapsed, trailing period dropped."""
    return " ".join(fact.split()).casefold().rstrip(".")


def search_tokens(query: str, max_tokens: int = 32) -> list[str]:
    """Word tokens of a free-text query, deduplicated in order."""
    seen: list[str] = []
    for token in _TOKEN_RE.findall(query.casefold()):
        if token not in seen:
            seen.append(token)
        if len(seen) >= max_tokens:
            break
    return seen
