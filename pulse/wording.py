"""Small English helpers for generated sentences."""

from collections.abc import Sequence


def plural(count: int, singular: str, plural_form: str | None = None) -> str:
    """``plural(1, "item") -> "1 item"``, ``plural(2, "item") -> "2 items"``."""
    word = singular if count == 1 else (plural_form or f"{singular}s")
    return f"{count} {word}"


def verb(count: int, singular: str, plural_form: str) -> str:
    return singular if count == 1 else plural_form


def join_phrases(parts: Sequence[str]) -> str:
    """Join with commas and a final "and"."""
    parts = [p for p in parts if p]
    if not parts:
        return ""
    if len(parts) == 1:
        return parts[0]
    return f"{', '.join(parts[:-1])} and {parts[-1]}"


def named_list(names: Sequence[str], limit: int) -> str:
    """Up to *limit* names, then "(+N more)"."""
    shown = join_phrases(list(names[:limit]))
    extra = len(names) - limit
    return f"{shown} (+{extra} more)" if extra > 0 else shown
