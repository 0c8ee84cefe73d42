"""
Project identifier resolution.

Projects are addressed in URLs and requests by whatever the user has at
hand: the canonical UUID, an organisation-assigned code ("P-100011"), a
bare human id ("100011"), or a slug. resolve_project_id maps any of these to
the canonical id by probing the identifier columns the store actually has.
"""

import logging
import re
from urllib.parse import unquote

from pulse.errors import MissingColumnError
from pulse.store import RecordStore

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_TRAILING_NUMBER_RE = re.compile(r"(\d{3,})$")
_DIGITS_RE = re.compile(r"^\d+$")

HUMAN_ID_FIELDS = (
    "project_code",
    "project_human_id",
    "human_id",
    "code",
    "slug",
    "reference",
    "ref",
)
"""Probe order for non-canonical references. First hit wins."""

NUMERIC_ONLY_FIELDS = frozenset({"project_code", "project_human_id", "human_id"})

RAW_RETRY_FIELDS = ("slug", "reference", "ref", "code")
"""Fields retried with the untouched input when the normalized probe misses."""


def looks_like_uuid(value: str) -> bool:
    return bool(_UUID_RE.match((value or "").strip()))


def normalize_reference(raw: str) -> str:
    """URL-decode, trim, and reduce a prefixed code to its trailing number.

    >>> normalize_reference("P-100011")
    '100011'
    >>> normalize_reference("%20alpha-site ")
    'alpha-site'
    """
    text = (raw or "").strip()
    try:
        text = unquote(text).strip()
    except (UnicodeDecodeError, ValueError):
        pass
    match = _TRAILING_NUMBER_RE.search(text)
    return match.group(1) if match else text


def _probe(store: RecordStore, field: str, value: str) -> str | None:
    """Look up a project id by one identifier column; None if absent."""
    try:
        row = store.first("projects", ["id"], where={field: value})
    except MissingColumnError:
        logger.debug("projects.%s not present; skipping", field)
        return None
    return str(row["id"]) if row and row.get("id") else None


def resolve_project_id(store: RecordStore, raw: str) -> str | None:
    """Resolve any project reference to its canonical id.

    Returns None when nothing matches. Store failures other than a missing
    identifier column propagate to the caller.
    """
    text = (raw or "").strip()
    if not text:
        return None
    if looks_like_uuid(text):
        return text

    normalized = normalize_reference(text)
    if not normalized:
        return None
    numeric = bool(_DIGITS_RE.match(normalized))

    for field in HUMAN_ID_FIELDS:
        if field in NUMERIC_ONLY_FIELDS and not numeric:
            continue
        found = _probe(store, field, normalized)
        if found:
            return found

    for field in RAW_RETRY_FIELDS:
        found = _probe(store, field, text)
        if found:
            return found
    return None
