"""
Deep links into the governance UI.

Builders produce lower-case canonical paths; normalize_link rewrites links
coming from older records (upper-case segments, legacy change paths) into the
same shape. Only the path is touched; query strings and fragments are kept.
"""

import re
from urllib.parse import quote


def _enc(value) -> str:
    # mirrors encodeURIComponent
    return quote(str(value), safe="-_.!~*'()")


def artifact_link(project_human_id: str, artifact_id: str) -> str:
    return f"/projects/{_enc(project_human_id)}/artifacts/{_enc(artifact_id)}"


def schedule_link(project_human_id: str, milestone_id: str) -> str:
    return f"/projects/{_enc(project_human_id)}/schedule?milestone={_enc(milestone_id)}"


def wbs_link(project_human_id: str, item_id: str) -> str:
    return f"/projects/{_enc(project_human_id)}/wbs?item={_enc(item_id)}"


def raid_link(project_human_id: str, public_id: str | None = None) -> str:
    base = f"/projects/{_enc(project_human_id)}/raid"
    return f"{base}?item={_enc(public_id)}" if public_id else base


def change_link(project_human_id: str, change_id: str) -> str:
    return f"/projects/{_enc(project_human_id)}/change?id={_enc(change_id)}"


_ROUTE_SEGMENTS = {
    "raid": "raid",
    "wbs": "wbs",
    "schedule": "schedule",
    "change_requests": "change",
    "changes": "change",
    "change": "change",
    "artifacts": "artifacts",
}

# the route segment directly after the project id; the id itself is never rewritten
_ROUTE = re.compile(r"^(/projects/[^/]+/)([^/]+)(?=/|$)")


def _route_segment(match: re.Match) -> str:
    segment = match.group(2)
    return match.group(1) + _ROUTE_SEGMENTS.get(segment.lower(), segment)


def normalize_link(href: str | None) -> str | None:
    """Lower-case the known route segment of *href*'s project path."""
    if not href:
        return href
    text = str(href).strip()
    if not text:
        return None

    cut = len(text)
    for marker in ("?", "#"):
        idx = text.find(marker)
        if idx != -1:
            cut = min(cut, idx)
    path, rest = text[:cut], text[cut:]
    path = _ROUTE.sub(_route_segment, path)
    return path + rest
