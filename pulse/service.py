"""
Request handling for digests and reports, independent of transport.

Validates input before any query runs, resolves the project reference,
checks access through the AccessPolicy, then delegates to the aggregator or
the report builder. Used by both the HTTP routers and the CLI.
"""

import asyncio
import logging
import math
import re
from datetime import datetime
from typing import Any

from pulse.access import AccessPolicy
from pulse.aggregator import build_portfolio_digest, build_project_digest
from pulse.dates import parse_calendar_date, utc_now
from pulse.errors import AccessDeniedError, InvalidRequestError, ProjectNotFoundError
from pulse.identifiers import resolve_project_id
from pulse.models import ProjectMeta
from pulse.observability.metrics import digest_requests, report_requests
from pulse.owners import aload_project_meta
from pulse.report import Period, build_delivery_report
from pulse.stats import portfolio_stats
from pulse.store import RecordStore

logger = logging.getLogger(__name__)

MAX_REFERENCE_LENGTH = 200
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")
_NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?$")


def validate_reference(raw: Any, required: bool = False) -> str | None:
    """Trimmed project reference; None means portfolio scope."""
    if raw is None:
        if required:
            raise InvalidRequestError("project_ref is required")
        return None
    if not isinstance(raw, str):
        raise InvalidRequestError("project_ref must be a string")
    text = raw.strip()
    if not text:
        raise InvalidRequestError("project_ref is empty")
    if len(text) > MAX_REFERENCE_LENGTH:
        raise InvalidRequestError("project_ref is too long")
    if _CONTROL_CHARS_RE.search(text):
        raise InvalidRequestError("project_ref contains control characters")
    return text


def validate_window_days(value: Any) -> int | float | None:
    """Numeric window or None. Range clamping happens downstream."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidRequestError("window_days must be a number")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidRequestError("window_days must be finite")
        return value
    if isinstance(value, str) and _NUMERIC_RE.match(value.strip()):
        return float(value.strip())
    raise InvalidRequestError("window_days must be a number")


def validate_period(start: Any, end: Any, now: datetime | None = None) -> Period:
    """Report period; either bound may be omitted and takes its default."""
    default = Period.default(now)
    start_date = default.start
    end_date = default.end
    if start not in (None, ""):
        start_date = parse_calendar_date(start)
        if start_date is None:
            raise InvalidRequestError(f"period.from is not a date: {start!r}")
    if end not in (None, ""):
        end_date = parse_calendar_date(end)
        if end_date is None:
            raise InvalidRequestError(f"period.to is not a date: {end!r}")
    if start_date > end_date:
        raise InvalidRequestError("period.from is after period.to")
    return Period(start=start_date, end=end_date)


class DigestService:
    """Digest and report entry points for one caller."""

    def __init__(self, store: RecordStore, access: AccessPolicy):
        self.store = store
        self.access = access

    def _user_id(self) -> str:
        user = self.access.current_user()
        if not user or not user.get("id"):
            raise AccessDeniedError("Authentication required")
        return str(user["id"])

    async def resolve_project(self, project_ref: str, user_id: str) -> ProjectMeta:
        project_id = await asyncio.to_thread(resolve_project_id, self.store, project_ref)
        if not project_id:
            raise ProjectNotFoundError(project_ref)
        meta = await aload_project_meta(self.store, project_id)
        if meta is None:
            raise ProjectNotFoundError(project_ref)
        allowed = await asyncio.to_thread(self.access.project_access, project_id, user_id)
        if not allowed:
            raise AccessDeniedError(f"No access to project {project_ref}")
        return meta

    async def due_digest(
        self,
        project_ref: Any = None,
        window_days: Any = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Project-scoped digest when a reference is given, portfolio otherwise."""
        digest_requests.inc()
        ref = validate_reference(project_ref)
        window = validate_window_days(window_days)
        user_id = self._user_id()
        now = now or utc_now()

        if ref is not None:
            meta = await self.resolve_project(ref, user_id)
            digest = await build_project_digest(self.store, meta, window, now)
            return digest.to_dict()

        projects = await asyncio.to_thread(self.access.visible_projects, user_id)
        digest = await build_portfolio_digest(self.store, projects, window, now)
        out = digest.to_dict()
        out["stats"] = await portfolio_stats(
            self.store, [str(p["id"]) for p in projects if p.get("id")], now
        )
        return out

    async def delivery_report(
        self,
        project_ref: Any,
        period_from: Any = None,
        period_to: Any = None,
        window_days: Any = None,
        artifact_id: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        report_requests.inc()
        ref = validate_reference(project_ref, required=True)
        window = validate_window_days(window_days)
        now = now or utc_now()
        period = validate_period(period_from, period_to, now)
        user_id = self._user_id()

        meta = await self.resolve_project(ref, user_id)
        report = await build_delivery_report(
            self.store, meta, period, window, artifact_id=artifact_id, now=now
        )
        return report.to_dict()
