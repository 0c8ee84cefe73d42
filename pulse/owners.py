"""
Project owner resolution.

A project's owner is its earliest active project_manager, else its earliest
active owner. Portfolio scope resolves every project's owner with two reads
in total (memberships, then profiles) instead of two per project.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pulse import config
from pulse.errors import MissingColumnError, StoreError
from pulse.models import ProjectMeta
from pulse.store import RecordStore

logger = logging.getLogger(__name__)

_MEMBER_COLUMNS = ("project_id", "user_id", "role", "created_at")
_PROFILE_COLUMNS = ("user_id", "full_name", "email")


@dataclass(frozen=True)
class OwnerInfo:
    user_id: str
    name: str
    email: str | None = None


def pick_owner(members: Iterable[Mapping[str, Any]]) -> str | None:
    """User id of the preferred owner among earliest-first membership rows."""
    members = list(members)
    for role in config.OWNER_ROLE_PRECEDENCE:
        for member in members:
            if str(member.get("role") or "").strip().lower() == role and member.get("user_id"):
                return str(member["user_id"])
    return None


def _load_members(store: RecordStore, project_ids: list[str], limit: int) -> list[dict]:
    return store.select(
        "project_members",
        _MEMBER_COLUMNS,
        where_in={"project_id": project_ids, "role": config.OWNER_ROLE_PRECEDENCE},
        is_null=("removed_at",),
        order_by=("created_at",),
        limit=limit,
    )


def _load_profiles(store: RecordStore, user_ids: list[str]) -> dict[str, dict]:
    rows = store.select("profiles", _PROFILE_COLUMNS, where_in={"user_id": user_ids})
    return {str(row["user_id"]): row for row in rows}


def _owner_from_profile(user_id: str, profile: Mapping[str, Any] | None) -> OwnerInfo:
    profile = profile or {}
    name = str(profile.get("full_name") or "").strip() or config.DEFAULT_OWNER_NAME
    email = str(profile.get("email") or "").strip() or None
    return OwnerInfo(user_id=user_id, name=name, email=email)


def bulk_load_owners(
    store: RecordStore, project_ids: list[str], limit: int | None = None
) -> dict[str, OwnerInfo]:
    """Owner per project id, for every project that has one."""
    if not project_ids:
        return {}
    limit = limit or config.get_settings().member_limit
    by_project: dict[str, list[dict]] = defaultdict(list)
    for row in _load_members(store, project_ids, limit):
        by_project[str(row["project_id"])].append(row)

    chosen = {pid: pick_owner(rows) for pid, rows in by_project.items()}
    chosen = {pid: uid for pid, uid in chosen.items() if uid}
    if not chosen:
        return {}

    profiles = _load_profiles(store, sorted(set(chosen.values())))
    return {pid: _owner_from_profile(uid, profiles.get(uid)) for pid, uid in chosen.items()}


def _load_project_row(store: RecordStore, project_id: str) -> dict | None:
    try:
        return store.first(
            "projects", ["id", "title", "project_code"], where={"id": project_id}
        )
    except MissingColumnError:
        return store.first("projects", ["id", "title"], where={"id": project_id})


def build_meta(project: Mapping[str, Any], owner: OwnerInfo | None) -> ProjectMeta:
    code = str(project.get("project_code") or "").strip() or None
    return ProjectMeta(
        canonical_id=str(project["id"]),
        name=str(project.get("title") or "").strip() or "Untitled project",
        project_code=code,
        owner_user_id=owner.user_id if owner else None,
        owner_name=owner.name if owner else None,
        owner_email=owner.email if owner else None,
    )


def _owners_or_empty(store: RecordStore, project_ids: list[str]) -> dict[str, OwnerInfo]:
    try:
        return bulk_load_owners(store, project_ids)
    except StoreError as exc:
        logger.warning("Owner lookup failed; continuing without owners: %s", exc)
        return {}


def load_project_meta(store: RecordStore, project_id: str) -> ProjectMeta | None:
    """Meta for one project, or None when the project row does not exist."""
    project = _load_project_row(store, project_id)
    if project is None:
        return None
    owners = _owners_or_empty(store, [project_id])
    return build_meta(project, owners.get(project_id))


def load_portfolio_meta(store: RecordStore, projects: list[Mapping[str, Any]]) -> dict[str, ProjectMeta]:
    """Meta for every project row given, keyed by canonical id."""
    ids = [str(p["id"]) for p in projects if p.get("id")]
    owners = _owners_or_empty(store, ids)
    return {str(p["id"]): build_meta(p, owners.get(str(p["id"]))) for p in projects if p.get("id")}


async def aload_project_meta(store: RecordStore, project_id: str) -> ProjectMeta | None:
    return await asyncio.to_thread(load_project_meta, store, project_id)


async def aload_portfolio_meta(
    store: RecordStore, projects: list[Mapping[str, Any]]
) -> dict[str, ProjectMeta]:
    return await asyncio.to_thread(load_portfolio_meta, store, projects)
