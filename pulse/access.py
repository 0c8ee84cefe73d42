"""
Authorization collaborator.

The engine never decides who may see what; it asks an AccessPolicy. The
store-backed OrganisationAccess grants a user every project of the
organisations they are an active member of, plus any project they are an
active member of directly.
"""

import logging
from typing import Any, Protocol

from pulse import config
from pulse.errors import MissingColumnError
from pulse.store import RecordStore

logger = logging.getLogger(__name__)


def active_projects(store: RecordStore, **filters) -> list[dict[str, Any]]:
    """Projects that are neither deleted nor closed, ordered by title."""
    kwargs = {"is_null": ("deleted_at",), "order_by": ("title",), **filters}
    try:
        rows = store.select("projects", ("id", "title", "project_code", "status"), **kwargs)
    except MissingColumnError:
        rows = store.select("projects", ("id", "title", "status"), **kwargs)
    inactive = config.INACTIVE_PROJECT_STATUSES
    return [r for r in rows if str(r.get("status") or "").strip().lower() not in inactive]


class AccessPolicy(Protocol):
    def current_user(self) -> dict[str, Any] | None: ...

    def project_access(self, project_id: str, user_id: str) -> bool: ...

    def visible_projects(self, user_id: str) -> list[dict[str, Any]]: ...


class OrganisationAccess:
    """AccessPolicy backed by organisation and project membership tables."""

    def __init__(self, store: RecordStore, user_id: str | None = None):
        self.store = store
        self.user_id = user_id

    def current_user(self) -> dict[str, Any] | None:
        return {"id": self.user_id} if self.user_id else None

    def organisation_ids(self, user_id: str) -> list[str]:
        rows = self.store.select(
            "organisation_members",
            ("organisation_id",),
            where={"user_id": user_id},
            is_null=("removed_at",),
        )
        return sorted({str(r["organisation_id"]) for r in rows if r.get("organisation_id")})

    def project_access(self, project_id: str, user_id: str) -> bool:
        if not user_id:
            return False
        project = self.store.first(
            "projects", ("id", "organisation_id"), where={"id": project_id}
        )
        if project is None:
            return False
        org_id = project.get("organisation_id")
        if org_id and str(org_id) in self.organisation_ids(user_id):
            return True
        member = self.store.first(
            "project_members",
            ("user_id",),
            where={"project_id": project_id, "user_id": user_id},
            is_null=("removed_at",),
        )
        return member is not None

    def member_project_ids(self, user_id: str) -> list[str]:
        rows = self.store.select(
            "project_members",
            ("project_id",),
            where={"user_id": user_id},
            is_null=("removed_at",),
        )
        return sorted({str(r["project_id"]) for r in rows if r.get("project_id")})

    def visible_projects(self, user_id: str) -> list[dict[str, Any]]:
        """Active projects of the user's organisations and direct memberships, ordered by title."""
        visible: dict[str, dict[str, Any]] = {}
        org_ids = self.organisation_ids(user_id)
        if org_ids:
            for project in active_projects(self.store, where_in={"organisation_id": org_ids}):
                visible[str(project["id"])] = project
        member_ids = [pid for pid in self.member_project_ids(user_id) if pid not in visible]
        if member_ids:
            for project in active_projects(self.store, where_in={"id": member_ids}):
                visible[str(project["id"])] = project
        return sorted(visible.values(), key=lambda p: str(p.get("title") or ""))


class OperatorAccess:
    """AccessPolicy for local operators (CLI): every active project is visible."""

    OPERATOR_ID = "operator"

    def __init__(self, store: RecordStore):
        self.store = store

    def current_user(self) -> dict[str, Any] | None:
        return {"id": self.OPERATOR_ID}

    def project_access(self, project_id: str, user_id: str) -> bool:
        return True

    def visible_projects(self, user_id: str) -> list[dict[str, Any]]:
        return active_projects(self.store)
