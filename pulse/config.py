"""
Centralized configuration for Delivery Pulse.

Deployment values live here as module constants (override via environment
variables where marked). Digest and report tuning constants live in
DigestSettings, which can be overridden by an optional YAML file.
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

import yaml

from pulse import paths

logger = logging.getLogger(__name__)

# ============================================================
# API
# ============================================================

CORS_ORIGINS: list[str] = os.environ.get(
    "PULSE_CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
).split(",")
"""Allowed browser origins for the dashboard."""

LOG_LEVEL: str = os.environ.get("PULSE_LOG_LEVEL", "INFO")

# ============================================================
# Windows
# ============================================================

MIN_WINDOW_DAYS = 1
MAX_WINDOW_DAYS = 90

DEFAULT_DIGEST_WINDOW_DAYS: int = int(os.environ.get("PULSE_DEFAULT_WINDOW_DAYS", "14"))
"""Look-ahead for the due digest when the caller gives none."""

DEFAULT_REPORT_WINDOW_DAYS: int = int(os.environ.get("PULSE_DEFAULT_REPORT_WINDOW_DAYS", "7"))
"""Look-ahead for the report's next-period section."""

DEFAULT_REPORT_PERIOD_DAYS = 7
"""A report with no period covers the last seven days, today included."""

# ============================================================
# Vocabularies
# ============================================================

WORK_ITEM_DONE_STATUSES = frozenset({"done", "closed", "completed"})
MILESTONE_DONE_STATUSES = frozenset({"done", "completed", "closed"})
RAID_CLOSED_STATUSES = frozenset({"closed", "invalid"})
CHANGE_CLOSED_STATUSES = frozenset({"closed", "implemented"})
BLOCKER_RAID_TYPES = frozenset({"issue", "dependency", "risk"})
HIGH_PRIORITIES = frozenset({"high", "p1", "critical"})
INACTIVE_PROJECT_STATUSES = frozenset({"closed", "cancelled", "completed"})
OWNER_ROLE_PRECEDENCE = ("project_manager", "owner")
DEFAULT_OWNER_NAME = "Project Manager"


@dataclass(frozen=True)
class DigestSettings:
    """Caps, query ceilings and look-ahead constants for digests and reports."""

    project_item_cap: int = 30
    portfolio_item_cap: int = 250

    # per-domain row ceilings, project scope
    project_artifact_limit: int = 500
    project_milestone_limit: int = 500
    project_work_item_limit: int = 1000
    project_raid_limit: int = 500
    project_change_limit: int = 500

    # per-domain row ceilings, portfolio scope
    bulk_artifact_limit: int = 5000
    bulk_milestone_limit: int = 5000
    bulk_work_item_limit: int = 20000
    bulk_raid_limit: int = 20000
    bulk_change_limit: int = 5000
    member_limit: int = 50000

    blocker_lookahead_days: int = 14
    overdue_lookback_days: int = 30
    stats_milestone_days: int = 30

    completed_milestone_cap: int = 12
    completed_work_item_cap: int = 12
    completed_change_cap: int = 8
    completed_raid_cap: int = 8
    next_focus_cap: int = 12
    decision_cap: int = 30
    blocker_cap: int = 25
    report_list_cap: int = 50
    resource_owner_cap: int = 12

    @classmethod
    def from_yaml(cls, config_path: Path) -> "DigestSettings":
        """Load overrides from YAML. Unknown keys are ignored."""
        defaults = cls()
        if not config_path.exists():
            return defaults
        try:
            with open(config_path) as f:
                raw = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as exc:
            logger.error("Failed to load digest settings from %s: %s", config_path, exc)
            return defaults
        if not isinstance(raw, dict):
            logger.warning("Ignoring digest settings in %s: not a mapping", config_path)
            return defaults

        known = {f.name for f in fields(cls)}
        overrides = {}
        for key, value in raw.items():
            if key not in known:
                logger.warning("Unknown digest setting %r ignored", key)
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                logger.warning("Digest setting %r must be a positive integer", key)
                continue
            overrides[key] = value
        return replace(defaults, **overrides)


_settings: DigestSettings | None = None


def get_settings() -> DigestSettings:
    """Process-wide settings, read once from the config directory."""
    global _settings
    if _settings is None:
        _settings = DigestSettings.from_yaml(paths.settings_path())
    return _settings


def reset_settings(settings: DigestSettings | None = None) -> None:
    """Replace (or clear) the cached settings. Used by tests and the CLI."""
    global _settings
    _settings = settings
