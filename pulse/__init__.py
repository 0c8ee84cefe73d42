# Delivery Pulse - Core Library
"""
Exports for the CLI, the API routers and other consumers.
"""

from .aggregator import DueDigest, build_portfolio_digest, build_project_digest
from .dates import TimeWindow, format_uk_date, parse_due
from .identifiers import resolve_project_id
from .report import build_delivery_report
from .service import DigestService
from .severity import Rag, classify
from .store import RecordStore, init_db

__all__ = [
    "init_db",
    "RecordStore",
    "parse_due",
    "format_uk_date",
    "TimeWindow",
    "resolve_project_id",
    "DueDigest",
    "build_project_digest",
    "build_portfolio_digest",
    "build_delivery_report",
    "Rag",
    "classify",
    "DigestService",
]
