"""
Error taxonomy for digest and report requests.

Request-level errors (bad input, unknown project, access denied) abort the
request. Store errors are raised by RecordStore and absorbed per domain by
the aggregator and the report builder.
"""

import re


class DigestError(Exception):
    """Base class for errors surfaced to the caller."""

    code = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(DigestError):
    code = "bad_request"
    status_code = 400


class ProjectNotFoundError(DigestError):
    code = "not_found"
    status_code = 404

    def __init__(self, project_ref: str):
        super().__init__(f"Project not found: {project_ref}")
        self.project_ref = project_ref


class AccessDeniedError(DigestError):
    code = "forbidden"
    status_code = 403


class StoreError(Exception):
    """A record store read failed."""


class MissingColumnError(StoreError):
    """A requested column does not exist on the table (schema drift)."""

    def __init__(self, table: str, column: str):
        super().__init__(f"column {table}.{column} does not exist")
        self.table = table
        self.column = column


_MISSING_COLUMN_PATTERNS = (
    re.compile(r"no such column:\s*(?:\w+\.)?(\w+)", re.IGNORECASE),
    re.compile(r"column\s+\"?(?:\w+\.)?(\w+)\"?\s+does not exist", re.IGNORECASE),
    re.compile(r"could not find the '?(\w+)'? column", re.IGNORECASE),
    re.compile(r"unknown column '?(?:\w+\.)?(\w+)'?", re.IGNORECASE),
    re.compile(r"has no column named\s+(\w+)", re.IGNORECASE),
)


def missing_column_from_message(message: str) -> str | None:
    """Extract the column name from a driver's missing-column message.

    Compatibility shim for drivers that only report schema drift as text.
    Returns None when the message is not a missing-column error.
    """
    for pattern in _MISSING_COLUMN_PATTERNS:
        match = pattern.search(message or "")
        if match:
            return match.group(1)
    return None
