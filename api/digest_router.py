"""
Digest Router - due-item digests and delivery reports.

Mounted at /api/v2/digest in server.py.
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Response

from api.auth import current_user_id, require_auth
from api.response_models import DeliveryReportRequest, DigestEnvelope, DueDigestRequest
from pulse import paths
from pulse.access import OrganisationAccess
from pulse.errors import DigestError, StoreError
from pulse.observability.metrics import request_errors
from pulse.service import DigestService
from pulse.store import RecordStore

logger = logging.getLogger(__name__)

digest_router = APIRouter(tags=["Digest"], dependencies=[Depends(require_auth)])


def get_store() -> RecordStore:
    return RecordStore(paths.db_path())


def _wrap_response(data: dict, params: dict | None = None) -> dict:
    """Wrap response in standard envelope."""
    return {
        "status": "ok",
        "data": data,
        "computed_at": datetime.now(UTC).isoformat(),
        "params": params or {},
    }


def _error_response(message: str, code: str) -> dict:
    return {"status": "error", "error": message, "error_code": code}


def _to_http(exc: Exception) -> HTTPException:
    request_errors.inc()
    if isinstance(exc, DigestError):
        return HTTPException(status_code=exc.status_code, detail=_error_response(exc.message, exc.code))
    return HTTPException(
        status_code=503, detail=_error_response("Record store unavailable", "store_unavailable")
    )


@digest_router.post("/due", response_model=DigestEnvelope)
async def due_digest(
    body: DueDigestRequest,
    response: Response,
    user_id: str | None = Depends(current_user_id),
    store: RecordStore = Depends(get_store),
):
    """
    Due items in the next N days for one project, or for every project
    visible to the caller when project_ref is omitted.
    """
    service = DigestService(store, OrganisationAccess(store, user_id))
    try:
        data = await service.due_digest(body.project_ref, body.window_days)
    except DigestError as e:
        raise _to_http(e) from e
    except StoreError as e:
        logger.exception("due_digest failed")
        raise _to_http(e) from e
    response.headers["Cache-Control"] = "no-store"
    return _wrap_response(data, body.model_dump(exclude_none=True))


@digest_router.post("/report", response_model=DigestEnvelope)
async def delivery_report(
    body: DeliveryReportRequest,
    response: Response,
    user_id: str | None = Depends(current_user_id),
    store: RecordStore = Depends(get_store),
):
    """Delivery report for one project over a period (default: last 7 days)."""
    service = DigestService(store, OrganisationAccess(store, user_id))
    try:
        data = await service.delivery_report(
            body.project_ref,
            period_from=body.period.from_,
            period_to=body.period.to,
            window_days=body.window_days,
            artifact_id=body.artifact_id,
        )
    except DigestError as e:
        raise _to_http(e) from e
    except StoreError as e:
        logger.exception("delivery_report failed")
        raise _to_http(e) from e
    response.headers["Cache-Control"] = "no-store"
    return _wrap_response(data, body.model_dump(by_alias=True, exclude_none=True))
