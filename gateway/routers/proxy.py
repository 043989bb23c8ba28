"""
gateway/routers/proxy.py

POST /proxyToFirebase endpoint.
Validates a device write request and stores its data at the requested path.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from gateway.constants import MISSING_FIELDS_MESSAGE, PROXY_ROUTE
from gateway.schemas import ProxyWriteRequest, ProxyWriteResponse
from gateway.services.persistence import write_proxy_payload
from store.firebase import RealtimeAlertStore

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_alert_store(request: Request) -> RealtimeAlertStore:
    """Resolve the store from the platform handle built at startup."""
    return request.app.state.platform.alert_store


@router.post(PROXY_ROUTE, response_model=ProxyWriteResponse)
async def proxy_to_firebase(
    payload: Optional[ProxyWriteRequest] = None,
    store: RealtimeAlertStore = Depends(get_alert_store),
) -> Response:
    """
    Write a device payload into the Realtime Database.

    Flow:
    1. Reject the request with 400 if deviceId, path or data is missing
    2. Overwrite data at path (single write, no retry)
    3. Report 200 on success, 500 with the error message on failure
    """
    if payload is None or not payload.is_complete():
        logger.warning(
            "proxy_request_incomplete",
            device_id=payload.device_id if payload else None,
            has_path=bool(payload and payload.path),
        )
        return PlainTextResponse(MISSING_FIELDS_MESSAGE, status_code=400)

    try:
        await write_proxy_payload(store, payload.device_id, payload.path, payload.data)
    except Exception as exc:
        return JSONResponse(
            ProxyWriteResponse(success=False, error=str(exc)).model_dump(),
            status_code=500,
        )

    return JSONResponse(ProxyWriteResponse(success=True).model_dump(exclude_none=True))
