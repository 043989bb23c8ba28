"""
gateway/services/persistence.py

Persists proxied device writes to the Firebase Realtime Database.
"""

from typing import Any

import structlog

from store.firebase import RealtimeAlertStore

logger = structlog.get_logger(__name__)


async def write_proxy_payload(
    store: RealtimeAlertStore,
    device_id: str,
    path: str,
    data: Any,
) -> None:
    """Overwrite the value at path with data. Exactly one write, no retry."""
    try:
        await store.set(path, data)
        logger.info(
            "proxy_write_persisted",
            device_id=device_id,
            path=path,
        )
    except Exception as exc:
        logger.error(
            "proxy_write_failed",
            device_id=device_id,
            path=path,
            error=str(exc),
        )
        raise
