"""
dispatcher/main.py

Celery Worker entry point.
Defines the Celery app and the alert notification task that drives the fan-out.
"""

import asyncio
from functools import lru_cache

import structlog
from celery import Celery
from pydantic import ValidationError

from config import settings
from dispatcher.constants import SEND_ALERT_TASK
from dispatcher.fanout import handle_alert_created
from dispatcher.schemas import AlertEvent
from store.firebase import FirebasePlatform

logger = structlog.get_logger(__name__)

celery_app = Celery(
    "dispatcher",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    enable_utc=True,
)


@lru_cache(maxsize=1)
def get_platform() -> FirebasePlatform:
    """Firebase handle for this worker process, created before the first task."""
    return FirebasePlatform.initialize()


async def _run_dispatch(event: AlertEvent, platform: FirebasePlatform) -> None:
    """Async entrypoint that runs one alert fan-out."""
    report = await handle_alert_created(event, platform.guardians, platform.messaging)
    if report is None:
        logger.warning(
            "alert_notification_abandoned",
            device_id=event.device_id,
            timestamp=event.timestamp,
        )


@celery_app.task(name=SEND_ALERT_TASK)
def send_alert_notification(event_json: str) -> None:
    """
    Celery task fired once per created alerts/{deviceId}/{timestamp} record.

    Uses asyncio.run() to bridge Celery's sync interface with the async fan-out.
    Failures are logged; the task never raises and is never retried.
    """
    try:
        event = AlertEvent.model_validate_json(event_json)
    except ValidationError as exc:
        logger.error("alert_event_invalid", error=str(exc))
        return

    try:
        platform = get_platform()
    except Exception as exc:
        logger.error(
            "firebase_unavailable",
            device_id=event.device_id,
            error=str(exc),
        )
        return

    asyncio.run(_run_dispatch(event, platform))
