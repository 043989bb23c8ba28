"""
dispatcher/fanout.py

Alert-triggered notification fan-out.
- dispatch_alert: scan the guardian directory, notify every guardian paired
  with the alert's device, and drop tokens FCM reports as permanently invalid
- handle_alert_created: trigger entry point; logs and absorbs any failure

Each guardian is handled independently and concurrently. A failure for one
guardian is recorded in its GuardianOutcome and never affects the others.
"""

import asyncio
from typing import Optional

import structlog
from pydantic import ValidationError

from dispatcher.schemas import (
    AlertEvent,
    AlertRecord,
    DispatchReport,
    GuardianOutcome,
    GuardianRecord,
    OutcomeKind,
)
from dispatcher.templates import build_payload, uses_coordinates
from store.firebase import DeliveryError, FcmTransport, GuardianDirectory

logger = structlog.get_logger(__name__)


def _parse_record(event: AlertEvent) -> AlertRecord:
    """
    Validate the raw alert value; non-mapping values carry no fields.

    Invalid coordinates are fatal only for statuses whose body shows them.
    """
    if not isinstance(event.record, dict):
        logger.warning(
            "alert_record_not_mapping",
            device_id=event.device_id,
            timestamp=event.timestamp,
            record_type=type(event.record).__name__,
        )
        return AlertRecord()
    try:
        return AlertRecord.model_validate(event.record)
    except ValidationError as exc:
        invalid = {error["loc"][0] for error in exc.errors() if error["loc"]}
        if uses_coordinates(event.record.get("status")) or not invalid <= {"lat", "lng"}:
            raise
        # generic body shows no location; drop only the bad coordinates
        logger.warning(
            "alert_coordinates_invalid",
            device_id=event.device_id,
            timestamp=event.timestamp,
            fields=sorted(invalid),
        )
        stripped = {k: v for k, v in event.record.items() if k not in invalid}
        return AlertRecord.model_validate(stripped)


async def _remove_stale_token(
    guardian_id: str,
    directory: GuardianDirectory,
) -> bool:
    try:
        await directory.remove_token(guardian_id)
    except Exception as exc:
        logger.error(
            "fcm_token_cleanup_failed",
            guardian_id=guardian_id,
            error=str(exc),
        )
        return False
    logger.info("fcm_token_removed", guardian_id=guardian_id)
    return True


async def _notify_guardian(
    event: AlertEvent,
    alert: AlertRecord,
    guardian: GuardianRecord,
    directory: GuardianDirectory,
    transport: FcmTransport,
) -> GuardianOutcome:
    """Send one notification and turn whatever happens into an outcome."""
    if not guardian.fcm_token:
        logger.info(
            "guardian_missing_fcm_token",
            guardian_id=guardian.guardian_id,
            device_id=event.device_id,
        )
        return GuardianOutcome(guardian_id=guardian.guardian_id, kind=OutcomeKind.SKIPPED)

    payload = build_payload(event, alert, guardian.fcm_token)

    try:
        message_id = await transport.send(payload)
    except DeliveryError as exc:
        logger.error(
            "fcm_send_failed",
            guardian_id=guardian.guardian_id,
            device_id=event.device_id,
            error_kind=exc.kind.value,
            error=str(exc),
        )
        token_removed = False
        if exc.kind.is_permanent_token_failure:
            token_removed = await _remove_stale_token(guardian.guardian_id, directory)
        return GuardianOutcome(
            guardian_id=guardian.guardian_id,
            kind=OutcomeKind.FAILED,
            error_kind=exc.kind,
            error=str(exc),
            token_removed=token_removed,
        )
    except Exception as exc:
        logger.error(
            "fcm_send_unexpected_error",
            guardian_id=guardian.guardian_id,
            device_id=event.device_id,
            error=str(exc),
        )
        return GuardianOutcome(
            guardian_id=guardian.guardian_id,
            kind=OutcomeKind.FAILED,
            error=str(exc),
        )

    logger.info(
        "fcm_notification_sent",
        guardian_id=guardian.guardian_id,
        device_id=event.device_id,
        status=alert.status,
        message_id=message_id,
    )
    return GuardianOutcome(
        guardian_id=guardian.guardian_id,
        kind=OutcomeKind.SENT,
        message_id=message_id,
    )


async def dispatch_alert(
    event: AlertEvent,
    directory: GuardianDirectory,
    transport: FcmTransport,
) -> DispatchReport:
    """
    Notify every guardian paired with the alert's device.

    Flow:
    1. Validate the alert record
    2. Scan the full guardian directory (must finish before fan-out)
    3. Concurrently notify each guardian whose pairedDeviceId matches

    Directory and validation errors propagate; per-guardian errors do not.
    """
    alert = _parse_record(event)

    logger.info(
        "alert_received",
        device_id=event.device_id,
        timestamp=event.timestamp,
        status=alert.status,
    )

    guardians = await directory.list_guardians()
    matches = [g for g in guardians if g.paired_device_id == event.device_id]

    logger.info(
        "guardians_matched",
        device_id=event.device_id,
        scanned=len(guardians),
        matched=len(matches),
    )

    outcomes = await asyncio.gather(
        *(_notify_guardian(event, alert, g, directory, transport) for g in matches)
    )

    report = DispatchReport(
        device_id=event.device_id,
        timestamp=event.timestamp,
        outcomes=list(outcomes),
    )
    logger.info(
        "alert_dispatch_complete",
        device_id=event.device_id,
        timestamp=event.timestamp,
        attempted=report.attempted,
        sent=report.sent,
        tokens_removed=len(report.tokens_removed),
    )
    return report


async def handle_alert_created(
    event: AlertEvent,
    directory: GuardianDirectory,
    transport: FcmTransport,
) -> Optional[DispatchReport]:
    """
    Trigger-style entry point: never raises.

    Returns the report on success and None when the dispatch could not run.
    """
    try:
        return await dispatch_alert(event, directory, transport)
    except ValidationError as exc:
        logger.error(
            "alert_record_invalid",
            device_id=event.device_id,
            timestamp=event.timestamp,
            error=str(exc),
        )
    except Exception as exc:
        logger.error(
            "alert_dispatch_failed",
            device_id=event.device_id,
            timestamp=event.timestamp,
            error=str(exc),
        )
    return None
