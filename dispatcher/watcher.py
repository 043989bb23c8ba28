"""
dispatcher/watcher.py

Alert Watcher process (python -m dispatcher.watcher).
Streams the alerts/ subtree of the Realtime Database and enqueues one
notification task for every newly created alerts/{deviceId}/{timestamp} record.

Enqueued keys are recorded in a RedisAlertLedger. Every snapshot, including
the first one after a restart, is compared against the ledger, so records
written while the watcher was down still fire. Only the very first snapshot
against an empty ledger is seeded without firing. A key is recorded only after
its task was enqueued; a record that is deleted and later written again fires
again.
"""

import threading
from typing import Any, Callable, Iterator

import structlog
from firebase_admin import db

from config import settings
from dispatcher.constants import SEND_ALERT_TASK
from dispatcher.schemas import AlertEvent
from store.alert_ledger import AlertKey, RedisAlertLedger

logger = structlog.get_logger(__name__)

# Depth of a record below the alerts root: {deviceId}/{timestamp}
_RECORD_DEPTH: int = 2


def _split_path(path: str) -> list[str]:
    return [segment for segment in path.split("/") if segment]


def _children(value: Any) -> Iterator[tuple[str, Any]]:
    """Iterate a node's children; the Realtime Database may return arrays."""
    if isinstance(value, dict):
        items = value.items()
    elif isinstance(value, list):
        items = enumerate(value)
    else:
        return
    for key, child in items:
        if child is not None:
            yield str(key), child


def _nest(segments: list[str], value: Any) -> Any:
    for segment in reversed(segments):
        value = {segment: value}
    return value


def _records_under(segments: list[str], value: Any) -> dict[AlertKey, Any]:
    if len(segments) == 0:
        return {
            (device_id, timestamp): record
            for device_id, records in _children(value)
            for timestamp, record in _children(records)
        }
    if len(segments) == 1:
        return {(segments[0], timestamp): record for timestamp, record in _children(value)}
    if value is None:
        return {}
    return {(segments[0], segments[1]): value}


def expand_writes(event_type: str, path: str, data: Any) -> list[tuple[list[str], Any]]:
    """Normalize a listener event into (segments, value) overwrites."""
    segments = _split_path(path)
    if event_type == "patch" and isinstance(data, dict):
        return [(segments + _split_path(key), value) for key, value in data.items()]
    return [(segments, data)]


class AlertWatcher:
    """Detects alert creations against the ledger and enqueues them."""

    def __init__(
        self,
        enqueue: Callable[[AlertEvent], bool],
        ledger: RedisAlertLedger,
    ) -> None:
        self._enqueue = enqueue
        self._ledger = ledger
        self._lock = threading.Lock()

    def __call__(self, event: db.Event) -> None:
        self.handle_event(event.event_type, event.path, event.data)

    def handle_event(self, event_type: str, path: str, data: Any) -> list[AlertEvent]:
        """Apply one listener event; returns the alerts that were enqueued."""
        with self._lock:
            if (
                event_type == "put"
                and not _split_path(path)
                and not self._ledger.is_initialized()
            ):
                records = _records_under([], data)
                self._ledger.add_many(records.keys())
                self._ledger.mark_initialized()
                logger.info("alert_ledger_seeded", known=len(records))
                return []

            candidates: dict[AlertKey, AlertEvent] = {}
            for segments, value in expand_writes(event_type, path, data):
                for alert_event in self._apply_write(segments, value):
                    candidates.setdefault(
                        (alert_event.device_id, alert_event.timestamp), alert_event
                    )

            enqueued: list[AlertEvent] = []
            for key, alert_event in candidates.items():
                if self._enqueue(alert_event):
                    self._ledger.add(key)
                    enqueued.append(alert_event)
            return enqueued

    def _apply_write(self, segments: list[str], value: Any) -> list[AlertEvent]:
        if len(segments) > _RECORD_DEPTH:
            key = (segments[0], segments[1])
            if value is None or self._ledger.contains(key):
                return []
            record = _nest(segments[_RECORD_DEPTH:], value)
            return [AlertEvent(device_id=key[0], timestamp=key[1], record=record)]

        records = _records_under(segments, value)
        known = self._ledger.keys_under(segments)
        self._ledger.discard(known - records.keys())

        return [
            AlertEvent(device_id=key[0], timestamp=key[1], record=record)
            for key, record in records.items()
            if key not in known
        ]


def enqueue_alert(event: AlertEvent) -> bool:
    """Push the alert onto the Celery queue; False when the broker refused it."""
    from dispatcher.main import celery_app

    try:
        celery_app.send_task(SEND_ALERT_TASK, args=[event.model_dump_json()])
    except Exception as exc:
        logger.error(
            "alert_enqueue_failed",
            device_id=event.device_id,
            timestamp=event.timestamp,
            error=str(exc),
        )
        return False
    logger.info(
        "alert_task_enqueued",
        device_id=event.device_id,
        timestamp=event.timestamp,
    )
    return True


def run_watcher() -> None:
    """Subscribe to the alerts root and block until interrupted."""
    from store.firebase import FirebasePlatform

    platform = FirebasePlatform.initialize()
    watcher = AlertWatcher(enqueue_alert, RedisAlertLedger.from_url())
    registration = platform.alert_store.listen(settings.alerts_root, watcher)
    logger.info("alert_watcher_started", alerts_root=settings.alerts_root)
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("alert_watcher_stopping")
    finally:
        registration.close()


if __name__ == "__main__":
    run_watcher()
