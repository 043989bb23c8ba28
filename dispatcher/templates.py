"""
dispatcher/templates.py

Template selection and payload construction for alert notifications.

Coordinates are rendered differently in the two halves of the payload:
the body formats a present coordinate to 4 decimals and drops a missing one
(leaving "Location: , 56.7890"), while the data block always carries a string
and falls back to "0".
"""

from typing import Any, NamedTuple, Optional

from dispatcher.constants import (
    BODY_COORDINATE_MISSING,
    BODY_ENTRY,
    BODY_EXIT,
    BODY_GENERIC,
    BODY_PANIC,
    COORDINATE_DECIMALS,
    DATA_COORDINATE_DEFAULT,
    STATUS_ENTRY,
    STATUS_EXIT,
    STATUS_PANIC,
    STATUS_SOS,
    TITLE_ENTRY,
    TITLE_EXIT,
    TITLE_GENERIC,
    TITLE_PANIC,
)
from dispatcher.schemas import (
    AlertEvent,
    AlertRecord,
    NotificationContent,
    NotificationData,
    NotificationPayload,
)


class NotificationTemplate(NamedTuple):
    title: str
    body: str  # may contain {lat} and {lng}


GENERIC_TEMPLATE = NotificationTemplate(TITLE_GENERIC, BODY_GENERIC)

_TEMPLATES: dict[str, NotificationTemplate] = {
    STATUS_SOS: NotificationTemplate(TITLE_PANIC, BODY_PANIC),
    STATUS_PANIC: NotificationTemplate(TITLE_PANIC, BODY_PANIC),
    STATUS_ENTRY: NotificationTemplate(TITLE_ENTRY, BODY_ENTRY),
    STATUS_EXIT: NotificationTemplate(TITLE_EXIT, BODY_EXIT),
}


def select_template(status: Optional[str]) -> NotificationTemplate:
    """Exact, case-sensitive lookup; unknown or missing status is generic."""
    if status is None:
        return GENERIC_TEMPLATE
    return _TEMPLATES.get(status, GENERIC_TEMPLATE)


def uses_coordinates(status: Any) -> bool:
    """Whether the template chosen for status renders lat and lng into the body."""
    return isinstance(status, str) and status in _TEMPLATES


def format_body_coordinate(value: Optional[float]) -> str:
    if value is None:
        return BODY_COORDINATE_MISSING
    return f"{value:.{COORDINATE_DECIMALS}f}"


def format_data_coordinate(value: Optional[float]) -> str:
    """Round to 4 decimals and print without trailing zeros, e.g. 12.34567 -> "12.3457"."""
    if value is None:
        return DATA_COORDINATE_DEFAULT
    rounded = round(float(value), COORDINATE_DECIMALS)
    if rounded.is_integer():
        return str(int(rounded))
    return repr(rounded)


def render_notification(alert: AlertRecord) -> NotificationContent:
    template = select_template(alert.status)
    body = template.body.format(
        lat=format_body_coordinate(alert.lat),
        lng=format_body_coordinate(alert.lng),
    )
    return NotificationContent(title=template.title, body=body)


def build_payload(event: AlertEvent, alert: AlertRecord, token: str) -> NotificationPayload:
    """Assemble the FCM message for one guardian token."""
    return NotificationPayload(
        notification=render_notification(alert),
        data=NotificationData(
            device_id=event.device_id,
            status=alert.status or "",
            latitude=format_data_coordinate(alert.lat),
            longitude=format_data_coordinate(alert.lng),
            timestamp=event.timestamp,
        ),
        token=token,
    )
