"""
dispatcher/schemas.py

Pydantic data models for the notification dispatcher.
- AlertEvent: message body pushed to the Celery queue for each created alert
- AlertRecord / GuardianRecord: documents read from Firebase
- NotificationPayload: the FCM message built for one guardian
- GuardianOutcome / DispatchReport: per-guardian result vector of a dispatch
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class AlertEvent(BaseModel):
    """Creation event for alerts/{device_id}/{timestamp}."""

    device_id: str
    timestamp: str
    record: Any = None  # raw value as stored in the Realtime Database


class AlertRecord(BaseModel):
    """Alert written by a monitored device."""

    model_config = ConfigDict(extra="allow")

    status: Optional[str] = None  # "sos" | "panic" | "entry" | "exit" | other
    lat: Optional[float] = None
    lng: Optional[float] = None


class GuardianRecord(BaseModel):
    """Guardian document from the Firestore directory."""

    model_config = ConfigDict(populate_by_name=True)

    guardian_id: str
    paired_device_id: Optional[str] = Field(default=None, alias="pairedDeviceId")
    fcm_token: Optional[str] = Field(default=None, alias="fcmToken")


class NotificationContent(BaseModel):
    """Visible part of the push notification."""

    title: str
    body: str


class NotificationData(BaseModel):
    """Data block of the push notification. FCM requires string values."""

    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(alias="deviceId")
    status: str
    latitude: str
    longitude: str
    timestamp: str


class NotificationPayload(BaseModel):
    """Complete FCM message addressed to one guardian token."""

    notification: NotificationContent
    data: NotificationData
    token: str


class DeliveryErrorKind(str, Enum):
    """Classification of a failed FCM send."""

    TOKEN_INVALID = "token_invalid"
    TOKEN_UNREGISTERED = "token_unregistered"
    OTHER = "other"

    @property
    def is_permanent_token_failure(self) -> bool:
        return self in (DeliveryErrorKind.TOKEN_INVALID, DeliveryErrorKind.TOKEN_UNREGISTERED)


class OutcomeKind(str, Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


class GuardianOutcome(BaseModel):
    """Result of notifying one matching guardian."""

    guardian_id: str
    kind: OutcomeKind
    message_id: Optional[str] = None
    error_kind: Optional[DeliveryErrorKind] = None
    error: Optional[str] = None
    token_removed: bool = False


class DispatchReport(BaseModel):
    """Outcome vector for one alert dispatch, in directory order."""

    device_id: str
    timestamp: str
    outcomes: list[GuardianOutcome] = Field(default_factory=list)

    @property
    def attempted(self) -> int:
        return sum(1 for o in self.outcomes if o.kind != OutcomeKind.SKIPPED)

    @property
    def sent(self) -> int:
        return sum(1 for o in self.outcomes if o.kind == OutcomeKind.SENT)

    @property
    def tokens_removed(self) -> list[str]:
        return [o.guardian_id for o in self.outcomes if o.token_removed]
