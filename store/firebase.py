"""
store/firebase.py

Firebase platform handle and adapters.
- RealtimeAlertStore: Realtime Database writes and the alerts stream
- GuardianDirectory: Firestore guardians collection scan and token cleanup
- FcmTransport: Firebase Cloud Messaging send with classified failures

firebase_admin is synchronous; blocking calls run through asyncio.to_thread.
The Firebase app is initialized once per process by FirebasePlatform.initialize().
"""

import asyncio
from functools import cached_property
from typing import Any, Callable

import firebase_admin
import structlog
from firebase_admin import credentials, db, exceptions, firestore, messaging
from pydantic import ValidationError

from config import settings
from dispatcher.constants import FIELD_FCM_TOKEN, FIELD_PAIRED_DEVICE_ID
from dispatcher.schemas import DeliveryErrorKind, GuardianRecord, NotificationPayload

logger = structlog.get_logger(__name__)

# Substring FCM uses when rejecting a malformed registration token
_INVALID_TOKEN_MARKER: str = "registration token"


class DeliveryError(Exception):
    """An FCM send failed; kind tells whether the token is permanently dead."""

    def __init__(self, kind: DeliveryErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


def classify_messaging_error(exc: Exception) -> DeliveryErrorKind:
    """Map a firebase_admin messaging failure onto a DeliveryErrorKind."""
    if isinstance(exc, messaging.UnregisteredError):
        return DeliveryErrorKind.TOKEN_UNREGISTERED
    if (
        isinstance(exc, exceptions.InvalidArgumentError)
        and _INVALID_TOKEN_MARKER in str(exc).lower()
    ):
        return DeliveryErrorKind.TOKEN_INVALID
    return DeliveryErrorKind.OTHER


class RealtimeAlertStore:
    """Keyed writes into the Realtime Database."""

    def __init__(self, app: firebase_admin.App) -> None:
        self._app = app

    async def set(self, path: str, data: Any) -> None:
        """Overwrite the value at path. Invalid paths raise ValueError."""
        ref = db.reference(path, app=self._app)
        await asyncio.to_thread(ref.set, data)

    def listen(self, path: str, callback: Callable[[db.Event], None]) -> db.ListenerRegistration:
        """Stream put/patch events under path to callback on a background thread."""
        return db.reference(path, app=self._app).listen(callback)


class GuardianDirectory:
    """Guardian documents stored in Firestore."""

    def __init__(self, client: Any, collection: str) -> None:
        self._client = client
        self._collection = collection

    async def list_guardians(self) -> list[GuardianRecord]:
        """Full collection scan. Documents with malformed fields are skipped."""
        docs = await asyncio.to_thread(self._client.collection(self._collection).get)
        guardians: list[GuardianRecord] = []
        for doc in docs:
            data = doc.to_dict() or {}
            try:
                guardians.append(
                    GuardianRecord(
                        guardian_id=doc.id,
                        pairedDeviceId=data.get(FIELD_PAIRED_DEVICE_ID),
                        fcmToken=data.get(FIELD_FCM_TOKEN),
                    )
                )
            except ValidationError as exc:
                logger.warning(
                    "guardian_record_malformed",
                    guardian_id=doc.id,
                    error=str(exc),
                )
        return guardians

    async def remove_token(self, guardian_id: str) -> None:
        """Delete only the fcmToken field of one guardian document."""
        ref = self._client.collection(self._collection).document(guardian_id)
        await asyncio.to_thread(ref.update, {FIELD_FCM_TOKEN: firestore.DELETE_FIELD})


class FcmTransport:
    """Sends NotificationPayloads through Firebase Cloud Messaging."""

    def __init__(self, app: firebase_admin.App) -> None:
        self._app = app

    async def send(self, payload: NotificationPayload) -> str:
        """
        Send one message and return the FCM message id.

        Raises DeliveryError carrying the failure classification.
        """
        message = messaging.Message(
            notification=messaging.Notification(
                title=payload.notification.title,
                body=payload.notification.body,
            ),
            data=payload.data.model_dump(by_alias=True),
            token=payload.token,
        )
        try:
            return await asyncio.to_thread(messaging.send, message, app=self._app)
        except (exceptions.FirebaseError, ValueError) as exc:
            raise DeliveryError(classify_messaging_error(exc), str(exc)) from exc


def _load_credentials() -> credentials.Base:
    if settings.firebase_credentials_path:
        return credentials.Certificate(settings.firebase_credentials_path)
    return credentials.ApplicationDefault()


def _app_options() -> dict[str, str]:
    options: dict[str, str] = {}
    if settings.firebase_database_url:
        options["databaseURL"] = settings.firebase_database_url
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    return options


class FirebasePlatform:
    """
    Process-wide handle on the Firebase app.

    Constructed once at startup and passed explicitly to the proxy endpoint
    and the dispatcher. Adapters are created on first use so a process that
    only writes to the Realtime Database never opens a Firestore client.
    """

    def __init__(
        self,
        app: firebase_admin.App,
        guardians_collection: str = settings.guardians_collection,
    ) -> None:
        self.app = app
        self._guardians_collection = guardians_collection

    @classmethod
    def initialize(cls) -> "FirebasePlatform":
        """Initialize the default Firebase app, reusing it if already present."""
        try:
            app = firebase_admin.get_app()
        except ValueError:
            app = firebase_admin.initialize_app(_load_credentials(), _app_options())
            logger.info(
                "firebase_initialized",
                project_id=settings.firebase_project_id or None,
                database_url=settings.firebase_database_url or None,
            )
        return cls(app)

    @cached_property
    def alert_store(self) -> RealtimeAlertStore:
        return RealtimeAlertStore(self.app)

    @cached_property
    def guardians(self) -> GuardianDirectory:
        return GuardianDirectory(
            firestore.client(app=self.app), self._guardians_collection
        )

    @cached_property
    def messaging(self) -> FcmTransport:
        return FcmTransport(self.app)
