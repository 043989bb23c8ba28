"""
dispatcher/constants.py

Notification templates and payload defaults used by the dispatcher.
All user-facing strings must be referenced from this module.
"""

# ── Alert statuses ───────────────────────────────────────────
STATUS_SOS: str = "sos"
STATUS_PANIC: str = "panic"
STATUS_ENTRY: str = "entry"
STATUS_EXIT: str = "exit"

# ── Notification titles ──────────────────────────────────────
TITLE_PANIC: str = "🚨 PANIC ALERT!"
TITLE_ENTRY: str = "📍 Geofence Entry"
TITLE_EXIT: str = "⚠️ Geofence Exit"
TITLE_GENERIC: str = "🔔 Alert"

# ── Notification bodies ({lat}, {lng} are filled per alert) ──
BODY_PANIC: str = "Your device triggered a panic button!\nLocation: {lat}, {lng}"
BODY_ENTRY: str = "Your device entered a geofence.\nLocation: {lat}, {lng}"
BODY_EXIT: str = "Your device exited a geofence.\nLocation: {lat}, {lng}"
BODY_GENERIC: str = "New alert from your device"

# ── Coordinates ──────────────────────────────────────────────
COORDINATE_DECIMALS: int = 4
DATA_COORDINATE_DEFAULT: str = "0"  # data block only; the body renders ""
BODY_COORDINATE_MISSING: str = ""

# ── Guardian document fields ─────────────────────────────────
FIELD_PAIRED_DEVICE_ID: str = "pairedDeviceId"
FIELD_FCM_TOKEN: str = "fcmToken"

# ── Celery ───────────────────────────────────────────────────
SEND_ALERT_TASK: str = "dispatcher.tasks.send_alert_notification"
