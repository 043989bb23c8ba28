"""
tests/fixtures.py

Shared test data and helper functions for constructing test payloads.
All tests must use these fixtures instead of hardcoding test values.
"""

from __future__ import annotations

from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

from dispatcher.schemas import AlertEvent, GuardianRecord

TEST_DEVICE_ID: str = "child_01"
TEST_TIMESTAMP: str = "1718458200000"
TEST_LAT: float = 12.34567
TEST_LNG: float = 56.78901


def build_alert_event(
    device_id: str = TEST_DEVICE_ID,
    timestamp: str = TEST_TIMESTAMP,
    status: Optional[str] = "panic",
    lat: Optional[float] = TEST_LAT,
    lng: Optional[float] = TEST_LNG,
) -> AlertEvent:
    """Build an AlertEvent with sensible defaults; None omits the field."""
    record: dict[str, Any] = {}
    if status is not None:
        record["status"] = status
    if lat is not None:
        record["lat"] = lat
    if lng is not None:
        record["lng"] = lng
    return AlertEvent(device_id=device_id, timestamp=timestamp, record=record)


def build_guardian(
    guardian_id: str = "guardian_001",
    paired_device_id: Optional[str] = TEST_DEVICE_ID,
    fcm_token: Optional[str] = "T1",
) -> GuardianRecord:
    """Build a GuardianRecord paired with the test device."""
    return GuardianRecord(
        guardian_id=guardian_id,
        paired_device_id=paired_device_id,
        fcm_token=fcm_token,
    )


def build_directory(guardians: list[GuardianRecord]) -> MagicMock:
    """Mock GuardianDirectory returning the given guardians from a scan."""
    directory = MagicMock()
    directory.list_guardians = AsyncMock(return_value=guardians)
    directory.remove_token = AsyncMock(return_value=None)
    return directory


def build_transport(message_id: str = "projects/test/messages/1") -> MagicMock:
    """Mock FcmTransport whose sends succeed unless side_effect is replaced."""
    transport = MagicMock()
    transport.send = AsyncMock(return_value=message_id)
    return transport


def build_store() -> MagicMock:
    """Mock RealtimeAlertStore for the proxy endpoint."""
    store = MagicMock()
    store.set = AsyncMock(return_value=None)
    return store


class FakeRedis:
    """In-memory stand-in for the few redis.Redis set commands the ledger uses."""

    def __init__(self) -> None:
        self.strings: dict[str, str] = {}
        self.sets: dict[str, set[str]] = {}

    def exists(self, key: str) -> int:
        return int(key in self.strings or bool(self.sets.get(key)))

    def set(self, key: str, value: str) -> bool:
        self.strings[key] = value
        return True

    def sadd(self, key: str, member: str) -> int:
        members = self.sets.setdefault(key, set())
        added = member not in members
        members.add(member)
        return int(added)

    def srem(self, key: str, member: str) -> int:
        members = self.sets.get(key, set())
        removed = member in members
        members.discard(member)
        return int(removed)

    def sismember(self, key: str, member: str) -> bool:
        return member in self.sets.get(key, set())

    def smembers(self, key: str) -> set[str]:
        return set(self.sets.get(key, set()))
