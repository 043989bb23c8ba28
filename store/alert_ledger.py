"""
store/alert_ledger.py

Redis-backed record of alert keys that have already been enqueued.

Layout under the configured prefix:
- {prefix}:devices           set of device ids with at least one seen alert
- {prefix}:device:{deviceId} set of seen alert timestamps for that device
- {prefix}:initialized       present once the first snapshot has been seeded

The ledger survives watcher restarts, so alerts written while the watcher
was down are still detected on the next snapshot.
"""

from typing import Any, Iterable

import redis

from config import settings

AlertKey = tuple[str, str]


class RedisAlertLedger:
    """Seen (deviceId, timestamp) keys stored in Redis sets."""

    def __init__(self, client: Any, prefix: str = settings.alert_ledger_prefix) -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str = settings.redis_url) -> "RedisAlertLedger":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    @property
    def _devices_key(self) -> str:
        return f"{self._prefix}:devices"

    @property
    def _initialized_key(self) -> str:
        return f"{self._prefix}:initialized"

    def _device_key(self, device_id: str) -> str:
        return f"{self._prefix}:device:{device_id}"

    def is_initialized(self) -> bool:
        return bool(self._client.exists(self._initialized_key))

    def mark_initialized(self) -> None:
        self._client.set(self._initialized_key, "1")

    def contains(self, key: AlertKey) -> bool:
        return bool(self._client.sismember(self._device_key(key[0]), key[1]))

    def add(self, key: AlertKey) -> None:
        self._client.sadd(self._devices_key, key[0])
        self._client.sadd(self._device_key(key[0]), key[1])

    def add_many(self, keys: Iterable[AlertKey]) -> None:
        for key in keys:
            self.add(key)

    def discard(self, keys: Iterable[AlertKey]) -> None:
        for device_id, timestamp in keys:
            self._client.srem(self._device_key(device_id), timestamp)

    def keys_under(self, segments: list[str]) -> set[AlertKey]:
        """Seen keys below an alerts-relative path of depth 0, 1 or 2."""
        if len(segments) == 0:
            return {
                key
                for device_id in self._client.smembers(self._devices_key)
                for key in self.keys_under([device_id])
            }
        if len(segments) == 1:
            device_id = segments[0]
            return {
                (device_id, timestamp)
                for timestamp in self._client.smembers(self._device_key(device_id))
            }
        key = (segments[0], segments[1])
        return {key} if self.contains(key) else set()
