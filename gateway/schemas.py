"""
gateway/schemas.py

Pydantic data models for the gateway layer.
- ProxyWriteRequest: body posted by a device to write into the Realtime Database
- ProxyWriteResponse: JSON result of a write attempt
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def _is_present(value: Any) -> bool:
    """Null, empty strings, zero and false count as missing; {} and [] do not."""
    if isinstance(value, (str, int, float)):
        return bool(value)
    return value is not None


class ProxyWriteRequest(BaseModel):
    """
    Incoming proxy write from a device.

    Every field is optional here so that missing fields produce the
    plain-text 400 response instead of a validation error.
    """

    model_config = ConfigDict(populate_by_name=True)

    device_id: Optional[str] = Field(default=None, alias="deviceId")
    path: Optional[str] = None  # e.g. "alerts/child_01"
    data: Any = None

    def is_complete(self) -> bool:
        return bool(self.device_id) and bool(self.path) and _is_present(self.data)


class ProxyWriteResponse(BaseModel):
    """Result returned to the device."""

    success: bool
    error: Optional[str] = None
