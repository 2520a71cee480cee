"""Error taxonomy for the tracker service.

Only ``BadRequest``, ``NotFound`` and ``StoreUnavailable`` ever reach an HTTP
client. ``WriteFailed`` and ``LookupFailed`` are swallowed at the ingestion
boundary and only logged.
"""

from __future__ import annotations

from typing import Any


class TrackerError(Exception):
    """Base exception for all tracker errors."""

    def __init__(self, message: str, *, details: Any = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class BadRequest(TrackerError):
    """Report payload is malformed or lacks a deviceId."""


class NotFound(TrackerError):
    """No live entry for the requested device id."""

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__("Device not found")


class StoreUnavailable(TrackerError):
    """History store unreachable, uninitialized, or its query failed."""


class WriteFailed(TrackerError):
    """A single history append failed."""


class LookupFailed(TrackerError):
    """The geolocation service could not resolve an IP."""

    def __init__(self, message: str, *, ip: str | None = None) -> None:
        self.ip = ip
        super().__init__(message)
