from datetime import datetime, timezone
from pydantic import BaseModel, field_validator
from typing import Any

class ReportIn(BaseModel):
    deviceId: str | None = None
    label: str | None = None
    publicIP: str | None = None
    clientLat: float | None = None
    clientLon: float | None = None

class DeviceEntry(BaseModel):
    deviceId: str
    label: str | None = None
    publicIP: str | None = None
    clientLat: float | None = None
    clientLon: float | None = None
    reportedAt: datetime
    geo: dict[str, Any] | None = None

class HistoryRowOut(BaseModel):
    id: int
    deviceId: str
    label: str | None = None
    publicIP: str | None = None
    clientLat: float | None = None
    clientLon: float | None = None
    reportedAt: datetime

    @field_validator("reportedAt")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        # SQLite hands timestamps back naive
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)

class ReportAck(BaseModel):
    ok: bool = True
    device: DeviceEntry

class ResetAck(BaseModel):
    ok: bool = True
    message: str
    cleared: int

class HealthOut(BaseModel):
    ok: bool = True
    liveDevices: int
    database: str
    historyRows: int | None = None
