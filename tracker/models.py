from typing import Optional
from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field, Column

class DeviceRecord(SQLModel, table=True):
    __tablename__ = "devices"

    id: Optional[int] = Field(default=None, primary_key=True)
    deviceId: str = Field(index=True, max_length=255)
    label: Optional[str] = Field(default=None, max_length=255)
    publicIP: Optional[str] = Field(default=None, max_length=50)
    clientLat: Optional[float] = None
    clientLon: Optional[float] = None
    reportedAt: datetime = Field(sa_column=Column(DateTime(timezone=True), index=True, nullable=False))
