from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.event_log import EventLevel


class EventLogItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    level: EventLevel
    message: str
    identity_id: UUID | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime


class EventLogListResponse(BaseModel):
    events: list[EventLogItem]
    total_count: int
    limit: int
    offset: int


class PurgeResponse(BaseModel):
    deleted: int = Field(..., description="Number of expired entries removed")
    retention_days: int


class ReconciliationResponse(BaseModel):
    scanned: int
    orphaned: int
    deleted: int
    failed: int
    failed_keys: list[str] = Field(default_factory=list)


class SystemStatsResponse(BaseModel):
    total_identities: int
    total_assets: int
    public_assets: int
    total_bytes: int
    events_last_24h: dict[str, int] = Field(
        default_factory=dict, description="Event counts by level"
    )
