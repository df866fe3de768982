import asyncio
from datetime import datetime, timedelta
from typing import Any

from loguru import logger
from tortoise import timezone

from ..core.config import Settings
from ..models.event_log import EventLevel, EventLogEntry


class EventLog:
    """Append-only operational record of notable occurrences.

    Writes are best-effort: a failing or slow database never reaches the
    caller, it is only reported on the local loguru sink.
    """

    def __init__(self, settings: Settings | None = None):
        from ..core.config import get_settings

        self.settings = settings or get_settings()

    async def record(
        self,
        level: EventLevel,
        message: str,
        identity_id: Any = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        try:
            await asyncio.wait_for(
                EventLogEntry.create(
                    level=level,
                    message=message,
                    identity_id=identity_id,
                    metadata=metadata,
                ),
                timeout=self.settings.EVENT_LOG_TIMEOUT_SECONDS,
            )
        except Exception as e:
            logger.error(
                f"Failed to write event log entry ({level.value}: {message}): {e!r}"
            )

    async def info(self, message: str, identity_id: Any = None, **metadata) -> None:
        await self.record(EventLevel.INFO, message, identity_id, metadata or None)

    async def warn(self, message: str, identity_id: Any = None, **metadata) -> None:
        await self.record(EventLevel.WARN, message, identity_id, metadata or None)

    async def error(self, message: str, identity_id: Any = None, **metadata) -> None:
        await self.record(EventLevel.ERROR, message, identity_id, metadata or None)

    async def list_entries(
        self,
        level: EventLevel | None = None,
        identity_id: Any = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[EventLogEntry], int]:
        limit = min(max(limit, 1), 100)
        offset = max(offset, 0)

        query = EventLogEntry.all()
        if level is not None:
            query = query.filter(level=level)
        if identity_id is not None:
            query = query.filter(identity_id=identity_id)

        total_count = await query.count()
        entries = (
            await query.order_by("-created_at").offset(offset).limit(limit)
        )
        return entries, total_count

    async def purge_expired(self, retention_days: int | None = None) -> int:
        if retention_days is None:
            retention_days = self.settings.EVENT_LOG_RETENTION_DAYS

        cutoff = timezone.now() - timedelta(days=retention_days)
        deleted = await EventLogEntry.filter(created_at__lt=cutoff).delete()

        logger.info(
            f"Purged {deleted} event log entries older than {retention_days} days"
        )
        return deleted

    async def count_by_level_since(self, since: datetime) -> dict[str, int]:
        counts = {}
        for level in EventLevel:
            counts[level.value] = await EventLogEntry.filter(
                level=level, created_at__gte=since
            ).count()
        return counts
