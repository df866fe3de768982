from enum import Enum

from tortoise import fields
from tortoise.models import Model


class EventLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class EventLogEntry(Model):
    id = fields.UUIDField(primary_key=True)
    level = fields.CharEnumField(EventLevel)
    message = fields.TextField()
    identity = fields.ForeignKeyField(
        "models.Identity",
        related_name="events",
        null=True,
        on_delete=fields.SET_NULL,
    )
    metadata = fields.JSONField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "event_log"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"<EventLogEntry(level={self.level.value}, message='{self.message}')>"
