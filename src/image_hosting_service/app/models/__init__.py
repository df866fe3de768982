from .api_key import ApiKey
from .asset import Asset, Visibility
from .event_log import EventLevel, EventLogEntry
from .identity import Identity, IdentityStatus

__all__ = [
    "ApiKey",
    "Asset",
    "Visibility",
    "EventLevel",
    "EventLogEntry",
    "Identity",
    "IdentityStatus",
]
