from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from tortoise import timezone

from ..core.dependencies import (
    get_asset_store,
    get_event_log,
    get_reconciler,
    require_admin,
)
from ..models import EventLevel, Identity
from ..schemas import (
    EventLogItem,
    EventLogListResponse,
    PurgeResponse,
    ReconciliationResponse,
    SystemStatsResponse,
)
from ..services.asset_store import AssetStore
from ..services.event_log import EventLog
from ..services.reconciliation import OrphanReconciler

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/events", response_model=EventLogListResponse)
async def list_events(
    level: EventLevel | None = Query(None),
    identity_id: UUID | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    event_log: EventLog = Depends(get_event_log),
):
    entries, total_count = await event_log.list_entries(
        level=level, identity_id=identity_id, limit=limit, offset=offset
    )
    return EventLogListResponse(
        events=[EventLogItem.model_validate(entry) for entry in entries],
        total_count=total_count,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=SystemStatsResponse)
async def system_stats(
    asset_store: AssetStore = Depends(get_asset_store),
    event_log: EventLog = Depends(get_event_log),
):
    totals = await asset_store.usage_totals()
    events = await event_log.count_by_level_since(timezone.now() - timedelta(hours=24))

    return SystemStatsResponse(
        total_identities=await Identity.all().count(),
        events_last_24h=events,
        **totals,
    )


@router.post("/maintenance/purge-events", response_model=PurgeResponse)
async def purge_events(
    retention_days: int | None = Query(None, ge=0),
    event_log: EventLog = Depends(get_event_log),
):
    if retention_days is None:
        retention_days = event_log.settings.EVENT_LOG_RETENTION_DAYS
    deleted = await event_log.purge_expired(retention_days)
    return PurgeResponse(deleted=deleted, retention_days=retention_days)


@router.post("/maintenance/reconcile", response_model=ReconciliationResponse)
async def reconcile_storage(
    grace_period_hours: int | None = Query(None, ge=0),
    reconciler: OrphanReconciler = Depends(get_reconciler),
):
    """Delete stored objects older than the grace period that have no record."""
    report = await reconciler.sweep(grace_period_hours)
    return ReconciliationResponse(
        scanned=report.scanned,
        orphaned=report.orphaned,
        deleted=report.deleted,
        failed=report.failed,
        failed_keys=report.failed_keys,
    )
