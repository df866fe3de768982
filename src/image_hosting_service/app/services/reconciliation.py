from datetime import datetime, timedelta, timezone
from typing import Callable

from loguru import logger

from ..core.config import Settings
from .asset_store import AssetStore
from .domain import ReconciliationReport
from .event_log import EventLog
from .storage_adapter import B2StorageAdapter

LIST_PAGE_SIZE = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrphanReconciler:
    """Removes stored objects that no asset row refers to.

    Objects younger than the grace period are skipped so uploads still in
    flight are never touched.
    """

    def __init__(
        self,
        storage: B2StorageAdapter | None = None,
        asset_store: AssetStore | None = None,
        event_log: EventLog | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        from ..core.config import get_settings

        self.settings = settings or get_settings()
        self.storage = storage or B2StorageAdapter(self.settings)
        self.event_log = event_log or EventLog(self.settings)
        self.asset_store = asset_store or AssetStore(
            self.storage, event_log=self.event_log, settings=self.settings
        )
        self.clock = clock

    async def sweep(
        self, grace_period_hours: int | None = None
    ) -> ReconciliationReport:
        if grace_period_hours is None:
            grace_period_hours = self.settings.ORPHAN_GRACE_PERIOD_HOURS
        cutoff = self.clock() - timedelta(hours=grace_period_hours)

        logger.info(f"Starting orphan sweep for objects older than {cutoff}")

        report = ReconciliationReport()
        start_file_name = None

        while True:
            page = await self.storage.list_files(
                start_file_name=start_file_name, max_count=LIST_PAGE_SIZE
            )
            report.scanned += len(page.files)

            aged = [f for f in page.files if f.uploaded_at < cutoff]
            known_keys = await self.asset_store.existing_keys(
                [f.file_name for f in aged]
            )

            for remote_file in aged:
                if remote_file.file_name in known_keys:
                    continue

                report.orphaned += 1
                deleted = await self.storage.delete(
                    remote_file.file_id, remote_file.file_name
                )
                if deleted:
                    report.deleted += 1
                else:
                    report.failed += 1
                    report.failed_keys.append(remote_file.file_name)

            if not page.next_file_name:
                break
            start_file_name = page.next_file_name

        logger.info(
            f"Orphan sweep finished: scanned={report.scanned} "
            f"orphaned={report.orphaned} deleted={report.deleted} "
            f"failed={report.failed}"
        )
        await self.event_log.info(
            "Orphan sweep finished",
            scanned=report.scanned,
            orphaned=report.orphaned,
            deleted=report.deleted,
            failed=report.failed,
        )
        return report
