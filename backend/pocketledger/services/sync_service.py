"""
Service coordinating one device sync: push the device's records, then pull
everything the device has not seen yet.
"""
from typing import List, Optional
import logging
import traceback

from sqlalchemy.orm import Session

from pocketledger.config import Settings, get_settings
from pocketledger.schemas import ConflictReport, SyncBatch, SyncChanges, SyncResult
from pocketledger.services.change_puller import ChangePuller
from pocketledger.services.entity_kinds import sync_kinds
from pocketledger.services.ledger_store import LedgerStore
from pocketledger.services.record_synchronizer import synchronizer_for
from pocketledger.timeutils import EPOCH, utcnow

logger = logging.getLogger(__name__)


class SyncService:
    """Stateless between calls; the client's watermark is the only carried state."""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.store = LedgerStore(db)
        self.puller = ChangePuller(self.store, overlap_ms=self.settings.sync_pull_overlap_ms)
        self.kinds = sync_kinds(self.settings.sync_categories_enabled)

    def sync(self, user_id: str, batch: SyncBatch) -> SyncResult:
        """
        Run one push/pull exchange for ``user_id``.

        ``server_time`` is captured once, before anything is written, and is
        returned as both ``serverTime`` and ``syncedAt``; the client uses it
        as its next watermark. A kind whose push fails does not stop the
        other kinds from syncing.
        """
        server_time = utcnow()
        since = batch.last_sync_at or EPOCH
        conflicts: List[ConflictReport] = []

        if batch.categories and not self.settings.sync_categories_enabled:
            logger.info(
                f"[SYNC] Ignoring {len(batch.categories)} pushed categories from device "
                f"{batch.device_id}: category sync is disabled"
            )

        for kind in self.kinds:
            records = getattr(batch, kind.collection)
            if not records:
                continue
            try:
                conflicts.extend(synchronizer_for(self.store, kind).sync_kind(user_id, records))
            except Exception as e:
                self.store.rollback()
                logger.error(f"[SYNC] Push of {kind.collection} failed for user {user_id}: {e}")
                logger.debug(traceback.format_exc())

        changes = SyncChanges()
        for kind in self.kinds:
            setattr(changes, kind.collection, self.puller.pull(user_id, kind, since))

        logger.info(
            f"[SYNC] User {user_id} device {batch.device_id} since {since.isoformat()}: "
            + ", ".join(f"{len(getattr(changes, kind.collection))} {kind.collection}" for kind in self.kinds)
            + f" pulled, {len(conflicts)} conflicts"
        )

        return SyncResult(
            server_time=server_time,
            changes=changes,
            conflicts=conflicts,
            synced_at=server_time,
        )
