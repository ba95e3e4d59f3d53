"""
Pull half of sync: what changed on the server since the client's watermark.
"""
from datetime import datetime, timedelta
from typing import List
import logging

from pocketledger.schemas import SyncRecord
from pocketledger.services.entity_kinds import EntityKind
from pocketledger.services.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


class ChangePuller:
    """Reads a user's changed records per kind, soft-deleted ones included."""

    def __init__(self, store: LedgerStore, overlap_ms: int = 0):
        self.store = store
        self.overlap = timedelta(milliseconds=max(0, overlap_ms))

    def pull(self, user_id: str, kind: EntityKind, since: datetime) -> List[SyncRecord]:
        """
        Records of ``kind`` owned by ``user_id`` with ``updated_at > since``,
        ordered by ``updated_at`` ascending.

        With a positive overlap the lower bound is moved back so records
        sitting right at the watermark are delivered again.
        """
        lower_bound = since - self.overlap if self.overlap else since
        rows = self.store.find_since(kind, user_id, lower_bound)
        logger.debug(f"[SYNC] Pulled {len(rows)} {kind.collection} for user {user_id} since {lower_bound.isoformat()}")
        return [kind.to_record(row) for row in rows]
