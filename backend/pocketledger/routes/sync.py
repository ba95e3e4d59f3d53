"""
Sync routes for offline-first mobile clients.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pocketledger.database import get_db
from pocketledger.db_helpers import get_user_id
from pocketledger.schemas import ServerTimeResponse, SyncBatch, SyncResult
from pocketledger.services.sync_service import SyncService
from pocketledger.timeutils import utcnow

router = APIRouter()


@router.post("", response_model=SyncResult)
def sync(
    batch: SyncBatch,
    db: Session = Depends(get_db),
):
    """
    Push local changes and pull server changes in one exchange.

    The client applies ``changes`` locally and stores ``serverTime`` as its
    next ``lastSyncAt``. Conflicts the server won are listed in ``conflicts``.
    """
    user_id = get_user_id()
    return SyncService(db).sync(user_id, batch)


@router.get("/time", response_model=ServerTimeResponse)
def get_server_time():
    """Server clock, used by clients to detect skew before stamping records."""
    get_user_id()
    return ServerTimeResponse(server_time=utcnow())
