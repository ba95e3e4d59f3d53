"""
API key authentication for mobile clients.
Validates bearer API keys and resolves them to user IDs.
"""
import secrets
from typing import Optional, Tuple

import bcrypt
from sqlalchemy.orm import Session

from pocketledger.database import SessionLocal
from pocketledger.models import ApiKey
from pocketledger.timeutils import utcnow

API_KEY_PREFIX = "pf_"
_DISPLAY_PREFIX_LENGTH = 8


def hash_api_key(key: str) -> str:
    """Hash an API key using bcrypt with salt."""
    return bcrypt.hashpw(key.encode(), bcrypt.gensalt()).decode()


def verify_api_key(key: str, stored_hash: str) -> bool:
    return bcrypt.checkpw(key.encode(), stored_hash.encode())


def issue_api_key(db: Session, user_id: str, name: str) -> Tuple[ApiKey, str]:
    """
    Create a new API key for a user.

    Returns the stored record and the raw key; the raw key is not
    recoverable afterwards.
    """
    raw_key = API_KEY_PREFIX + secrets.token_urlsafe(32)
    record = ApiKey(
        user_id=user_id,
        name=name,
        key_hash=hash_api_key(raw_key),
        key_prefix=raw_key[:_DISPLAY_PREFIX_LENGTH],
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record, raw_key


def validate_api_key(api_key: str, db: Optional[Session] = None) -> Optional[str]:
    """
    Validate an API key and return the associated user_id.

    Candidates are narrowed by the stored display prefix before the bcrypt
    comparison.

    Args:
        api_key: The raw API key string (e.g., "pf_abc123...")
        db: Session to use; a fresh one is opened when omitted.

    Returns:
        The user_id if the key is valid, None otherwise.
    """
    if not api_key or not api_key.startswith(API_KEY_PREFIX):
        return None

    owns_session = db is None
    if owns_session:
        db = SessionLocal()
    try:
        candidates = (
            db.query(ApiKey)
            .filter(ApiKey.key_prefix == api_key[:_DISPLAY_PREFIX_LENGTH])
            .all()
        )
        record = next((c for c in candidates if verify_api_key(api_key, c.key_hash)), None)
        if not record:
            return None

        if record.expires_at and record.expires_at < utcnow():
            return None

        record.last_used_at = utcnow()
        db.commit()

        return record.user_id
    finally:
        if owns_session:
            db.close()


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
