"""
Timestamp helpers.

All timestamps are stored and compared as naive UTC datetimes at millisecond
precision, the precision they have on the wire; offsets are applied on the
way in and a ``Z`` suffix is added on the way out.
"""
from datetime import datetime, timezone

EPOCH = datetime(1970, 1, 1)


def _to_milliseconds(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def utcnow() -> datetime:
    return _to_milliseconds(datetime.now(timezone.utc).replace(tzinfo=None))


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are taken as UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return _to_milliseconds(value)


def isoformat_utc(value: datetime) -> str:
    return to_naive_utc(value).isoformat(timespec="milliseconds") + "Z"
