from __future__ import annotations

from datetime import UTC, datetime, tzinfo


def ensure_aware(dt: datetime, tz: tzinfo = UTC) -> datetime:
    """Attach or convert timezone information to a datetime."""

    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def to_epoch_seconds(dt: datetime) -> int:
    """Return unix seconds; naive datetimes are taken as UTC."""

    return int(ensure_aware(dt, UTC).timestamp())


def time_bucket(epoch_seconds: float, bucket_seconds: int) -> int:
    """Return the start (unix seconds) of the window containing the instant."""

    if bucket_seconds <= 0:
        raise ValueError("bucket_seconds must be positive")
    return int(epoch_seconds // bucket_seconds) * bucket_seconds
