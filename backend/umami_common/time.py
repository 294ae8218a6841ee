"""
Time helpers shared by the ingestion and analytics paths.

All stored timestamps are timezone-aware UTC. Naive datetimes coming from
clients or from backends without timezone support are interpreted as UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta


def now_utc() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def bucket_index(value: datetime, width_seconds: int) -> int:
    """Index of the fixed-width epoch bucket that contains ``value``."""
    return int(ensure_utc(value).timestamp()) // width_seconds


def bucket_start(index: int, width_seconds: int) -> datetime:
    return datetime.fromtimestamp(index * width_seconds, tz=UTC)


def split_range(start: datetime, end: datetime, width: timedelta) -> list[tuple[datetime, datetime]]:
    """
    Split ``[start, end)`` into consecutive chunks aligned to multiples of ``width``.

    The first and last chunks are clipped to the range, so the chunks always
    cover it exactly once.
    """
    start = ensure_utc(start)
    end = ensure_utc(end)
    if end <= start:
        return []
    width_seconds = int(width.total_seconds())
    chunks: list[tuple[datetime, datetime]] = []
    cursor = start
    while cursor < end:
        aligned_end = bucket_start(bucket_index(cursor, width_seconds) + 1, width_seconds)
        chunk_end = min(aligned_end, end)
        chunks.append((cursor, chunk_end))
        cursor = chunk_end
    return chunks
