"""Datetime utilities."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current UTC time as a naive datetime.

    Naive because SQLite's DATETIME round-trips without an offset, and every
    timestamp the ledger stores is UTC.
    """
    return datetime.now(UTC).replace(tzinfo=None)
