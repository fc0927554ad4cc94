"""
Event status derivation.

Status is a pure function of wall-clock time relative to an event's
start/end. It is stored on the row for filtering and recomputed lazily
whenever events are read.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from eventmap.utils.dates import as_utc, now_utc

logger = logging.getLogger(__name__)

UPCOMING = "UPCOMING"
ONGOING = "ONGOING"
ENDED = "ENDED"
STATUSES = (UPCOMING, ONGOING, ENDED)


def calculate_event_status(start_time: datetime, end_time: datetime, now: Optional[datetime] = None) -> str:
    """
    Derive the status of an event.

    Args:
        start_time (datetime): Event start. Naive values are treated as UTC.
        end_time (datetime): Event end. Naive values are treated as UTC.
        now (datetime, optional): Reference time, defaults to the current UTC time.

    Returns:
        str: UPCOMING before start, ONGOING from start to end inclusive, ENDED after.
    """
    now = as_utc(now) if now else now_utc()
    start = as_utc(start_time)
    end = as_utc(end_time)

    if now < start:
        return UPCOMING
    if now <= end:
        return ONGOING
    return ENDED


def sync_row_status(cur, row: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Recompute a single event row's status and persist it if it drifted.
    The row is updated in place and returned.
    """
    status = calculate_event_status(row["start_time"], row["end_time"], now)
    if status != row.get("status"):
        cur.execute(
            "UPDATE events SET status = %s WHERE event_id = %s;",
            (status, row["event_id"]),
        )
        row["status"] = status
    return row


def refresh_stale_statuses(cur, now: Optional[datetime] = None) -> int:
    """
    Rewrite the stored status of every event whose status no longer
    matches the clock. ENDED is terminal unless an edit moves the times,
    and edits recompute eagerly, so ENDED rows are not scanned.

    Returns:
        int: Number of rows updated.
    """
    cur.execute(
        "SELECT event_id, start_time, end_time, status FROM events WHERE status <> %s;",
        (ENDED,),
    )
    rows: Iterable[Any] = cur.fetchall()

    updated = 0
    for row in rows:
        status = calculate_event_status(row["start_time"], row["end_time"], now)
        if status != row["status"]:
            cur.execute(
                "UPDATE events SET status = %s WHERE event_id = %s;",
                (status, row["event_id"]),
            )
            updated += 1

    if updated:
        logger.info(f"Refreshed status for {updated} event(s)")
    return updated
