import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from eventmap.events_service.status import (
    calculate_event_status,
    refresh_stale_statuses,
    sync_row_status,
)

START = datetime(2025, 6, 1, 18, 0, tzinfo=timezone.utc)
END = datetime(2025, 6, 1, 21, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("now, expected", [
    (START - timedelta(days=1), "UPCOMING"),
    (START - timedelta(seconds=1), "UPCOMING"),
    (START, "ONGOING"),
    (START + timedelta(hours=1), "ONGOING"),
    (END, "ONGOING"),
    (END + timedelta(seconds=1), "ENDED"),
])
def test_calculate_event_status(now, expected):
    assert calculate_event_status(START, END, now) == expected


def test_calculate_event_status_naive_times_are_utc():
    naive_start = START.replace(tzinfo=None)
    naive_end = END.replace(tzinfo=None)
    assert calculate_event_status(naive_start, naive_end, START + timedelta(minutes=5)) == "ONGOING"


def test_calculate_event_status_respects_offsets():
    # 01:30 in Vietnam on 2 June is 18:30 UTC on 1 June
    vietnam = timezone(timedelta(hours=7))
    now = datetime(2025, 6, 2, 1, 30, tzinfo=vietnam)
    assert calculate_event_status(START, END, now) == "ONGOING"


def test_sync_row_status_persists_drift():
    cur = MagicMock()
    row = {"event_id": 3, "start_time": START, "end_time": END, "status": "UPCOMING"}

    sync_row_status(cur, row, now=END + timedelta(hours=1))

    assert row["status"] == "ENDED"
    cur.execute.assert_called_once_with("UPDATE events SET status = %s WHERE event_id = %s;", ("ENDED", 3))


def test_sync_row_status_noop_when_current():
    cur = MagicMock()
    row = {"event_id": 3, "start_time": START, "end_time": END, "status": "ONGOING"}

    sync_row_status(cur, row, now=START)

    cur.execute.assert_not_called()


def test_refresh_stale_statuses_updates_only_drifted_rows():
    cur = MagicMock()
    cur.fetchall.return_value = [
        {"event_id": 1, "start_time": START, "end_time": END, "status": "UPCOMING"},
        {"event_id": 2, "start_time": START, "end_time": END, "status": "ONGOING"},
        {"event_id": 3, "start_time": END + timedelta(days=1), "end_time": END + timedelta(days=2), "status": "UPCOMING"},
    ]

    updated = refresh_stale_statuses(cur, now=START + timedelta(hours=1))

    assert updated == 1
    select_sql, select_args = cur.execute.call_args_list[0][0]
    assert "status <> %s" in select_sql
    assert select_args == ("ENDED",)
    assert cur.execute.call_args_list[1][0][1] == ("ONGOING", 1)
