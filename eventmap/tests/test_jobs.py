from datetime import datetime, timedelta, timezone

from eventmap.jobs import event_reminders, scrape_events
from eventmap.jobs.event_reminders import send_reminders, tomorrow_window
from eventmap.utils.dates import APP_TIMEZONE

# 03:00 on 15 March in Vietnam
NOW = datetime(2025, 3, 14, 20, 0, tzinfo=timezone.utc)


def test_tomorrow_window_uses_local_calendar_day():
    start, end = tomorrow_window(NOW)

    assert start == datetime(2025, 3, 16, 0, 0, tzinfo=APP_TIMEZONE)
    assert end - start == timedelta(days=1)


def test_send_reminders(mock_db, mocker):
    mock_conn, mock_cursor = mock_db
    mock_send = mocker.patch("eventmap.jobs.event_reminders.send_event_reminder", return_value=True)

    mock_cursor.fetchall.side_effect = [
        [{"event_id": 4, "name": "Lễ hội Áo dài", "location": "Quận 1",
          "start_time": datetime(2025, 3, 16, 12, 30, tzinfo=timezone.utc)}],
        [{"user_id": 2, "email": "a@example.com"}, {"user_id": 3, "email": "b@example.com"}],
    ]

    sent = send_reminders(NOW)

    assert sent == 2
    mock_send.assert_any_call("a@example.com", "Lễ hội Áo dài", "16/03/2025", "19:30", "Quận 1")
    mock_conn.commit.assert_called_once()

    select_args = mock_cursor.execute.call_args_list[0][0][1]
    assert select_args[0] == "UPCOMING"
    assert select_args[1] == datetime(2025, 3, 16, 0, 0, tzinfo=APP_TIMEZONE)

    reminders = [c[0][1] for c in mock_cursor.execute.call_args_list if "INSERT INTO notifications" in c[0][0]]
    assert [r[0] for r in reminders] == [2, 3]
    assert reminders[0][1] == "EVENT_REMINDER"
    assert reminders[0][4] == "/events/4"


def test_send_reminders_counts_only_delivered(mock_db, mocker):
    _, mock_cursor = mock_db
    mocker.patch("eventmap.jobs.event_reminders.send_event_reminder", side_effect=[False, True])

    mock_cursor.fetchall.side_effect = [
        [{"event_id": 4, "name": "Concert", "location": "Quận 1",
          "start_time": datetime(2025, 3, 16, 2, 0, tzinfo=timezone.utc)}],
        [{"user_id": 2, "email": "a@example.com"}, {"user_id": 3, "email": "b@example.com"}],
    ]

    assert send_reminders(NOW) == 1


def test_send_reminders_nothing_tomorrow(mock_db, mocker):
    _, mock_cursor = mock_db
    mock_send = mocker.patch("eventmap.jobs.event_reminders.send_event_reminder")
    mock_cursor.fetchall.return_value = []

    assert send_reminders(NOW) == 0
    mock_send.assert_not_called()


def test_reminders_main_exit_codes(mocker):
    mocker.patch("eventmap.jobs.event_reminders.send_reminders", return_value=3)
    assert event_reminders.main() == 0

    mocker.patch("eventmap.jobs.event_reminders.send_reminders", side_effect=Exception("db down"))
    assert event_reminders.main() == 1


def test_scrape_main_exit_codes(mocker):
    mocker.patch("eventmap.jobs.scrape_events.scrape_all_events", return_value={"saved": 1, "skipped": 0})
    assert scrape_events.main() == 0

    mocker.patch("eventmap.jobs.scrape_events.scrape_all_events", side_effect=Exception("db down"))
    assert scrape_events.main() == 1
