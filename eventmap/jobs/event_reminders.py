"""
Daily reminder job.

Emails everyone interested in an UPCOMING event that starts tomorrow
(calendar day in APP_TIMEZONE) and leaves an EVENT_REMINDER notification
in their inbox. Schedule it once a day, e.g. with cron:

    0 9 * * * python -m eventmap.jobs.event_reminders
"""

import logging
import sys
from datetime import datetime, timedelta
from typing import Optional, Tuple

from eventmap.database.db_connection import get_db
from eventmap.events_service.status import UPCOMING
from eventmap.notifications_service.utils import EVENT_REMINDER, create_notification
from eventmap.utils.dates import APP_TIMEZONE, as_utc, now_local
from eventmap.utils.mailer import send_quietly, send_event_reminder

logger = logging.getLogger(__name__)


def tomorrow_window(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Start and end (exclusive) of tomorrow in the application timezone.
    """
    local_now = now.astimezone(APP_TIMEZONE) if now else now_local()
    tomorrow = (local_now + timedelta(days=1)).date()
    start = datetime(tomorrow.year, tomorrow.month, tomorrow.day, tzinfo=APP_TIMEZONE)
    return start, start + timedelta(days=1)


def send_reminders(now: Optional[datetime] = None) -> int:
    """
    Send reminders for tomorrow's events.

    Returns:
        int: Number of reminder emails handed to the mail server.
    """
    window_start, window_end = tomorrow_window(now)
    reminders = []

    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT event_id, name, location, start_time
                FROM events
                WHERE status = %s AND start_time >= %s AND start_time < %s;
                """,
                (UPCOMING, window_start, window_end),
            )
            events = cur.fetchall()
            logger.info(f"Found {len(events)} events for reminder")

            for event in events:
                cur.execute(
                    """
                    SELECT u.user_id, u.email
                    FROM user_event_interests i
                    JOIN users u ON i.user_id = u.user_id
                    WHERE i.event_id = %s;
                    """,
                    (event["event_id"],),
                )
                local_start = as_utc(event["start_time"]).astimezone(APP_TIMEZONE)
                event_date = local_start.strftime("%d/%m/%Y")
                event_time = local_start.strftime("%H:%M")

                for recipient in cur.fetchall():
                    create_notification(
                        cur,
                        recipient["user_id"],
                        EVENT_REMINDER,
                        "Event tomorrow",
                        f"\"{event['name']}\" starts tomorrow at {event_time}.",
                        f"/events/{event['event_id']}",
                    )
                    reminders.append(
                        (recipient["email"], event["name"], event_date, event_time, event["location"])
                    )
            conn.commit()

    sent = 0
    for email, name, event_date, event_time, location in reminders:
        if send_quietly(send_event_reminder, email, name, event_date, event_time, location):
            logger.info(f"Reminder sent to {email} for event {name}")
            sent += 1

    logger.info(f"Reminder sending completed: {sent}/{len(reminders)} sent")
    return sent


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(asctime)s - %(message)s")
    try:
        send_reminders()
    except Exception as e:
        logger.error(f"Reminders failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
