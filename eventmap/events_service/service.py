"""
Event persistence logic shared by the public events routes, the admin
routes and the scraper.

Every function takes an open cursor and leaves committing to the caller.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from eventmap.events_service.status import STATUSES, calculate_event_status, sync_row_status
from eventmap.notifications_service.utils import EVENT_CANCELLED, EVENT_CHANGED, create_notification
from eventmap.utils.dates import APP_TIMEZONE, as_utc, parse_dt
from eventmap.utils.geocoding import geocode_address
from eventmap.utils.serialization import nest_prefixed, serialize_row

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 3
DESCRIPTION_MIN_LENGTH = 10
INTERNAL_SOURCE = "internal"

EVENT_SELECT = """
    SELECT
        e.event_id, e.name, e.description, e.image, e.location,
        e.latitude, e.longitude, e.start_time, e.end_time, e.status,
        e.category_id, e.region_id, e.creator_id, e.interested_count,
        e.source, e.created_at, e.updated_at,
        c.category_id AS category__category_id, c.name AS category__name,
        r.region_id AS region__region_id, r.name AS region__name, r.code AS region__code,
        u.user_id AS creator__user_id, u.name AS creator__name, u.email AS creator__email
    FROM events e
    LEFT JOIN event_categories c ON e.category_id = c.category_id
    LEFT JOIN regions r ON e.region_id = r.region_id
    LEFT JOIN users u ON e.creator_id = u.user_id
"""


class EventValidationError(ValueError):
    """Raised for client errors; the message is safe to return as a 400."""


def format_event(row: Any) -> Dict[str, Any]:
    """Serialize a row from EVENT_SELECT with nested category/region/creator."""
    event = serialize_row(row)
    nest_prefixed(event, "category__", "category")
    nest_prefixed(event, "region__", "region")
    nest_prefixed(event, "creator__", "creator")
    return event


def format_when(value: datetime) -> str:
    """Human readable local time used in notifications and emails."""
    return as_utc(value).astimezone(APP_TIMEZONE).strftime("%d/%m/%Y %H:%M")


def _optional_int(value: Any, field: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise EventValidationError(f"{field} must be an integer")


# --- VALIDATION ---
def validate_event_payload(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Validate create/update input and return the cleaned fields.

    Args:
        data (dict): Request JSON.
        partial (bool): Update mode; only fields present are validated.

    Returns:
        dict: Cleaned values keyed by column name (times parsed to datetimes).

    Raises:
        EventValidationError: On the first invalid field.
    """
    cleaned: Dict[str, Any] = {}

    if not partial or "name" in data:
        name = data.get("name")
        if not isinstance(name, str) or len(name.strip()) < NAME_MIN_LENGTH:
            raise EventValidationError(f"Event name must be at least {NAME_MIN_LENGTH} characters")
        cleaned["name"] = name.strip()

    if not partial or "description" in data:
        description = data.get("description")
        if not isinstance(description, str) or len(description.strip()) < DESCRIPTION_MIN_LENGTH:
            raise EventValidationError(
                f"Event description must be at least {DESCRIPTION_MIN_LENGTH} characters"
            )
        cleaned["description"] = description.strip()

    if not partial or "location" in data:
        location = data.get("location")
        if not isinstance(location, str) or not location.strip():
            raise EventValidationError("Location is required")
        cleaned["location"] = location.strip()

    if not partial and (not data.get("start_time") or not data.get("end_time")):
        raise EventValidationError("Start time and end time are required")

    for key in ("start_time", "end_time"):
        if key in data:
            parsed = parse_dt(data.get(key))
            if not parsed:
                raise EventValidationError(f"Invalid {key} format. Use ISO-8601.")
            cleaned[key] = as_utc(parsed)

    if "start_time" in cleaned and "end_time" in cleaned and cleaned["start_time"] >= cleaned["end_time"]:
        raise EventValidationError("End time must be after start time")

    if "image" in data:
        cleaned["image"] = data.get("image") or None

    for key in ("category_id", "region_id"):
        if key in data:
            cleaned[key] = _optional_int(data.get(key), key)

    return cleaned


# --- QUERIES ---
def build_event_filters(search: Optional[str] = None, category: Any = None, region: Any = None,
                        status: Optional[str] = None, creator_id: Optional[int] = None) -> Tuple[str, List[Any]]:
    """
    Build the WHERE clause for event listings.

    Returns:
        tuple: (sql, params) where sql starts with "WHERE".
    """
    sql = "WHERE 1=1"
    params: List[Any] = []

    if search:
        sql += " AND e.name ILIKE %s"
        params.append(f"%{search}%")

    if category:
        sql += " AND e.category_id = %s"
        params.append(_optional_int(category, "category"))

    if region:
        sql += " AND e.region_id = %s"
        params.append(_optional_int(region, "region"))

    if status:
        status = status.upper()
        if status not in STATUSES:
            raise EventValidationError(f"status must be one of: {', '.join(STATUSES)}")
        sql += " AND e.status = %s"
        params.append(status)

    if creator_id is not None:
        sql += " AND e.creator_id = %s"
        params.append(creator_id)

    return sql, params


def list_events_page(cur, where: str, params: List[Any], limit: int, offset: int) -> Tuple[List[Dict[str, Any]], int]:
    """
    Fetch one page of events, newest first.

    Returns:
        tuple: (formatted events, total matching rows)
    """
    cur.execute(f"SELECT COUNT(*) AS total FROM events e {where};", params)
    total = cur.fetchone()["total"]

    cur.execute(
        f"{EVENT_SELECT} {where} ORDER BY e.created_at DESC LIMIT %s OFFSET %s;",
        params + [limit, offset],
    )
    return [format_event(row) for row in cur.fetchall()], total


def fetch_event(cur, event_id: int) -> Optional[Dict[str, Any]]:
    """Return the raw joined row for one event as a dict, or None."""
    cur.execute(f"{EVENT_SELECT} WHERE e.event_id = %s;", (event_id,))
    row = cur.fetchone()
    return dict(row) if row else None


def fetch_event_with_status(cur, event_id: int) -> Optional[Dict[str, Any]]:
    """Fetch an event, persisting its status first if it drifted."""
    event = fetch_event(cur, event_id)
    if event:
        sync_row_status(cur, event)
    return event


def mark_interested(cur, user_id: Optional[int], events: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Add `is_interested` to formatted events for the signed-in user."""
    if not events:
        return events
    if user_id is None:
        for event in events:
            event["is_interested"] = False
        return events

    cur.execute(
        "SELECT event_id FROM user_event_interests WHERE user_id = %s AND event_id = ANY(%s);",
        (user_id, [event["event_id"] for event in events]),
    )
    interested_ids = {row["event_id"] for row in cur.fetchall()}
    for event in events:
        event["is_interested"] = event["event_id"] in interested_ids
    return events


def region_name_for(cur, region_id: Optional[int]) -> Optional[str]:
    if not region_id:
        return None
    cur.execute("SELECT name FROM regions WHERE region_id = %s;", (region_id,))
    row = cur.fetchone()
    return row["name"] if row else None


def resolve_coordinates(cur, location: str, region_id: Optional[int]) -> Tuple[Optional[float], Optional[float]]:
    """Geocode a location using its region as a hint. (None, None) on failure."""
    coordinates = geocode_address(location, region_name_for(cur, region_id))
    if not coordinates:
        logger.info(f"No coordinates for '{location}'; storing event without a map pin")
        return None, None
    return coordinates.latitude, coordinates.longitude


# --- WRITES ---
def create_event(cur, fields: Dict[str, Any], creator_id: Optional[int], source: str = INTERNAL_SOURCE,
                 region_hint: bool = True) -> int:
    """
    Insert a validated event. Geocodes the location and derives the status.

    Args:
        cur: Open cursor.
        fields (dict): Output of validate_event_payload().
        creator_id (int, optional): Owner; scraped events may have none.
        source (str): "internal" or the scraper source name.
        region_hint (bool): Pass the region name to the geocoder.

    Returns:
        int: The new event_id.
    """
    region_id = fields.get("region_id") if region_hint else None
    latitude, longitude = resolve_coordinates(cur, fields["location"], region_id)
    status = calculate_event_status(fields["start_time"], fields["end_time"])

    cur.execute(
        """
        INSERT INTO events (
            name, description, image, location, latitude, longitude,
            start_time, end_time, status, category_id, region_id,
            creator_id, source
        ) VALUES (
            %s, %s, %s, %s, %s, %s,
            %s, %s, %s, %s, %s,
            %s, %s
        )
        RETURNING event_id;
        """,
        (
            fields["name"], fields["description"], fields.get("image"), fields["location"],
            latitude, longitude,
            fields["start_time"], fields["end_time"], status,
            fields.get("category_id"), fields.get("region_id"),
            creator_id, source,
        ),
    )
    return cur.fetchone()["event_id"]


def update_event(cur, event: Dict[str, Any], fields: Dict[str, Any]) -> List[str]:
    """
    Apply a validated partial update to an existing event row.

    Re-geocodes when the location is present and recomputes the status
    when either time is present.

    Args:
        cur: Open cursor.
        event (dict): Current row from fetch_event().
        fields (dict): Output of validate_event_payload(partial=True).

    Returns:
        list: Human readable change descriptions for notifications.

    Raises:
        EventValidationError: If the final start/end are inconsistent.
    """
    updates = dict(fields)
    changes: List[str] = []

    if "location" in fields:
        region_id = fields.get("region_id", event.get("region_id"))
        updates["latitude"], updates["longitude"] = resolve_coordinates(cur, fields["location"], region_id)

    if "start_time" in fields or "end_time" in fields:
        final_start = fields.get("start_time", event["start_time"])
        final_end = fields.get("end_time", event["end_time"])
        if as_utc(final_start) >= as_utc(final_end):
            raise EventValidationError("End time must be after start time")
        updates["status"] = calculate_event_status(final_start, final_end)

    if "name" in fields and fields["name"] != event.get("name"):
        changes.append(f"Name changed to: {fields['name']}")
    if "location" in fields and fields["location"] != event.get("location"):
        changes.append(f"Location changed to: {fields['location']}")
    if "start_time" in fields:
        changes.append(f"Start time changed to: {format_when(fields['start_time'])}")
    if "end_time" in fields:
        changes.append(f"End time changed to: {format_when(fields['end_time'])}")

    set_clause = ", ".join(f"{column} = %s" for column in updates)
    set_clause += ", updated_at = CURRENT_TIMESTAMP"

    cur.execute(
        f"UPDATE events SET {set_clause} WHERE event_id = %s;",
        list(updates.values()) + [event["event_id"]],
    )
    return changes


def notify_interested_users(cur, event_id: int, notification_type: str, title: str,
                            message: str, link: Optional[str] = None) -> List[str]:
    """
    Create a notification for every user interested in an event.

    Returns:
        list: Their email addresses, for the caller to mail after commit.
    """
    cur.execute(
        """
        SELECT u.user_id, u.email
        FROM user_event_interests i
        JOIN users u ON i.user_id = u.user_id
        WHERE i.event_id = %s;
        """,
        (event_id,),
    )
    recipients = cur.fetchall()

    for recipient in recipients:
        create_notification(cur, recipient["user_id"], notification_type, title, message, link)

    return [recipient["email"] for recipient in recipients]


def announce_event_change(cur, event: Dict[str, Any], changes: List[str]) -> List[str]:
    """
    Notify interested users of an edit. Returns emails to send after commit.
    `event` is the row as it was before the edit so a rename still names
    the event users bookmarked.
    """
    if not changes:
        return []
    return notify_interested_users(
        cur,
        event["event_id"],
        EVENT_CHANGED,
        "Event updated",
        f"The event \"{event['name']}\" has changed: " + "; ".join(changes),
        f"/events/{event['event_id']}",
    )


def announce_event_cancelled(cur, event: Dict[str, Any]) -> List[str]:
    """Notify interested users of a deletion. Returns emails to send after commit."""
    return notify_interested_users(
        cur,
        event["event_id"],
        EVENT_CANCELLED,
        "Event cancelled",
        f"The event \"{event['name']}\" has been cancelled.",
    )


def delete_event(cur, event_id: int) -> bool:
    cur.execute("DELETE FROM events WHERE event_id = %s;", (event_id,))
    return cur.rowcount > 0
