"""
Events service routes: list, read, create, update and delete events, and
toggle interest.

Event writes fan out notifications (in-app inside the transaction, email
after commit) to everyone interested in the event.
"""

import logging
from typing import Tuple, Dict, Any

import psycopg2.errors
from flask import Blueprint, request, jsonify, Response

from eventmap.database.db_connection import get_db
from eventmap.auth_service.utils import verify_token_from_request, verify_token
from eventmap.events_service.service import (
    EventValidationError,
    announce_event_cancelled,
    announce_event_change,
    build_event_filters,
    create_event as insert_event,
    delete_event as remove_event,
    fetch_event,
    fetch_event_with_status,
    format_event,
    list_events_page,
    mark_interested,
    update_event as apply_event_update,
    validate_event_payload,
)
from eventmap.events_service.status import refresh_stale_statuses
from eventmap.notifications_service.utils import USER_INTERESTED, create_notification
from eventmap.utils.mailer import send_quietly, send_event_changed, send_event_cancelled, send_user_interested
from eventmap.utils.pagination import get_pagination_args, paginated
from eventmap.utils.payload import NOT_AN_OBJECT_ERROR, json_object

events_bp = Blueprint("events", __name__)

logger = logging.getLogger(__name__)

EVENT_WRITE_ROLES = ["EVENT_CREATOR", "ADMIN"]


@events_bp.before_request
def before_request() -> None:
    logger.info(f"[Events] Incoming {request.method} {request.path}")


@events_bp.after_request
def after_request(response: Response) -> Response:
    logger.info(f"[Events] Response {response.status}")
    return response


def _optional_user_id():
    """User id from a bearer token if one is present and valid, else None."""
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        return verify_token(auth.split(" ", 1)[1])
    return None


def can_manage(event: Dict[str, Any], user_id: int, role: str) -> bool:
    return role == "ADMIN" or event.get("creator_id") == user_id


# --- LIST ---
@events_bp.route("/", methods=["GET"])
def list_events() -> Tuple[Response, int]:
    """
    Return a page of events, newest first.

    Query params:
    - search (str): Case-insensitive substring of the event name.
    - category (int), region (int)
    - status (str): UPCOMING, ONGOING or ENDED.
    - page, limit: Pagination (default limit 10).

    If a valid token is sent, each event carries `is_interested`.

    Returns:
        200: {"data": [...], "pagination": {...}}
        400: Invalid filter.
        500: Database error.
    """
    page, limit, offset = get_pagination_args(default_limit=10)

    try:
        where, params = build_event_filters(
            search=request.args.get("search"),
            category=request.args.get("category"),
            region=request.args.get("region"),
            status=request.args.get("status"),
        )
    except EventValidationError as e:
        return jsonify({"error": str(e)}), 400

    auth_user_id = _optional_user_id()

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                refresh_stale_statuses(cur)
                conn.commit()

                events, total = list_events_page(cur, where, params, limit, offset)
                mark_interested(cur, auth_user_id, events)
    except Exception as e:
        logger.error(f"Database error listing events: {e}")
        return jsonify({"error": "Failed to retrieve events"}), 500

    return jsonify(paginated(events, page, limit, total)), 200


# --- DETAIL ---
@events_bp.route("/<int:event_id>", methods=["GET"])
def get_event(event_id: int) -> Tuple[Response, int]:
    """
    Get a single event by ID, with category, region and creator.

    Returns:
        200: Event object.
        404: Event not found.
        500: Database error.
    """
    auth_user_id = _optional_user_id()

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                event = fetch_event_with_status(cur, event_id)
                if not event:
                    return jsonify({"error": "Event not found"}), 404
                conn.commit()

                result = format_event(event)
                mark_interested(cur, auth_user_id, [result])
    except Exception as e:
        logger.error(f"Database error fetching event {event_id}: {e}")
        return jsonify({"error": "Failed to retrieve event"}), 500

    return jsonify(result), 200


# --- CREATE ---
@events_bp.route("/", methods=["POST"])
def create_event() -> Tuple[Response, int]:
    """
    Create an event. Restricted to EVENT_CREATOR and ADMIN.

    Expects JSON with name, description, location, start_time, end_time and
    optionally image, category_id and region_id. The location is geocoded;
    a geocoding miss stores the event without coordinates.

    Returns:
        201: Created event.
        400: Validation error.
        401/403: Auth error.
        500: Server error.
    """
    user_id, _, err, code = verify_token_from_request(EVENT_WRITE_ROLES)
    if err:
        return err, code

    data = json_object()
    if data is None:
        return jsonify({"error": NOT_AN_OBJECT_ERROR}), 400

    try:
        fields = validate_event_payload(data)
    except EventValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                event_id = insert_event(cur, fields, user_id)
                event = fetch_event(cur, event_id)
                conn.commit()
    except psycopg2.errors.ForeignKeyViolation:
        return jsonify({"error": "Invalid category or region"}), 400
    except Exception as e:
        logger.error(f"Database error creating event: {e}")
        return jsonify({"error": "Failed to create event"}), 500

    logger.info(f"Event {event_id} created by user {user_id}")
    return jsonify(format_event(event)), 201


# --- UPDATE ---
@events_bp.route("/<int:event_id>", methods=["PUT"])
def update_event(event_id: int) -> Tuple[Response, int]:
    """
    Partially update an event. The creator or an ADMIN may edit.

    Interested users are notified (in-app and by email) when the name,
    location or times change.

    Returns:
        200: Updated event.
        400: Validation error or empty body.
        403: Not the creator.
        404: Event not found.
        500: Server error.
    """
    user_id, role, err, code = verify_token_from_request()
    if err:
        return err, code

    data = json_object()
    if data is None:
        return jsonify({"error": NOT_AN_OBJECT_ERROR}), 400
    if not data:
        return jsonify({"error": "No update data provided"}), 400

    try:
        fields = validate_event_payload(data, partial=True)
    except EventValidationError as e:
        return jsonify({"error": str(e)}), 400

    if not fields:
        return jsonify({"error": "No valid fields to update"}), 400

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                event = fetch_event(cur, event_id)
                if not event:
                    return jsonify({"error": "Event not found"}), 404

                if not can_manage(event, user_id, role):
                    return jsonify({"error": "Permission denied"}), 403

                changes = apply_event_update(cur, event, fields)
                updated = fetch_event(cur, event_id)
                recipients = announce_event_change(cur, event, changes)
                conn.commit()
    except EventValidationError as e:
        return jsonify({"error": str(e)}), 400
    except psycopg2.errors.ForeignKeyViolation:
        return jsonify({"error": "Invalid category or region"}), 400
    except Exception as e:
        logger.error(f"Database error updating event {event_id}: {e}")
        return jsonify({"error": "Failed to update event"}), 500

    for email in recipients:
        send_quietly(send_event_changed, email, event["name"], changes)

    return jsonify(format_event(updated)), 200


# --- DELETE ---
@events_bp.route("/<int:event_id>", methods=["DELETE"])
def delete_event(event_id: int) -> Tuple[Response, int]:
    """
    Delete an event if the caller is its creator or an ADMIN.
    Interested users receive a cancellation notice.

    Returns:
        200: Deleted.
        403: Permission denied.
        404: Event not found.
        500: Server error.
    """
    user_id, role, err, code = verify_token_from_request()
    if err:
        return err, code

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                event = fetch_event(cur, event_id)
                if not event:
                    return jsonify({"error": "Event not found"}), 404

                if not can_manage(event, user_id, role):
                    return jsonify({"error": "Permission denied"}), 403

                recipients = announce_event_cancelled(cur, event)
                remove_event(cur, event_id)
                conn.commit()
    except Exception as e:
        logger.error(f"Database error deleting event {event_id}: {e}")
        return jsonify({"error": "Failed to delete event"}), 500

    for email in recipients:
        send_quietly(send_event_cancelled, email, event["name"])

    return jsonify({"message": "Event deleted successfully"}), 200


# --- INTEREST ---
@events_bp.route("/<int:event_id>/interested", methods=["POST"])
def toggle_interest(event_id: int) -> Tuple[Response, int]:
    """
    Toggle the caller's interest in an event.

    The join row and interested_count change in the same transaction.
    Adding interest notifies the event creator unless the caller is the
    creator.

    Returns:
        200: {"interested": bool, "interested_count": int}
        404: Event not found.
        500: Server error.
    """
    user_id, _, err, code = verify_token_from_request()
    if err:
        return err, code

    creator_email = None
    user_name = None

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT event_id, name, creator_id FROM events WHERE event_id = %s FOR UPDATE;",
                    (event_id,),
                )
                event = cur.fetchone()
                if not event:
                    return jsonify({"error": "Event not found"}), 404

                cur.execute(
                    "SELECT 1 FROM user_event_interests WHERE user_id = %s AND event_id = %s;",
                    (user_id, event_id),
                )
                already_interested = cur.fetchone() is not None

                if already_interested:
                    cur.execute(
                        "DELETE FROM user_event_interests WHERE user_id = %s AND event_id = %s;",
                        (user_id, event_id),
                    )
                    cur.execute(
                        """
                        UPDATE events SET interested_count = GREATEST(interested_count - 1, 0)
                        WHERE event_id = %s
                        RETURNING interested_count;
                        """,
                        (event_id,),
                    )
                else:
                    cur.execute(
                        "INSERT INTO user_event_interests (user_id, event_id) VALUES (%s, %s);",
                        (user_id, event_id),
                    )
                    cur.execute(
                        """
                        UPDATE events SET interested_count = interested_count + 1
                        WHERE event_id = %s
                        RETURNING interested_count;
                        """,
                        (event_id,),
                    )
                interested_count = cur.fetchone()["interested_count"]

                creator_id = event["creator_id"]
                if not already_interested and creator_id and creator_id != user_id:
                    cur.execute(
                        """
                        SELECT
                            (SELECT name FROM users WHERE user_id = %s) AS user_name,
                            (SELECT email FROM users WHERE user_id = %s) AS creator_email;
                        """,
                        (user_id, creator_id),
                    )
                    names = cur.fetchone()
                    user_name = names["user_name"]
                    creator_email = names["creator_email"]
                    create_notification(
                        cur,
                        creator_id,
                        USER_INTERESTED,
                        "New interest in your event",
                        f"{user_name} is interested in \"{event['name']}\".",
                        f"/events/{event_id}",
                    )
                conn.commit()
    except Exception as e:
        logger.error(f"Database error toggling interest for event {event_id}: {e}")
        return jsonify({"error": "Failed to update interest"}), 500

    if creator_email:
        send_quietly(send_user_interested, creator_email, event["name"], user_name)

    return jsonify({
        "interested": not already_interested,
        "interested_count": interested_count
    }), 200


@events_bp.route("/<int:event_id>/interested", methods=["GET"])
def list_interested_users(event_id: int) -> Tuple[Response, int]:
    """
    Users interested in an event, newest first.
    Restricted to the event creator and ADMIN.

    Returns:
        200: {"data": [{user_id, name, avatar}], "pagination": {...}}
        403: Permission denied.
        404: Event not found.
        500: Server error.
    """
    user_id, role, err, code = verify_token_from_request()
    if err:
        return err, code

    page, limit, offset = get_pagination_args(default_limit=20)

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT event_id, creator_id FROM events WHERE event_id = %s;", (event_id,))
                event = cur.fetchone()
                if not event:
                    return jsonify({"error": "Event not found"}), 404

                if not can_manage(event, user_id, role):
                    return jsonify({"error": "Permission denied"}), 403

                cur.execute(
                    "SELECT COUNT(*) AS total FROM user_event_interests WHERE event_id = %s;",
                    (event_id,),
                )
                total = cur.fetchone()["total"]

                cur.execute(
                    """
                    SELECT u.user_id, u.name, u.avatar
                    FROM user_event_interests i
                    JOIN users u ON i.user_id = u.user_id
                    WHERE i.event_id = %s
                    ORDER BY i.created_at DESC
                    LIMIT %s OFFSET %s;
                    """,
                    (event_id, limit, offset),
                )
                users = [dict(row) for row in cur.fetchall()]
    except Exception as e:
        logger.error(f"Database error listing interested users for event {event_id}: {e}")
        return jsonify({"error": "Failed to retrieve interested users"}), 500

    return jsonify(paginated(users, page, limit, total)), 200
